import base64
import json
import logging
import time
from dataclasses import dataclass, field

import httpx

from .prompts import (
    EXPLANATION_SYSTEM,
    EXTRACTION_SYSTEM,
    PROMPT_VERSION,
    build_explanation_user_prompt,
    build_extraction_user_prompt,
)

logger = logging.getLogger(__name__)


class ModelClientError(Exception):
    """Base for failures talking to the model server."""


class OllamaUnavailableError(ModelClientError):
    """Raised when Ollama server is not reachable."""


class OllamaParseError(ModelClientError):
    """Raised when Ollama returns non-JSON or unparseable output."""


class ImageFetchError(ModelClientError):
    """Raised when the drawing image cannot be downloaded."""


@dataclass
class ExtractionOutcome:
    fcf: dict
    parse_confidence: float
    notes: list[str] = field(default_factory=list)
    raw_text: str | None = None


def _clamp(value, lo: float = 0.0, hi: float = 1.0) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        return lo
    return max(lo, min(hi, v))


class OllamaClient:
    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        extraction_model: str = "gemma3:4b",
        explanation_model: str = "gemma3:1b",
        timeout: float = 90.0,
    ):
        self.base_url = base_url
        self.extraction_model = extraction_model
        self.explanation_model = explanation_model
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=5.0),
        )

    async def health_check(self) -> dict:
        """GET /api/tags -- verify Ollama is running and list loaded models."""
        try:
            resp = await self.client.get("/api/tags")
            resp.raise_for_status()
            return resp.json()
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise OllamaUnavailableError(
                f"Ollama not reachable at {self.base_url}: {e}"
            ) from e

    async def chat(
        self,
        model: str,
        messages: list[dict],
        format: str = "json",
        images: list[str] | None = None,
    ) -> dict:
        """Send a chat completion request to Ollama /api/chat."""
        if images:
            messages = [*messages[:-1], {**messages[-1], "images": images}]

        payload = {
            "model": model,
            "messages": messages,
            "format": format,
            "stream": False,
        }

        t0 = time.monotonic()
        logger.info("Ollama /api/chat request to model=%s", model)
        try:
            resp = await self.client.post("/api/chat", json=payload)
            resp.raise_for_status()
        except httpx.ConnectError as e:
            logger.error("Ollama connection failed: %s", e)
            raise OllamaUnavailableError(str(e)) from e
        except httpx.TimeoutException as e:
            logger.error("Ollama timed out after %.1fs for model=%s", time.monotonic() - t0, model)
            raise OllamaUnavailableError(
                f"Ollama timed out on model {model}"
            ) from e
        except httpx.HTTPStatusError as e:
            logger.error("Ollama HTTP %d for model=%s", e.response.status_code, model)
            raise OllamaUnavailableError(
                f"Ollama returned {e.response.status_code} for model {model}"
            ) from e

        elapsed = time.monotonic() - t0
        logger.info("Ollama /api/chat completed in %.1fs for model=%s", elapsed, model)
        try:
            return resp.json()
        except ValueError as e:
            raise OllamaParseError(f"Ollama returned a non-JSON body for model {model}") from e

    async def chat_json(self, model: str, messages: list[dict], **kwargs) -> dict:
        """Chat and parse the response content as a JSON object."""
        result = await self.chat(model, messages, format="json", **kwargs)
        try:
            content = result["message"]["content"]
        except (KeyError, TypeError) as e:
            raise OllamaParseError(f"Model {model} reply has no message content") from e
        if not isinstance(content, str):
            raise OllamaParseError(f"Model {model} reply content is not text")
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning("Ollama model=%s returned invalid JSON: %s", model, content[:200])
            raise OllamaParseError(
                f"Model {model} returned invalid JSON: {content[:200]}"
            ) from e
        if not isinstance(parsed, dict):
            raise OllamaParseError(f"Model {model} returned JSON {type(parsed).__name__}, expected object")
        return parsed

    async def fetch_image(self, image_url: str) -> str:
        """Return the image at ``image_url`` base64-encoded for Ollama."""
        if image_url.startswith("data:"):
            _, _, encoded = image_url.partition(",")
            if not encoded:
                raise ImageFetchError("Empty data URL")
            return encoded
        try:
            resp = await self.client.get(image_url)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Image download failed for %s: %s", image_url, e)
            raise ImageFetchError(f"Could not download image {image_url}: {e}") from e
        return base64.b64encode(resp.content).decode("ascii")

    async def extract_fcf(
        self,
        image_url: str | None = None,
        text: str | None = None,
        hints: dict | None = None,
    ) -> ExtractionOutcome:
        """Extraction adapter: drawing image or raw text -> candidate FCF dict.

        The returned ``fcf`` is unvalidated; callers run it through parse_fcf.
        """
        if not image_url and not text:
            raise ValueError("extract_fcf needs image_url or text")

        images = [await self.fetch_image(image_url)] if image_url else None
        messages = [
            {"role": "system", "content": EXTRACTION_SYSTEM},
            {"role": "user", "content": build_extraction_user_prompt(image_url, text, hints)},
        ]
        data = await self.chat_json(self.extraction_model, messages, images=images)

        fcf = data.get("fcf")
        if not isinstance(fcf, dict):
            raise OllamaParseError("Extraction output has no 'fcf' object")

        if not fcf.get("source"):
            if image_url:
                fcf["source"] = {"inputType": "image", "fileUrl": image_url}
            else:
                fcf["source"] = {"inputType": "text"}

        notes = data.get("notes") or []
        if not isinstance(notes, list):
            notes = [str(notes)]

        outcome = ExtractionOutcome(
            fcf=fcf,
            parse_confidence=_clamp(data.get("parseConfidence")),
            notes=[str(n) for n in notes],
            raw_text=data.get("rawText"),
        )
        logger.info(
            "Extracted FCF characteristic=%s parseConfidence=%.2f",
            fcf.get("characteristic"), outcome.parse_confidence,
        )
        return outcome

    async def explain_fcf(
        self,
        fcf: dict,
        validation: dict,
        calc_result: dict | None = None,
        parse_confidence: float | None = None,
    ) -> dict:
        """Explanation capability: grounded prose over the deterministic results."""
        messages = [
            {"role": "system", "content": EXPLANATION_SYSTEM},
            {
                "role": "user",
                "content": build_explanation_user_prompt(fcf, validation, calc_result, parse_confidence),
            },
        ]
        data = await self.chat_json(self.explanation_model, messages)

        explanation = data.get("explanation")
        if not isinstance(explanation, str) or not explanation.strip():
            raise OllamaParseError("Explanation output has no 'explanation' text")
        warnings = data.get("warnings") or []
        if not isinstance(warnings, list):
            warnings = [str(warnings)]

        return {
            "explanation": explanation.strip(),
            "warnings": [str(w) for w in warnings],
            "promptVersion": PROMPT_VERSION,
        }

    async def close(self):
        await self.client.aclose()
