"""Smoke test for a running DatumPilot API.

Runs one request per endpoint against a known-good position frame and
prints a PASS/WARN/FAIL table. Exits 1 if any check fails.

Usage:
    python scripts/healthcheck.py
    python scripts/healthcheck.py --base-url http://localhost:9000 --verbose
    python scripts/healthcheck.py --skip-slow   # no model inference
"""

import argparse
import asyncio
import json
import sys
import time
from dataclasses import dataclass, field

import httpx

DEFAULT_BASE_URL = "http://localhost:8000"

POSITION_FCF = {
    "characteristic": "position",
    "featureType": "hole",
    "tolerance": {"value": 0.1, "diameter": True, "materialCondition": "MMC"},
    "datums": [{"id": "A"}, {"id": "B"}, {"id": "C"}],
    "sizeDimension": {"nominal": 10, "tolerancePlus": 0.1, "toleranceMinus": 0.05},
}

STREAM_EVENTS = ("extraction", "fcf", "validation", "interpretation_complete")


@dataclass
class Result:
    name: str
    status: str = "SKIP"
    latency_ms: float = 0.0
    detail: str = ""

    def set(self, status: str, detail: str) -> "Result":
        self.status = status
        self.detail = detail
        return self


@dataclass
class Probe:
    client: httpx.AsyncClient
    base_url: str
    verbose: bool
    results: list[Result] = field(default_factory=list)

    async def request(self, name: str, method: str, path: str, **kwargs) -> tuple[Result, httpx.Response | None]:
        """Time one request; transport failures are recorded on the result."""
        result = Result(name)
        self.results.append(result)
        t0 = time.monotonic()
        try:
            resp = await self.client.request(method, f"{self.base_url}{path}", **kwargs)
        except httpx.ConnectError:
            return result.set("FAIL", "server not reachable"), None
        except httpx.ReadTimeout:
            return result.set("FAIL", "request timed out"), None
        finally:
            result.latency_ms = (time.monotonic() - t0) * 1000
        if self.verbose:
            print(f"    {name}: {resp.status_code} {resp.text[:300]}")
        return result, resp


def parse_sse(text: str) -> list[dict]:
    """Split an SSE body into {event, data} dicts."""
    events = []
    for block in text.replace("\r\n", "\n").strip().split("\n\n"):
        event = {}
        for line in block.split("\n"):
            key, _, value = line.partition(":")
            if key in ("event", "data"):
                event[key] = value.strip()
        if event:
            events.append(event)
    return events


async def check_health(probe: Probe) -> Result:
    result, resp = await probe.request("GET /api/health", "GET", "/api/health")
    if resp is None:
        return result
    data = resp.json()
    if data.get("status") == "healthy":
        return result.set("PASS", f"models={data.get('models_loaded', [])}")
    return result.set("WARN", f"degraded: {data.get('ollama', 'unknown')}")


async def check_rules(probe: Probe) -> None:
    result, resp = await probe.request("GET /api/rules", "GET", "/api/rules")
    if resp is None:
        return
    rules = resp.json().get("rules", [])
    if rules:
        result.set("PASS", f"{len(rules)} rules")
    else:
        result.set("FAIL", "empty rule catalogue")


async def check_validate(probe: Probe) -> None:
    result, resp = await probe.request(
        "POST /api/fcf/validate", "POST", "/api/fcf/validate", json={"fcf": POSITION_FCF}
    )
    if resp is None:
        return
    if resp.status_code != 200:
        result.set("FAIL", f"HTTP {resp.status_code}")
        return
    validation = resp.json()["validation"]
    if validation["valid"]:
        result.set("PASS", "reference frame valid")
    else:
        result.set("FAIL", f"rejected: {[i['code'] for i in validation['issues']]}")


async def check_calculate(probe: Probe) -> None:
    result, resp = await probe.request(
        "POST /api/fcf/calculate", "POST", "/api/fcf/calculate",
        json={"characteristic": "position", "fcf": POSITION_FCF, "input": {"measured": {"actualSize": 9.98}}},
    )
    if resp is None:
        return
    if resp.status_code != 200:
        result.set("FAIL", f"HTTP {resp.status_code}")
        return
    total = resp.json()["result"].get("totalAllowableTolerance")
    # 0.1 stated + 0.03 bonus for a 9.98 hole with MMC 9.95
    if total == 0.13:
        result.set("PASS", f"total allowable {total}")
    else:
        result.set("FAIL", f"total allowable {total}, expected 0.13")


async def check_interpret_stream(probe: Probe) -> None:
    result, resp = await probe.request(
        "POST /api/fcf/interpret/stream", "POST", "/api/fcf/interpret/stream",
        json={"text": "position ⌀0.1 Ⓜ A B C on a ⌀10 +0.1/-0.05 hole"},
        timeout=120.0,
    )
    if resp is None:
        return
    if "text/event-stream" not in resp.headers.get("content-type", ""):
        result.set("FAIL", f"HTTP {resp.status_code}, not an event stream")
        return

    events = parse_sse(resp.text)
    last = events[-1] if events else {}
    if last.get("event") == "error":
        payload = json.loads(last.get("data", "{}"))
        # Extraction needs Ollama; treat an unloaded model as infrastructure.
        status = "WARN" if payload.get("stage") == "extraction" else "FAIL"
        result.set(status, payload.get("message") or payload.get("error", "pipeline error"))
        return

    missing = [e for e in STREAM_EVENTS if e not in {ev.get("event") for ev in events}]
    if missing:
        result.set("FAIL", f"missing events: {missing}")
        return
    complete = json.loads(last["data"])
    result.set("PASS", f"confidence={complete.get('confidence')}")


async def run_all(base_url: str, verbose: bool, skip_slow: bool) -> list[Result]:
    async with httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0)) as client:
        probe = Probe(client, base_url, verbose)
        health = await check_health(probe)
        if health.status == "FAIL":
            return probe.results

        await asyncio.gather(check_rules(probe), check_validate(probe), check_calculate(probe))
        if not skip_slow:
            await check_interpret_stream(probe)
        return probe.results


def print_report(results: list[Result]) -> None:
    marks = {"PASS": "+", "FAIL": "X", "WARN": "~", "SKIP": "-"}
    print("=" * 76)
    for r in results:
        latency = f"{r.latency_ms:.0f} ms" if r.latency_ms else "--"
        print(f"  [{marks[r.status]}] {r.name:<32} {r.status:<5} {latency:>8}  {r.detail}")
    print("=" * 76)
    counts = {s: sum(1 for r in results if r.status == s) for s in marks}
    print(f"  {counts['PASS']}/{len(results)} passed, {counts['WARN']} warnings, {counts['FAIL']} failed")


def main() -> None:
    parser = argparse.ArgumentParser(description="DatumPilot API smoke test")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL, help="Server base URL")
    parser.add_argument("--verbose", action="store_true", help="Print response bodies")
    parser.add_argument("--skip-slow", action="store_true", help="Skip the interpret stream (model inference)")
    args = parser.parse_args()

    print(f"DatumPilot smoke test against {args.base_url}\n")
    results = asyncio.run(run_all(args.base_url, args.verbose, args.skip_slow))
    print_report(results)
    sys.exit(1 if any(r.status == "FAIL" for r in results) else 0)


if __name__ == "__main__":
    main()
