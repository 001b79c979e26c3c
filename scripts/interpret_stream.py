#!/usr/bin/env python3
"""Interpretation SSE stream viewer -- no browser needed.

Sends a POST to the running backend's /api/fcf/interpret/stream endpoint
and prints each SSE event as it arrives, with timing.

Requires: the backend server running (uvicorn api.main:app)

Usage:
    # Text-only
    python scripts/interpret_stream.py --text "position 0.1 MMC A B C"

    # Drawing crop served over HTTP
    python scripts/interpret_stream.py --image-url https://example.com/fcf.png

    # Local image, sent as a data URL
    python scripts/interpret_stream.py --image fcf.png

    # Structured frame, extraction skipped
    python scripts/interpret_stream.py --fcf frame.json --calc calc.json
"""

import argparse
import base64
import json
import mimetypes
import os
import sys
import time

import httpx


def data_url(image_path: str) -> str:
    """Read an image file and wrap it as a base64 data URL."""
    mime = mimetypes.guess_type(image_path)[0] or "image/png"
    with open(image_path, "rb") as f:
        encoded = base64.b64encode(f.read()).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def load_json(path: str) -> dict:
    with open(path) as f:
        return json.load(f)


def parse_sse_lines(lines: list[str]) -> list[dict]:
    """Parse raw SSE text into events. Each event has 'event' and 'data' keys."""
    events = []
    current_event = None
    current_data_lines = []

    for line in lines:
        if line.startswith("event:"):
            current_event = line[len("event:"):].strip()
        elif line.startswith("data:"):
            current_data_lines.append(line[len("data:"):].strip())
        elif line.strip() == "":
            if current_event is not None or current_data_lines:
                events.append({
                    "event": current_event or "message",
                    "data": "\n".join(current_data_lines),
                })
                current_event = None
                current_data_lines = []

    if current_event is not None or current_data_lines:
        events.append({
            "event": current_event or "message",
            "data": "\n".join(current_data_lines),
        })

    return events


def build_payload(args: argparse.Namespace) -> dict:
    payload: dict = {}
    if args.fcf:
        payload["fcf"] = load_json(args.fcf)
    if args.image:
        payload["imageUrl"] = data_url(args.image)
    elif args.image_url:
        payload["imageUrl"] = args.image_url
    if args.text:
        payload["text"] = args.text
    if args.calc:
        payload["calculationInput"] = load_json(args.calc)
    if args.no_explain:
        payload["explain"] = False
    return payload


def main():
    parser = argparse.ArgumentParser(
        description="Stream /api/fcf/interpret/stream (server must be running)"
    )
    parser.add_argument("--text", "-t", help="Text transcription of the FCF")
    parser.add_argument("--image", "-i", help="Path to a local image (PNG/JPEG)")
    parser.add_argument("--image-url", help="URL of a drawing crop")
    parser.add_argument("--fcf", help="Path to a JSON feature control frame")
    parser.add_argument("--calc", help="Path to a JSON calculationInput object")
    parser.add_argument("--no-explain", action="store_true", help="Skip the explanation stage")
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Backend server base URL (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=180,
        help="Request timeout in seconds (default: 180)",
    )
    args = parser.parse_args()

    if args.image and not os.path.isfile(args.image):
        print(f"ERROR: Image file not found: {args.image}")
        sys.exit(1)

    payload = build_payload(args)
    if not payload.keys() & {"fcf", "imageUrl", "text"}:
        print("ERROR: Provide --fcf, --image, --image-url or --text.")
        sys.exit(1)

    stream_url = f"{args.url.rstrip('/')}/api/fcf/interpret/stream"

    print("=" * 60)
    print("FCF Interpretation Stream")
    print("=" * 60)
    print(f"Endpoint:    POST {stream_url}")
    print(f"Inputs:      {', '.join(sorted(payload))}")
    print(f"Timeout:     {args.timeout}s")
    print()

    t_start = time.monotonic()
    t_last_event = t_start
    events_received = []

    try:
        with httpx.Client(timeout=httpx.Timeout(args.timeout, connect=10)) as client:
            with client.stream(
                "POST",
                stream_url,
                json=payload,
                headers={"Accept": "text/event-stream"},
            ) as response:
                print(f"  HTTP Status:  {response.status_code}")
                print()

                if response.status_code != 200:
                    body = response.read().decode("utf-8", errors="replace")
                    print(f"  ERROR: {body[:500]}")
                    sys.exit(1)

                line_buffer = []
                for line in response.iter_lines():
                    line_buffer.append(line)
                    if line.strip() != "":
                        continue

                    for evt in parse_sse_lines(line_buffer):
                        now = time.monotonic()
                        delta = now - t_last_event
                        t_last_event = now

                        try:
                            data_display = json.dumps(json.loads(evt["data"]), indent=2, ensure_ascii=False)
                        except json.JSONDecodeError:
                            data_display = evt["data"]

                        events_received.append(evt)
                        print(f"  [{len(events_received)}] event: {evt['event']}  (+{delta:.1f}s, total {now - t_start:.1f}s)")
                        for data_line in data_display.split("\n"):
                            print(f"       {data_line}")
                        print()
                    line_buffer = []

    except httpx.ConnectError:
        print(f"  ERROR: Cannot connect to {stream_url}")
        print("  Is the server running? Start with: cd backend && uvicorn api.main:app --reload")
        sys.exit(1)
    except httpx.ReadTimeout:
        print(f"  ERROR: Read timeout after {time.monotonic() - t_start:.1f}s (limit: {args.timeout}s)")

    print("=" * 60)
    print(f"  Total time:       {time.monotonic() - t_start:.1f}s")
    print(f"  Events received:  {len(events_received)}")
    if events_received:
        last = events_received[-1]
        print(f"  Final event:      {last['event']}")
        if last["event"] == "error":
            sys.exit(1)


if __name__ == "__main__":
    main()
