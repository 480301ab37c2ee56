"""Post a raw JSON event to the notification service intake.

Useful for replays and duplicate-nonce testing.
"""

import argparse
import json
from pathlib import Path

import httpx


def main() -> None:
    """Parse CLI args and post one JSON event."""

    parser = argparse.ArgumentParser(description="Post a JSON event to the notification service.")
    parser.add_argument("--notification-url", default="http://localhost:8000")
    parser.add_argument("--api-key", required=True)
    parser.add_argument("--json", dest="json_inline", default=None, help="Inline JSON event")
    parser.add_argument("--file", dest="json_file", default=None, help="Path to JSON file")
    parser.add_argument("--gateway", action="store_true", help="Payload is a gateway webhook body")
    args = parser.parse_args()

    if bool(args.json_inline) == bool(args.json_file):
        raise SystemExit("Provide exactly one of --json or --file")

    if args.json_inline:
        payload = json.loads(args.json_inline)
    else:
        payload = json.loads(Path(args.json_file).read_text())

    path = "/ar-io/webhook" if args.gateway else "/events"
    resp = httpx.post(
        f"{args.notification_url}{path}",
        json=payload,
        headers={"X-API-Key": args.api_key},
        timeout=10.0,
    )
    resp.raise_for_status()
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
