"""Call one of the admin triggers and print the response."""

import argparse
import json

import httpx


ACTIONS = {
    "sync": ("arns", "/admin/arns/sync"),
    "expirations": ("arns", "/admin/arns/expirations"),
    "digest": ("notification", "/admin/digest"),
}


def main() -> None:
    """CLI entrypoint for admin triggers."""

    parser = argparse.ArgumentParser(description="Trigger an ArNS sync, expiration run or daily digest.")
    parser.add_argument("action", choices=sorted(ACTIONS))
    parser.add_argument("--arns-url", default="http://localhost:8001")
    parser.add_argument("--notification-url", default="http://localhost:8000")
    parser.add_argument("--api-key", required=True)
    args = parser.parse_args()

    service, path = ACTIONS[args.action]
    base_url = args.arns_url if service == "arns" else args.notification_url
    resp = httpx.post(f"{base_url}{path}", headers={"X-API-Key": args.api_key}, timeout=10.0)
    resp.raise_for_status()
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
