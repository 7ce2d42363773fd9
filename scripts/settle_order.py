"""Settle an authorized payment from the command line."""

import argparse
import json
import sys

import httpx


def main() -> None:
    parser = argparse.ArgumentParser(description="Capture an authorized payment for a cart.")
    parser.add_argument("cart_id")
    parser.add_argument("--api-url", default="http://localhost:8000")
    parser.add_argument("--api-key", required=True)
    args = parser.parse_args()

    resp = httpx.post(
        f"{args.api_url}/orders/{args.cart_id}/settle",
        headers={"x-api-key": args.api_key},
        timeout=45.0,
    )
    resp.raise_for_status()
    result = resp.json()
    print(json.dumps(result, indent=2))
    if not result["success"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
