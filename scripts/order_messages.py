"""Print the gateway order number and reconciliation messages for a cart."""

import argparse
import json

import httpx


def main() -> None:
    """CLI entrypoint for inspecting one cart's payment history."""

    parser = argparse.ArgumentParser(description="Fetch gateway messages recorded for a cart.")
    parser.add_argument("cart_id")
    parser.add_argument("--api-url", default="http://localhost:8000")
    parser.add_argument("--api-key", required=True)
    args = parser.parse_args()

    resp = httpx.get(
        f"{args.api_url}/orders/{args.cart_id}/messages",
        headers={"x-api-key": args.api_key},
        timeout=10.0,
    )
    resp.raise_for_status()
    print(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    main()
