#!/usr/bin/env python3
"""
Dev helper: send a test support request (or operator reply) to the local relay.

Usage
-----
# Support request to localhost:3000
python scripts/send_test_support_request.py

# Ukrainian confirmation email
python scripts/send_test_support_request.py --language uk

# Operator reply instead of a support request
python scripts/send_test_support_request.py --reply "Try restarting the game"

# Target a deployed relay
python scripts/send_test_support_request.py --url https://relay.example.com

Environment / .env
------------------
WEBHOOK_SECRET   Shared webhook secret (required unless --secret is given).

The .env file in the project root (and backend/.env) is loaded if present.
"""

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path

import httpx
from dotenv import load_dotenv


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def _support_payload(name: str, email: str, text: str, language: str) -> dict:
    payload = {"name": name, "email": email, "text": text}
    if language:
        payload["language"] = language
    return payload


def _reply_payload(name: str, email: str, original: str, reply: str) -> dict:
    return {"name": name, "email": email, "original_message": original, "response": reply}


# ---------------------------------------------------------------------------
# Pretty printer
# ---------------------------------------------------------------------------

def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status < 300 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2, ensure_ascii=False))
    except ValueError:
        print(response.text)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_support_request.py",
        description="Send a test support request to the support relay.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/send_test_support_request.py
              python scripts/send_test_support_request.py --language uk
              python scripts/send_test_support_request.py --reply "Fixed in 1.4.2"
        """),
    )
    parser.add_argument("--url", default="http://localhost:3000", help="Relay base URL (default: http://localhost:3000)")
    parser.add_argument("--name", default="Test Player", help='Requester name (default: "Test Player")')
    parser.add_argument("--email", default="player@example.com", help="Requester email (default: player@example.com)")
    parser.add_argument("--text", default="The game freezes on level 12.", help="Support message text")
    parser.add_argument("--language", default="", help="Confirmation language, e.g. en or uk")
    parser.add_argument(
        "--reply",
        default=None,
        metavar="TEXT",
        help="Send an operator reply with this text to /webhook/support/response instead.",
    )
    parser.add_argument("--secret", default=None, help="Override the webhook secret (defaults to WEBHOOK_SECRET).")
    parser.add_argument("--dry-run", action="store_true", help="Print the payload JSON without sending it.")

    args = parser.parse_args()

    secret = args.secret or os.getenv("WEBHOOK_SECRET", "")
    if not secret and not args.dry_run:
        print(
            "ERROR: No webhook secret found.\n"
            "Set WEBHOOK_SECRET in your environment or .env file, or pass --secret.",
            file=sys.stderr,
        )
        return 1

    if args.reply is not None:
        endpoint = f"{args.url.rstrip('/')}/webhook/support/response"
        payload = _reply_payload(args.name, args.email, args.text, args.reply)
    else:
        endpoint = f"{args.url.rstrip('/')}/webhook/support"
        payload = _support_payload(args.name, args.email, args.text, args.language)

    print(f"Endpoint  : {endpoint}")
    print(f"Requester : {args.name} <{args.email}>")

    if args.dry_run:
        print("\n[DRY RUN] Payload:")
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return 0

    try:
        response = httpx.post(endpoint, json=payload, headers={"X-Webhook-Secret": secret}, timeout=30)
    except httpx.HTTPError as exc:
        print(f"\nERROR: Request failed: {exc}", file=sys.stderr)
        return 1

    _print_response(response)
    return 0 if response.status_code < 300 else 1


if __name__ == "__main__":
    sys.exit(main())
