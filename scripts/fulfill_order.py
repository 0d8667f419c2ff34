#!/usr/bin/env python3
"""
Gift Card Fulfillment Script

Operator CLI for the admin fulfillment actions, for use when the dashboard
is unavailable.

Usage:
    python fulfill_order.py approve <order_id>
    python fulfill_order.py resend <order_id>
    python fulfill_order.py reject <order_id>
    python fulfill_order.py show <order_id>
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.errors import FulfillmentError
from services.fulfillment_service import get_fulfillment_service


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Approve, resend or reject gift card orders")
    parser.add_argument("action", choices=["approve", "resend", "reject", "show"])
    parser.add_argument("order_id", help="Storefront order id")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    service = get_fulfillment_service()

    try:
        if args.action == "approve":
            result = service.approve_order(args.order_id)
            print(f"Order {result.order_id}: {result.status.value}")
            if result.transaction_id:
                print(f"  Supplier transaction: {result.transaction_id}")
            print(f"  Delivered:  {result.delivered}")
            print(f"  Email sent: {result.email_sent}")

        elif args.action == "resend":
            result = service.resend_gift_card(args.order_id)
            print(f"Order {result.order_id}: resent from {result.source}")
            print(f"  Email sent: {result.email_sent}")

        elif args.action == "reject":
            order = service.reject_order(args.order_id)
            print(f"Order {order.order_id}: {order.status.value}")

        else:
            recovered = service.get_redemption_details(args.order_id)
            if recovered is None:
                print("Redemption details not available")
                return 1
            # Only the tail of the code is shown on screen.
            code = recovered.artifact.redemption_code
            print(f"Redemption code on file (from {recovered.source}): ****{code[-4:]}")

        return 0

    except FulfillmentError as e:
        print(f"\nERROR [{e.code}]: {e.message}", file=sys.stderr)
        if e.details:
            print(f"  Details: {e.details}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
