#!/usr/bin/env python3
"""
Supplier diagnostics.

Checks that supplier credentials are configured, that a token can be
obtained, and prints the account balance. Optionally fetches one product to
show its country and denominations.

Usage:
    python check_supplier.py
    python check_supplier.py --product 12345
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import get_settings
from domain.errors import FulfillmentError
from services.supplier_client import get_supplier_client


def check_supplier(product_id: str | None = None) -> int:
    settings = get_settings()
    supplier_settings = settings.supplier

    print("=" * 50)
    print("SUPPLIER DIAGNOSTICS")
    print("=" * 50)
    print(f"Environment:        {supplier_settings.environment} (sandbox: {supplier_settings.is_sandbox})")
    print(f"Base URL:           {supplier_settings.base_url}")
    print(f"Client ID set:      {bool(supplier_settings.client_id)}")
    print(f"Client secret set:  {bool(supplier_settings.client_secret)}")
    print(f"Email delivery:     {'resend' if settings.email.enabled else 'log only'}")
    policy = settings.polling
    print(
        f"Polling:            base {policy.base_seconds}s, cap {policy.cap_seconds}s, "
        f"deadline {policy.deadline_seconds}s, max {policy.max_attempts} attempts"
    )
    print("=" * 50)

    if not supplier_settings.has_credentials:
        print("Missing credentials; skipping live checks.")
        return 1

    client = get_supplier_client()

    try:
        balance = client.get_balance()
        print(f"Balance: {balance.get('balance')} {balance.get('currencyCode')}")

        if product_id:
            product = client.get_product(product_id)
            if product is None:
                print(f"Product {product_id}: not found")
                return 1
            print(f"Product {product_id}: {product.product_name}")
            print(f"  Country:       {product.country_code or 'MISSING'}")
            if product.has_fixed_denominations:
                print(f"  Denominations: {', '.join(str(d) for d in product.fixed_denominations)}")
            else:
                print(f"  Range:         {product.min_amount} - {product.max_amount}")

    except FulfillmentError as e:
        print(f"\nERROR [{e.code}] ({e.status}): {e.message}", file=sys.stderr)
        return 1

    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Check supplier configuration and connectivity")
    parser.add_argument("--product", help="Supplier product id to fetch")
    args = parser.parse_args()
    return check_supplier(args.product)


if __name__ == "__main__":
    sys.exit(main())
