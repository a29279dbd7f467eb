#!/usr/bin/env python3
"""
Customer Balance Reconciliation Script

Compares every customer's cached outstanding amount / total purchase with the values
recomputed from their non-cancelled sales. Prints the drifted customers; with --apply
the cached values are overwritten with the recomputed ones.

Usage:
    python reconcile_customer_balances.py
    python reconcile_customer_balances.py --apply
    python reconcile_customer_balances.py --customer 123e4567-e89b-12d3-a456-426614174002 --apply
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import List, Optional
from uuid import UUID

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.customer import Customer
from domain.errors import NotFoundError
from domain.money import is_zero
from repositories.customer_repository import CustomerQueryFilters, get_customer_by_id, list_customers
from services.customer_account_service import recompute_customer_account, refresh_customer_aggregates
from services.ledger_transaction import LedgerTransaction


@dataclass(frozen=True, slots=True)
class CustomerDrift:
    customer_id: UUID
    name: str
    cached_outstanding: Decimal
    recomputed_outstanding: Decimal
    cached_purchase: Decimal
    recomputed_purchase: Decimal


def _drift_for(customer: Customer) -> Optional[CustomerDrift]:
    totals = recompute_customer_account(customer.customer_id)
    outstanding_drift, purchase_drift = totals.drift_from(customer)
    if is_zero(outstanding_drift) and is_zero(purchase_drift):
        return None
    return CustomerDrift(
        customer_id=customer.customer_id,
        name=customer.name,
        cached_outstanding=customer.outstanding_amount,
        recomputed_outstanding=totals.outstanding_amount,
        cached_purchase=customer.total_purchase,
        recomputed_purchase=totals.total_purchase,
    )


def reconcile(customer_id: Optional[UUID] = None, apply: bool = False) -> List[CustomerDrift]:
    """
    Find customers whose cached aggregates drifted; optionally heal them.

    Returns:
        One CustomerDrift per drifted customer (as found before any repair)
    """

    if customer_id is not None:
        customer = get_customer_by_id(customer_id)
        if customer is None:
            raise NotFoundError("Customer", customer_id)
        customers = [customer]
    else:
        customers, _ = list_customers(CustomerQueryFilters(), limit=None)

    drifted: List[CustomerDrift] = []
    for customer in customers:
        drift = _drift_for(customer)
        if drift is None:
            continue
        drifted.append(drift)
        if apply:
            with LedgerTransaction(customer.customer_id, "reconcile customer balance") as tx:
                refresh_customer_aggregates(customer.customer_id, tx)
    return drifted


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Report (and optionally repair) drift in cached customer balances",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Report drift for every customer
  python reconcile_customer_balances.py

  # Overwrite drifted caches with recomputed values
  python reconcile_customer_balances.py --apply
        """
    )

    parser.add_argument(
        "--customer",
        "-c",
        type=UUID,
        help="Only check this customer ID"
    )

    parser.add_argument(
        "--apply",
        action="store_true",
        help="Overwrite drifted cached aggregates with the recomputed values"
    )

    args = parser.parse_args()

    try:
        drifted = reconcile(customer_id=args.customer, apply=args.apply)

        print("=" * 72)
        print("CUSTOMER BALANCE RECONCILIATION")
        print("=" * 72)
        for drift in drifted:
            print(f"{drift.name} ({drift.customer_id})")
            print(f"  outstanding:    cached {drift.cached_outstanding}  recomputed {drift.recomputed_outstanding}")
            print(f"  total purchase: cached {drift.cached_purchase}  recomputed {drift.recomputed_purchase}")
        print("-" * 72)
        print(f"Drifted customers: {len(drifted)}")
        if drifted:
            print("Caches overwritten." if args.apply else "Run with --apply to overwrite the cached values.")
        print("=" * 72)

        return 0

    except KeyboardInterrupt:
        print("\n\nReconciliation interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
