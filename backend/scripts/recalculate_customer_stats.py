#!/usr/bin/env python3
"""
Rebuild every customer's stats (visits, spend, tips, discounts, client type) from their bookings.
Safe to re-run. Usage: cd backend && python scripts/recalculate_customer_stats.py
"""
import sys
from pathlib import Path

# backend/scripts/ -> backend/
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from slotbook.db.session import SessionLocal
from slotbook.models.customer import Customer
from slotbook.services.payment_stats import recompute_customer_stats


def main():
    db = SessionLocal()
    try:
        ids = [cid for (cid,) in db.query(Customer.id).order_by(Customer.id.asc()).all()]
        print(f"Recalculating stats for {len(ids)} customers ...")
        for customer_id in ids:
            c = recompute_customer_stats(db, customer_id)
            print(f"  {customer_id}: {c.total_bookings} bookings, {c.completed_bookings} completed, {c.client_type}")
    finally:
        db.close()
    print("Done.")


if __name__ == "__main__":
    main()
