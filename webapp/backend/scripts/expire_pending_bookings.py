#!/usr/bin/env python3
"""
Cancel PENDING bookings whose start time has passed and refund their payments.

Listing endpoints already do this lazily for the caller's own bookings; run
this periodically (cron) to sweep everyone else.

Usage:
    cd webapp/backend
    python scripts/expire_pending_bookings.py [--grace-minutes N] [--dry-run]
"""

import argparse
import os
import sys
from datetime import timedelta

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from constants import PENDING_BOOKING_GRACE_MINUTES, BookingStatus, utc_now  # noqa: E402
from database import SessionLocal  # noqa: E402
from models import Booking  # noqa: E402
from services.booking_service import expire_stale_bookings  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--grace-minutes", type=int, default=PENDING_BOOKING_GRACE_MINUTES)
    parser.add_argument("--dry-run", action="store_true", help="List stale bookings without cancelling")
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        if args.dry_run:
            cutoff = utc_now() - timedelta(minutes=args.grace_minutes)
            stale = db.query(Booking).filter(
                Booking.status == BookingStatus.PENDING.value,
                Booking.start_time < cutoff,
            ).order_by(Booking.start_time).all()
            for booking in stale:
                print(f"  would cancel #{booking.id} (start {booking.start_time:%Y-%m-%d %H:%M})")
            print(f"{len(stale)} stale booking(s) found")
            return 0

        expired = expire_stale_bookings(db, grace_minutes=args.grace_minutes)
        for booking in expired:
            print(f"  cancelled #{booking.id} (start {booking.start_time:%Y-%m-%d %H:%M})")
        print(f"{len(expired)} booking(s) cancelled")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
