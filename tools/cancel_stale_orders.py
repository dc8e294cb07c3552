# tools/cancel_stale_orders.py
# Purpose: cancel unpaid PENDING orders older than PENDING_ORDER_TIMEOUT_MINUTES
#          (stock and voucher usage are restored by OrderService)
# Usage: python tools/cancel_stale_orders.py [minutes]
#        cron: */10 * * * * cd /srv/bookstore && python tools/cancel_stale_orders.py

import os
import sys

from dotenv import load_dotenv

load_dotenv()

from bookstore.db.session import SessionLocal
from bookstore.services.orders.order_service import OrderService
from bookstore.system.logging import configure_logging, get_logger

configure_logging()
logger = get_logger("bookstore.tools.cancel_stale_orders")


def run(minutes: int) -> int:
    with SessionLocal() as session:
        result = OrderService(session=session, user=None).cancel_stale_pending(older_than_minutes=minutes)

    logger.info("Stale order sweep finished", minutes=minutes, cancelled=result["cancelled"])
    for code in result["order_codes"]:
        print(f" - {code}")
    print(f"Cancelled {result['cancelled']} order(s) pending for more than {minutes} minutes.")
    return 0


if __name__ == "__main__":
    raw = sys.argv[1] if len(sys.argv) > 1 else os.getenv("PENDING_ORDER_TIMEOUT_MINUTES", "30")
    if not raw.isdigit() or int(raw) <= 0:
        print("Error: minutes must be a positive integer.")
        sys.exit(1)
    sys.exit(run(int(raw)))
