"""Trigger the weekly payment run (and optionally a retry of failed rows) via the API.

Usage:
    python scripts/run_weekly_payments.py [WEEK] [--retry]

WEEK is "YYYY-MM-DD" (a Monday) or "YYYY-Www"; omitted means the current week.
The bearer token comes from PLAYTEST_ADMIN_TOKEN, or is minted with the
configured secret key for the operator id in PLAYTEST_OPERATOR_ID.
"""
import os
import sys
import uuid

import httpx

from playtest_levels.config import get_settings
from playtest_levels.kernel.identity.jwt import create_access_token

BASE = os.environ.get("PLAYTEST_API", "http://localhost:8000/api/v1")


def admin_headers():
    token = os.environ.get("PLAYTEST_ADMIN_TOKEN")
    if not token:
        operator = uuid.UUID(os.environ.get("PLAYTEST_OPERATOR_ID", str(uuid.uuid4())))
        token, _, _ = create_access_token(operator, capabilities=[get_settings().admin_capability])
    return {"Authorization": f"Bearer {token}"}


def show(label, body):
    print(f"{label} week {body['week_start']}")
    print(f"  paid:    {len(body['paid'])} (total {body['total_paid']})")
    print(f"  failed:  {len(body['failed'])}")
    for item in body["failed"]:
        print(f"    {item['user_id']}  attempts={item['attempts']}  {item['error']}")
    print(f"  skipped: {len(body['skipped'])}")


def main():
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    week = args[0] if args else None
    retry = "--retry" in sys.argv

    c = httpx.Client(timeout=300, headers=admin_headers())

    r = c.post(f"{BASE}/levels/payments/process-weekly", json={"week_start": week})
    if r.status_code != 200:
        print(f"Payment run failed: {r.status_code} {r.text[:300]}")
        sys.exit(1)
    body = r.json()
    show("Payment run", body)

    if retry and body["failed"]:
        r = c.post(f"{BASE}/levels/payments/retry-failed", json={"week_start": body["week_start"]})
        if r.status_code != 200:
            print(f"Retry failed: {r.status_code} {r.text[:300]}")
            sys.exit(1)
        show("Retry", r.json())


if __name__ == "__main__":
    main()
