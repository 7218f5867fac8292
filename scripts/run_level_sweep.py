"""Scheduled maintenance: level sweep, near-level-up notices and notification cleanup.

Usage:
    python scripts/run_level_sweep.py [--hours N] [--cleanup]
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


def main():
    hours = None
    if "--hours" in sys.argv:
        hours = int(sys.argv[sys.argv.index("--hours") + 1])

    c = httpx.Client(timeout=600, headers=admin_headers())

    print("Running level sweep...")
    r = c.post(f"{BASE}/levels/admin/run-calculations", json={"lookback_hours": hours})
    if r.status_code != 200:
        print(f"Sweep failed: {r.status_code} {r.text[:300]}")
        sys.exit(1)
    sweep = r.json()
    print(f"  users: {sweep['users_processed']}  transitions: {sweep['transitions']}")
    for failure in sweep["failures"]:
        print(f"  FAILED {failure['user_id']}: {failure['error']}")

    print("Sending near-level-up notifications...")
    r = c.post(f"{BASE}/levels/admin/run-notifications", json={})
    r.raise_for_status()
    print(f"  sent: {r.json()['notifications_sent']}")

    if "--cleanup" in sys.argv:
        r = c.post(f"{BASE}/levels/admin/cleanup-notifications", json={})
        r.raise_for_status()
        body = r.json()
        print(f"Removed {body['deleted']} notifications older than {body['days_old']} days")


if __name__ == "__main__":
    main()
