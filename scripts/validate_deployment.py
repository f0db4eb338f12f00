"""
Pre-Deploy and Smoke Test Script.

Validates a running instance:
1. Health Check
2. Booking -> Handover -> Return as the seeded owner and renter
3. Insurance pool visible to the seeded admin

Expects the users and item created by backend/seed_users.py. Tokens are
minted locally, so SECRET_KEY must match the server's.
"""

import os
import sys
from pathlib import Path

import httpx

sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.core.jwt import create_access_token

BASE_URL = os.getenv("RENTIVO_BASE_URL", "http://127.0.0.1:8000")
API_PREFIX = "/v1"


def bearer(user_id: int, username: str, role: str) -> dict:
    token = create_access_token({"sub": username, "user_id": user_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


def check(step: str, response: httpx.Response, expected: int) -> dict:
    if response.status_code != expected:
        print(f"❌ {step}: {response.status_code} {response.text}")
        sys.exit(1)
    print(f"✅ {step}")
    return response.json()


def run_smoke_test():
    admin = bearer(1, "admin", "ADMIN")
    owner = bearer(2, "owner", "OWNER")
    renter = bearer(3, "renter", "RENTER")
    item_id = int(os.getenv("RENTIVO_ITEM_ID", "1"))

    with httpx.Client(base_url=BASE_URL, timeout=10.0) as client:
        print("\n--- [Step 1] Health ---")
        health = check("Health check", client.get("/health"), 200)
        if health.get("redis") != "up":
            print("⚠️ Redis is down; notification dedupe is disabled")

        print("\n--- [Step 2] Booking lifecycle ---")
        booking = check("Create booking", client.post(f"{API_PREFIX}/bookings", json={
            "item_id": item_id,
            "start_date": "2030-01-01",
            "end_date": "2030-01-03",
        }, headers=renter), 201)["booking"]
        check("Handover", client.patch(
            f"{API_PREFIX}/bookings/{booking['id']}/handover", json={}, headers=owner
        ), 200)
        done = check("Return", client.patch(
            f"{API_PREFIX}/bookings/{booking['id']}/return", json={}, headers=owner
        ), 200)["booking"]
        assert done["status"] == "COMPLETED"

        print("\n--- [Step 3] Insurance pool ---")
        pool = check("Read insurance pool", client.get(f"{API_PREFIX}/admin/insurance-pool", headers=admin), 200)
        print(f"   balance={pool['balance']}")

    print("\n🎉 Smoke test passed")


if __name__ == "__main__":
    run_smoke_test()
