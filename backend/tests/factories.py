"""
Fakes and request helpers shared by the tests.
"""

import asyncio
import itertools

from backend.app.core.exceptions import GatewayError
from backend.app.domain.payments.gateway import PaymentGateway, compute_signature, verify_signature
from backend.app.services.notification_service import NotificationChannel

GATEWAY_SECRET = "s3cr3t"


async def open_booking(client, parties, start="2026-01-01", end="2026-01-05"):
    response = await client.post("/v1/bookings", json={
        "item_id": parties["item"].id,
        "start_date": start,
        "end_date": end,
    }, headers=parties["renter_headers"])
    assert response.status_code == 201, response.text
    return response.json()["booking"]


async def complete_booking(client, parties, booking):
    """Walk a PENDING booking through handover and return."""
    handover = await client.patch(
        f"/v1/bookings/{booking['id']}/handover", json={}, headers=parties["owner_headers"]
    )
    assert handover.status_code == 200, handover.text
    returned = await client.patch(
        f"/v1/bookings/{booking['id']}/return", json={}, headers=parties["owner_headers"]
    )
    assert returned.status_code == 200, returned.text
    return returned.json()["booking"]


async def open_payment(client, parties, booking, amount=1000, insurance_fee=0):
    response = await client.post("/v1/payments", json={
        "booking_id": booking["id"],
        "amount": amount,
        "insurance_fee": insurance_fee,
    }, headers=parties["renter_headers"])
    assert response.status_code == 201, response.text
    return response.json()["payment"]


def confirm_body(payment, gateway_payment_id, secret=GATEWAY_SECRET):
    """Callback payload as the checkout widget would post it."""
    return {
        "payment_id": payment["id"],
        "gateway_payment_id": gateway_payment_id,
        "gateway_order_id": payment["gateway_order_id"],
        "signature": compute_signature(payment["gateway_order_id"], gateway_payment_id, secret),
    }


class FakeGateway(PaymentGateway):
    """In-process gateway: numbered orders, HMAC verification with GATEWAY_SECRET."""

    provider_name = "fake"

    def __init__(self, secret: str = GATEWAY_SECRET):
        self.secret = secret
        self.orders = []
        self.fail_with = None
        self._ids = itertools.count(1)

    async def create_order(self, amount_minor, currency, receipt):
        if self.fail_with is not None:
            raise self.fail_with
        order = {
            "id": f"order_{next(self._ids)}",
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "status": "created",
        }
        self.orders.append(order)
        return order

    def verify_callback(self, order_id, payment_id, signature):
        return verify_signature(order_id, payment_id, signature, self.secret)

    def fail(self, message="Payment gateway unavailable"):
        self.fail_with = GatewayError(message)


class RecordingChannel(NotificationChannel):
    """Keeps every send in memory; optionally fails or hangs."""

    def __init__(self, name, fail=False, delay=None):
        self.provider_name = name
        self.fail = fail
        self.delay = delay
        self.sent = []

    async def send(self, recipient, subject, body):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError(f"{self.provider_name} is down")
        self.sent.append((recipient, subject, body))
