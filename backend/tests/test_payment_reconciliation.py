"""
Payment reconciliation tests.

Covers intent creation, signed confirmation, idempotent replays,
conflicting callbacks and the insurance fee credit.
"""

import pytest
from sqlalchemy import select, func

from backend.app.core.config import settings
from backend.app.core.exceptions import AlreadyConfirmedError, ValidationError
from backend.app.db.ledger_store import LedgerStore
from backend.app.domain.payments.gateway import compute_signature, verify_signature
from backend.app.domain.payments.payment_service import PaymentService
from backend.app.models.audit_log import AuditLog
from backend.app.models.insurance_pool import InsurancePool
from backend.app.models.payment import Payment
from backend.app.models.rental_enums import PaymentStatus
from factories import GATEWAY_SECRET, open_booking, open_payment, confirm_body


def test_signature_matches_known_vector():
    signature = compute_signature("order_1", "pay_1", "s3cr3t")

    assert len(signature) == 64
    assert verify_signature("order_1", "pay_1", signature, "s3cr3t")
    assert not verify_signature("order_1", "pay_2", signature, "s3cr3t")
    assert not verify_signature("order_1", "pay_1", signature, "other")
    assert not verify_signature("order_1", "pay_1", signature.upper(), "s3cr3t")


@pytest.mark.asyncio
async def test_create_payment_intent(client, parties, gateway):
    booking = await open_booking(client, parties)

    response = await client.post("/v1/payments", json={
        "booking_id": booking["id"],
        "amount": 1500,
        "insurance_fee": 100,
    }, headers=parties["renter_headers"])

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["payment"]["status"] == "PENDING"
    assert body["payment"]["user_id"] == parties["renter"].id
    assert body["payment"]["gateway_order_id"] == body["gateway_order"]["id"]
    assert gateway.orders[0]["amount"] == 150000
    assert gateway.orders[0]["currency"] == "INR"
    assert gateway.orders[0]["receipt"] == f"booking_{booking['id']}"


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -10])
async def test_create_payment_rejects_non_positive_amount(client, parties, gateway, amount):
    booking = await open_booking(client, parties)

    response = await client.post("/v1/payments", json={
        "booking_id": booking["id"], "amount": amount,
    }, headers=parties["renter_headers"])

    assert response.status_code == 400
    assert gateway.orders == []


@pytest.mark.asyncio
async def test_create_payment_rejects_amount_over_cap(client, parties, gateway):
    booking = await open_booking(client, parties)

    response = await client.post("/v1/payments", json={
        "booking_id": booking["id"], "amount": settings.max_payment_amount + 1,
    }, headers=parties["renter_headers"])

    assert response.status_code == 400
    assert gateway.orders == []


@pytest.mark.asyncio
async def test_service_rejects_amount_over_cap_before_gateway(parties, gateway, db_session):
    with pytest.raises(ValidationError):
        await PaymentService.create_payment_intent(
            LedgerStore(db_session), gateway,
            booking_id=1, user_id=parties["renter"].id, amount=settings.max_payment_amount + 1,
        )

    assert gateway.orders == []


@pytest.mark.asyncio
async def test_create_payment_unknown_booking(client, parties, gateway):
    response = await client.post("/v1/payments", json={
        "booking_id": 777, "amount": 100,
    }, headers=parties["renter_headers"])

    assert response.status_code == 404
    assert gateway.orders == []


@pytest.mark.asyncio
async def test_gateway_failure_leaves_no_payment(client, parties, gateway, db_session):
    booking = await open_booking(client, parties)
    gateway.fail()

    response = await client.post("/v1/payments", json={
        "booking_id": booking["id"], "amount": 500,
    }, headers=parties["renter_headers"])

    assert response.status_code == 502
    assert response.json()["error_code"] == "ERR_GATEWAY"
    count = await db_session.scalar(select(func.count()).select_from(Payment))
    assert count == 0


@pytest.mark.asyncio
async def test_confirm_with_valid_signature(client, parties, email_channel, sms_channel, dispatcher, db_session):
    booking = await open_booking(client, parties)
    payment = await open_payment(client, parties, booking, insurance_fee=200)

    response = await client.post(
        "/v1/payments/confirm",
        json=confirm_body(payment, "pay_abc"),
        headers=parties["renter_headers"],
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["success"] is True
    assert body["payment"]["status"] == "PAID"
    assert body["payment"]["gateway_payment_id"] == "pay_abc"
    assert body["payment"]["paid_at"] is not None

    await dispatcher.drain()
    recipients = {sent[0] for sent in email_channel.sent}
    assert recipients == {parties["renter"].email, parties["owner"].email}
    assert {sent[0] for sent in sms_channel.sent} == {parties["renter"].phone, parties["owner"].phone}

    pool = await db_session.scalar(select(InsurancePool))
    assert pool.balance == 200


@pytest.mark.asyncio
async def test_confirm_with_bad_signature_writes_nothing(client, parties, email_channel, dispatcher, db_session):
    booking = await open_booking(client, parties)
    payment = await open_payment(client, parties, booking)
    body = confirm_body(payment, "pay_abc")
    body["signature"] = compute_signature(payment["gateway_order_id"], "pay_abc", "wrong-secret")

    response = await client.post("/v1/payments/confirm", json=body, headers=parties["renter_headers"])

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_SIGNATURE_MISMATCH"
    stored = await db_session.get(Payment, payment["id"], populate_existing=True)
    assert stored.status == PaymentStatus.PENDING
    assert stored.gateway_payment_id is None
    await dispatcher.drain()
    assert email_channel.sent == []


@pytest.mark.asyncio
async def test_confirm_missing_field(client, parties):
    response = await client.post("/v1/payments/confirm", json={
        "payment_id": 1, "gateway_order_id": "order_1", "signature": "x",
    }, headers=parties["renter_headers"])

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_confirm_unknown_payment(client, parties):
    response = await client.post(
        "/v1/payments/confirm",
        json=confirm_body({"id": 999, "gateway_order_id": "order_9"}, "pay_x"),
        headers=parties["renter_headers"],
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_confirm_order_of_another_payment(client, parties):
    booking = await open_booking(client, parties)
    first = await open_payment(client, parties, booking)
    second = await open_payment(client, parties, booking)
    body = confirm_body({"id": first["id"], "gateway_order_id": second["gateway_order_id"]}, "pay_x")

    response = await client.post("/v1/payments/confirm", json=body, headers=parties["renter_headers"])

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_replayed_confirmation_is_idempotent(client, parties, email_channel, dispatcher, db_session):
    booking = await open_booking(client, parties)
    payment = await open_payment(client, parties, booking, insurance_fee=50)
    body = confirm_body(payment, "pay_abc")

    first = await client.post("/v1/payments/confirm", json=body, headers=parties["renter_headers"])
    await dispatcher.drain()
    sent_after_first = len(email_channel.sent)
    second = await client.post("/v1/payments/confirm", json=body, headers=parties["renter_headers"])
    await dispatcher.drain()

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["payment"]["paid_at"] == first.json()["payment"]["paid_at"]
    assert len(email_channel.sent) == sent_after_first == 2

    pool = await db_session.scalar(select(InsurancePool))
    assert pool.balance == 50
    confirmations = await db_session.scalar(
        select(func.count()).select_from(AuditLog).where(AuditLog.action == "PAYMENT_CONFIRMED")
    )
    assert confirmations == 1


@pytest.mark.asyncio
async def test_audit_failure_after_confirm_keeps_success_and_notifies(
    client, parties, email_channel, dispatcher, db_session, monkeypatch
):
    booking = await open_booking(client, parties)
    payment = await open_payment(client, parties, booking)
    body = confirm_body(payment, "pay_audit")

    async def broken_log_event(db, action, **fields):
        raise RuntimeError("audit table locked")

    monkeypatch.setattr("backend.app.services.audit.log_event", broken_log_event)

    first = await client.post("/v1/payments/confirm", json=body, headers=parties["renter_headers"])
    second = await client.post("/v1/payments/confirm", json=body, headers=parties["renter_headers"])
    await dispatcher.drain()

    assert first.status_code == 200, first.text
    assert first.json()["payment"]["status"] == "PAID"
    assert second.status_code == 200
    assert {sent[0] for sent in email_channel.sent} == {parties["owner"].email, parties["renter"].email}
    stored = await db_session.get(Payment, payment["id"], populate_existing=True)
    assert stored.status == PaymentStatus.PAID


@pytest.mark.asyncio
async def test_conflicting_confirmation_returns_409(client, parties):
    booking = await open_booking(client, parties)
    payment = await open_payment(client, parties, booking)

    first = await client.post(
        "/v1/payments/confirm", json=confirm_body(payment, "pay_abc"), headers=parties["renter_headers"]
    )
    second = await client.post(
        "/v1/payments/confirm", json=confirm_body(payment, "pay_other"), headers=parties["renter_headers"]
    )

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["error_code"] == "ERR_ALREADY_CONFIRMED"


@pytest.mark.asyncio
async def test_confirm_on_cancelled_booking_is_invalid_state(client, parties):
    booking = await open_booking(client, parties)
    payment = await open_payment(client, parties, booking)
    await client.patch(f"/v1/bookings/{booking['id']}/cancel", headers=parties["renter_headers"])

    response = await client.post(
        "/v1/payments/confirm", json=confirm_body(payment, "pay_abc"), headers=parties["renter_headers"]
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_INVALID_STATE"


@pytest.mark.asyncio
async def test_fail_payment_then_confirm(client, parties):
    booking = await open_booking(client, parties)
    payment = await open_payment(client, parties, booking)

    response = await client.post(
        f"/v1/payments/{payment['id']}/fail", json={"reason": "card declined"}, headers=parties["renter_headers"]
    )
    assert response.status_code == 200
    assert response.json()["payment"]["status"] == "FAILED"
    assert response.json()["payment"]["failure_reason"] == "card declined"

    again = await client.post(
        f"/v1/payments/{payment['id']}/fail", json={"reason": "retry"}, headers=parties["renter_headers"]
    )
    assert again.status_code == 200
    assert again.json()["payment"]["failure_reason"] == "card declined"

    response = await client.post(
        "/v1/payments/confirm", json=confirm_body(payment, "pay_abc"), headers=parties["renter_headers"]
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_INVALID_STATE"


@pytest.mark.asyncio
async def test_fail_paid_payment_conflicts(client, parties):
    booking = await open_booking(client, parties)
    payment = await open_payment(client, parties, booking)
    await client.post("/v1/payments/confirm", json=confirm_body(payment, "pay_abc"), headers=parties["renter_headers"])

    response = await client.post(f"/v1/payments/{payment['id']}/fail", json={}, headers=parties["renter_headers"])

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_list_payments(client, parties, make_user):
    booking = await open_booking(client, parties)
    await open_payment(client, parties, booking)
    _, stranger_headers = await make_user("stranger")

    mine = await client.get("/v1/payments", headers=parties["renter_headers"])
    everyone = await client.get("/v1/payments", headers=parties["admin_headers"])
    theirs = await client.get("/v1/payments", headers=stranger_headers)

    assert len(mine.json()) == 1
    assert len(everyone.json()) == 1
    assert theirs.json() == []


@pytest.mark.asyncio
async def test_concurrent_duplicate_loses_race_quietly(client, parties, gateway, db_session, monkeypatch):
    """A delivery that loses the conditional update re-reads and succeeds without a second credit."""
    booking = await open_booking(client, parties)
    payment = await open_payment(client, parties, booking, insurance_fee=30)

    original = LedgerStore.compare_and_set

    async def racing(self, model, entity_id, expected, values):
        # The competing delivery commits its update first
        await original(self, model, entity_id, expected, values)
        return await original(self, model, entity_id, expected, values)

    monkeypatch.setattr(LedgerStore, "compare_and_set", racing)

    store = LedgerStore(db_session)
    signature = compute_signature(payment["gateway_order_id"], "pay_abc", GATEWAY_SECRET)
    result, transitioned = await PaymentService.confirm_payment(
        store, gateway, payment["id"], "pay_abc", payment["gateway_order_id"], signature
    )

    assert transitioned is False
    assert result.status == PaymentStatus.PAID
    assert await db_session.scalar(select(func.count()).select_from(InsurancePool)) == 0


@pytest.mark.asyncio
async def test_concurrent_conflicting_delivery_raises(client, parties, gateway, db_session, monkeypatch):
    booking = await open_booking(client, parties)
    payment = await open_payment(client, parties, booking)

    original = LedgerStore.compare_and_set

    async def racing(self, model, entity_id, expected, values):
        await original(self, model, entity_id, expected, {**values, "gateway_payment_id": "pay_rival"})
        return await original(self, model, entity_id, expected, values)

    monkeypatch.setattr(LedgerStore, "compare_and_set", racing)

    store = LedgerStore(db_session)
    signature = compute_signature(payment["gateway_order_id"], "pay_abc", GATEWAY_SECRET)
    with pytest.raises(AlreadyConfirmedError):
        await PaymentService.confirm_payment(
            store, gateway, payment["id"], "pay_abc", payment["gateway_order_id"], signature
        )
