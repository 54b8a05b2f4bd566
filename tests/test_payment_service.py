"""
Tests for PaymentService: initiation, reconciliation and pledge settlement.
"""

import re
import uuid
from dataclasses import replace
from decimal import Decimal

import pytest
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wedfund.errors import (
    ConfigurationError,
    ConflictError,
    GatewayQueryError,
    NotFoundError,
    OrderSubmissionError,
    PaymentInitiationError,
    PledgeError,
    ReconciliationMismatch,
    ValidationError,
)
from wedfund.fsm.states import ContributionStatus, FulfillmentIntent, PledgeStatus
from wedfund.models.contribution import Contribution
from wedfund.models.guest import Guest
from wedfund.models.pledge import Pledge
from wedfund.services.gateway_client import SubmittedOrder
from wedfund.services.payment_service import (
    SERVICE_UNAVAILABLE_MESSAGE,
    GENERIC_FAILURE_MESSAGE,
    PaymentService,
    credit_pledge,
)
from wedfund.services.pledge_service import PledgeService

REFERENCE_PATTERN = re.compile(r"^WED-\d+-[0-9a-f]{8}-[0-9a-z]+$")


async def contribute(service, amount="50000", phone="0700000000"):
    return await service.initiate_contribution(
        name="Jane Doe",
        phone=phone,
        amount=amount,
        email="jane@example.com",
        message="Congratulations!",
    )


async def load(db, contribution_id) -> Contribution:
    return await db.get(Contribution, contribution_id)


async def money_pledge(db, amount="100000") -> Pledge:
    return await PledgeService(db).create_pledge(
        name="Uncle Bob",
        phone="0711111111",
        pledge_type="money",
        amount=Decimal(amount),
    )


# --- Initiation ---

@pytest.mark.asyncio
async def test_contribution_is_persisted_pending_before_gateway_call(db, gateway):
    seen = {}

    async def submit(order):
        result = await db.execute(select(Contribution).where(Contribution.reference == order.reference))
        row = result.scalar_one()
        seen["status"] = row.status
        seen["tracking"] = row.gateway_tracking_id
        return SubmittedOrder(order_tracking_id="track-1", redirect_url="https://pay/checkout")

    gateway.submit_order.side_effect = submit

    await contribute(PaymentService(db, gateway))

    assert seen == {"status": ContributionStatus.PENDING.value, "tracking": None}


@pytest.mark.asyncio
async def test_initiate_contribution_success(db, gateway):
    """Scenario A, first half: pending row, order submitted, redirect returned."""
    payment = await contribute(PaymentService(db, gateway))

    assert REFERENCE_PATTERN.match(payment.reference)
    assert payment.order_tracking_id == "track-1"
    assert payment.redirect_url == "https://pay.example.test/checkout/track-1"

    contribution = await load(db, payment.contribution_id)
    assert contribution.status == ContributionStatus.PENDING_PAYMENT.value
    assert contribution.gateway_tracking_id == "track-1"
    assert contribution.amount == Decimal("50000.00")
    assert contribution.currency == "UGX"
    assert contribution.contributor_phone == "256700000000"
    assert contribution.meta["name"] == "Jane Doe"

    order = gateway.submit_order.await_args.args[0]
    assert order.reference == payment.reference
    assert order.amount == Decimal("50000.00")
    assert (order.first_name, order.last_name) == ("Jane", "Doe")
    assert order.phone == "256700000000"


@pytest.mark.asyncio
async def test_repeat_contributors_share_one_guest(db, gateway):
    service = PaymentService(db, gateway)
    await contribute(service, phone="0700000000")
    await contribute(service, phone="+256 700 000 000")

    guests = (await db.execute(select(func.count(Guest.id)))).scalar()
    contributions = (await db.execute(select(func.count(Contribution.id)))).scalar()
    assert guests == 1
    assert contributions == 2


@pytest.mark.asyncio
async def test_gateway_404_leaves_contribution_pending(db, gateway):
    """Scenario C."""
    gateway.submit_order.side_effect = OrderSubmissionError("Not Found", status=404, body="Not Found")

    with pytest.raises(PaymentInitiationError) as exc:
        await contribute(PaymentService(db, gateway))

    assert exc.value.message == SERVICE_UNAVAILABLE_MESSAGE
    assert exc.value.status_code == 503

    rows = (await db.execute(select(Contribution))).scalars().all()
    assert len(rows) == 1
    assert rows[0].status == ContributionStatus.PENDING.value
    assert rows[0].gateway_tracking_id is None
    assert rows[0].meta["last_error_status"] == 404


@pytest.mark.asyncio
async def test_gateway_rejection_is_generic_failure(db, gateway):
    gateway.submit_order.side_effect = OrderSubmissionError("bad request", status=400)

    with pytest.raises(PaymentInitiationError) as exc:
        await contribute(PaymentService(db, gateway))

    assert exc.value.message == GENERIC_FAILURE_MESSAGE
    assert exc.value.status_code == 502


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-5", "abc"])
async def test_invalid_amount_creates_nothing(db, gateway, amount):
    with pytest.raises(ValidationError):
        await contribute(PaymentService(db, gateway), amount=amount)

    gateway.submit_order.assert_not_called()
    assert (await db.execute(select(func.count(Contribution.id)))).scalar() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["callback_url", "cancel_url", "ipn_id"])
async def test_unroutable_gateway_config_sends_no_order(db, gateway, missing):
    gateway.config = replace(gateway.config, **{missing: ""})

    with pytest.raises(ConfigurationError) as exc:
        await contribute(PaymentService(db, gateway))

    assert exc.value.status_code == 500
    gateway.submit_order.assert_not_called()
    assert (await db.execute(select(func.count(Contribution.id)))).scalar() == 0


@pytest.mark.asyncio
async def test_pledge_fulfillment_needs_routing_config(db, gateway):
    pledge = await money_pledge(db)
    gateway.config = replace(gateway.config, ipn_id="")

    with pytest.raises(ConfigurationError):
        await PaymentService(db, gateway).initiate_pledge_fulfillment(pledge.id, "1000")

    gateway.submit_order.assert_not_called()


@pytest.mark.asyncio
async def test_ipn_during_submission_is_not_overwritten(db, test_engine, gateway):
    """An IPN committed while the order is in flight keeps its outcome."""
    other_sessions = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async def submit(order):
        async with other_sessions() as other:
            await PaymentService(other, gateway).handle_ipn(
                "IPN", order.reference, None, None, "COMPLETED"
            )
        return SubmittedOrder(order_tracking_id="track-1", redirect_url="https://pay/checkout")

    gateway.submit_order.side_effect = submit

    payment = await contribute(PaymentService(db, gateway))

    contribution = await load(db, payment.contribution_id)
    assert contribution.status == ContributionStatus.COMPLETED.value
    assert contribution.gateway_tracking_id == "track-1"

    async with other_sessions() as fresh:
        stored = await fresh.get(Contribution, payment.contribution_id)
        assert stored.status == ContributionStatus.COMPLETED.value


# --- IPN reconciliation ---

@pytest.mark.asyncio
async def test_ipn_completed_round_trip(db, gateway):
    """Scenario A, second half."""
    service = PaymentService(db, gateway)
    payment = await contribute(service)

    contribution = await service.handle_ipn(
        notification_type="IPN",
        merchant_reference=payment.reference,
        tracking_id="track-1",
        gateway_reference="PESA-REF-1",
        payment_status="COMPLETED",
    )

    assert contribution.id == payment.contribution_id
    assert contribution.status == ContributionStatus.COMPLETED.value
    assert contribution.reference == payment.reference
    assert contribution.gateway_reference == "PESA-REF-1"
    assert contribution.amount == Decimal("50000.00")
    assert contribution.currency == "UGX"


@pytest.mark.asyncio
async def test_ipn_is_idempotent(db, gateway):
    service = PaymentService(db, gateway)
    payment = await contribute(service)

    payload = dict(
        notification_type="IPN",
        merchant_reference=payment.reference,
        tracking_id="track-1",
        gateway_reference="PESA-REF-1",
        payment_status="COMPLETED",
    )
    first = await service.handle_ipn(**payload)
    updated_at = first.updated_at
    second = await service.handle_ipn(**payload)

    assert second.status == ContributionStatus.COMPLETED.value
    assert second.updated_at == updated_at


@pytest.mark.asyncio
async def test_terminal_status_is_never_overwritten(db, gateway):
    service = PaymentService(db, gateway)
    payment = await contribute(service)
    contribution = await load(db, payment.contribution_id)

    assert await service.apply_gateway_status(contribution, "COMPLETED")
    assert not await service.apply_gateway_status(contribution, "FAILED")
    assert not await service.apply_gateway_status(contribution, "CANCELLED")
    assert not await service.apply_gateway_status(contribution, "PENDING")

    assert contribution.status == ContributionStatus.COMPLETED.value


@pytest.mark.asyncio
@pytest.mark.parametrize("reported,expected", [
    ("FAILED", ContributionStatus.FAILED),
    ("INVALID", ContributionStatus.FAILED),
    ("CANCELLED", ContributionStatus.CANCELLED),
    ("completed", ContributionStatus.PENDING_PAYMENT),
    ("REVERSED", ContributionStatus.PENDING_PAYMENT),
])
async def test_ipn_status_mapping(db, gateway, reported, expected):
    service = PaymentService(db, gateway)
    payment = await contribute(service)

    contribution = await service.handle_ipn("IPN", payment.reference, "track-1", None, reported)

    assert contribution.status == expected.value


@pytest.mark.asyncio
async def test_ipn_correlates_by_reference_without_tracking_id(db, gateway):
    service = PaymentService(db, gateway)
    payment = await contribute(service)

    contribution = await service.handle_ipn("IPN", payment.reference, None, None, "COMPLETED")

    assert contribution.id == payment.contribution_id
    assert contribution.status == ContributionStatus.COMPLETED.value


@pytest.mark.asyncio
async def test_ipn_unknown_reference(db, gateway):
    with pytest.raises(ReconciliationMismatch):
        await PaymentService(db, gateway).handle_ipn("IPN", "WED-unknown", "nope", None, "COMPLETED")


@pytest.mark.asyncio
@pytest.mark.parametrize("notification_type,reference", [
    ("CALLBACKURL", "WED-1"),
    (None, "WED-1"),
    ("IPN", None),
])
async def test_ipn_ignored_notifications(db, gateway, notification_type, reference):
    result = await PaymentService(db, gateway).handle_ipn(
        notification_type, reference, "track-1", None, "COMPLETED"
    )
    assert result is None


# --- Redirect pages ---

@pytest.mark.asyncio
async def test_cancel_redirect_cancels(db, gateway):
    """Scenario B."""
    service = PaymentService(db, gateway)
    payment = await contribute(service)

    contribution = await service.cancel_from_redirect("track-1")

    assert contribution.id == payment.contribution_id
    assert contribution.status == ContributionStatus.CANCELLED.value


@pytest.mark.asyncio
async def test_simulated_cancel_changes_nothing(db, gateway):
    service = PaymentService(db, gateway)
    payment = await contribute(service)

    assert await service.cancel_from_redirect("track-1", simulated=True) is None
    assert await service.cancel_from_redirect("simulated") is None
    assert await service.cancel_from_redirect(None) is None

    contribution = await load(db, payment.contribution_id)
    assert contribution.status == ContributionStatus.PENDING_PAYMENT.value


@pytest.mark.asyncio
async def test_reconcile_uses_live_gateway_status(db, gateway):
    service = PaymentService(db, gateway)
    await contribute(service)

    contribution = await service.reconcile_from_gateway("track-1")

    gateway.query_status.assert_awaited_with("track-1")
    assert contribution.status == ContributionStatus.COMPLETED.value
    assert contribution.meta["payment_method"] == "MpesaKE"
    assert contribution.meta["confirmation_code"] == "CONF-1"


@pytest.mark.asyncio
async def test_reconcile_falls_back_to_stored_status(db, gateway):
    gateway.query_status.side_effect = GatewayQueryError("timeout")
    service = PaymentService(db, gateway)
    await contribute(service)

    contribution = await service.reconcile_from_gateway("track-1")

    assert contribution.status == ContributionStatus.PENDING_PAYMENT.value


@pytest.mark.asyncio
async def test_reconcile_requires_known_order(db, gateway):
    service = PaymentService(db, gateway)
    with pytest.raises(ReconciliationMismatch):
        await service.reconcile_from_gateway(None)
    with pytest.raises(ReconciliationMismatch):
        await service.reconcile_from_gateway("unknown")


# --- Admin cancel ---

@pytest.mark.asyncio
async def test_cancel_order(db, gateway):
    service = PaymentService(db, gateway)
    payment = await contribute(service)
    contribution = await load(db, payment.contribution_id)

    await service.cancel_order(contribution)

    gateway.cancel_order.assert_awaited_once_with("track-1")
    assert contribution.status == ContributionStatus.CANCELLED.value

    with pytest.raises(ConflictError):
        await service.cancel_order(contribution)


# --- Pledges ---

@pytest.mark.asyncio
async def test_full_pledge_payment_fulfills_pledge(db, gateway):
    """Scenario D."""
    pledge = await money_pledge(db)
    service = PaymentService(db, gateway)

    payment = await service.initiate_pledge_fulfillment(pledge.id, "100000")
    assert payment.reference == f"WED-{payment.contribution_id}"

    await db.refresh(pledge)
    assert pledge.status == PledgeStatus.PENDING.value
    assert pledge.fulfilled_amount == Decimal("0")

    contribution = await service.handle_ipn("IPN", payment.reference, "track-1", None, "COMPLETED")

    await db.refresh(pledge)
    assert pledge.status == PledgeStatus.FULFILLED.value
    assert pledge.fulfilled_amount == Decimal("100000")
    assert pledge.fulfilled_at is not None
    assert contribution.meta["fulfillment"] == FulfillmentIntent.APPLIED.value


@pytest.mark.asyncio
async def test_partial_pledge_payments_accumulate(db, gateway):
    pledge = await money_pledge(db)
    service = PaymentService(db, gateway)

    for i, amount in enumerate(["30000", "50000", "20000"]):
        gateway.submit_order.return_value = SubmittedOrder(
            order_tracking_id=f"track-{i}", redirect_url="https://pay/checkout"
        )
        payment = await service.initiate_pledge_fulfillment(pledge.id, amount)
        await service.handle_ipn("IPN", payment.reference, f"track-{i}", None, "COMPLETED")

        await db.refresh(pledge)
        if i < 2:
            assert pledge.status == PledgeStatus.PENDING.value

    assert pledge.fulfilled_amount == Decimal("100000")
    assert pledge.status == PledgeStatus.FULFILLED.value


@pytest.mark.asyncio
async def test_failed_pledge_payment_voids_intent(db, gateway):
    pledge = await money_pledge(db)
    service = PaymentService(db, gateway)

    payment = await service.initiate_pledge_fulfillment(pledge.id, "40000")
    contribution = await service.handle_ipn("IPN", payment.reference, "track-1", None, "FAILED")

    await db.refresh(pledge)
    assert pledge.fulfilled_amount == Decimal("0")
    assert pledge.status == PledgeStatus.PENDING.value
    assert contribution.meta["fulfillment"] == FulfillmentIntent.VOID.value

    # A late COMPLETED cannot resurrect the voided intent
    await service.handle_ipn("IPN", payment.reference, "track-1", None, "COMPLETED")
    await db.refresh(pledge)
    assert pledge.fulfilled_amount == Decimal("0")


@pytest.mark.asyncio
async def test_pledge_credit_applied_once(db, gateway):
    pledge = await money_pledge(db)
    service = PaymentService(db, gateway)

    payment = await service.initiate_pledge_fulfillment(pledge.id, "40000")
    for _ in range(3):
        await service.handle_ipn("IPN", payment.reference, "track-1", None, "COMPLETED")

    await db.refresh(pledge)
    assert pledge.fulfilled_amount == Decimal("40000")


@pytest.mark.asyncio
async def test_pledge_fulfillment_validation(db, gateway):
    service = PaymentService(db, gateway)
    pledge = await money_pledge(db)

    with pytest.raises(PledgeError):
        await service.initiate_pledge_fulfillment(pledge.id, "100001")

    with pytest.raises(NotFoundError):
        await service.initiate_pledge_fulfillment(uuid.uuid4(), "100")

    item = await PledgeService(db).create_pledge(
        name="Aunt May", phone="0722222222", pledge_type="item",
        item_description="Chairs", quantity=20,
    )
    with pytest.raises(PledgeError):
        await service.initiate_pledge_fulfillment(item.id, "100")

    gateway.submit_order.assert_not_called()


def test_credit_pledge_caps_at_target():
    pledge = Pledge(
        type="money",
        amount=Decimal("100"),
        fulfilled_amount=Decimal("90"),
        status=PledgeStatus.PENDING.value,
        phone="256700000000",
    )

    credit_pledge(pledge, Decimal("25"))

    assert pledge.fulfilled_amount == Decimal("100")
    assert pledge.status == PledgeStatus.FULFILLED.value
    assert pledge.fulfilled_at is not None
