"""
Payment Service - starting Pesapal payments and reconciling their outcome.

Every entry point that learns a gateway status (IPN webhook, callback page,
cancel page, admin cancel) goes through `apply_gateway_status`, which never
moves a contribution out of a terminal status.
"""

import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.config import settings
from wedfund.errors import (
    ConflictError,
    OrderSubmissionError,
    PaymentInitiationError,
    PledgeError,
    NotFoundError,
    ReconciliationMismatch,
    GatewayQueryError,
    ValidationError,
)
from wedfund.fsm.states import (
    ContributionStatus,
    PledgeStatus,
    FulfillmentIntent,
    map_gateway_status,
)
from wedfund.models.contribution import Contribution
from wedfund.models.guest import Guest
from wedfund.models.pledge import Pledge
from wedfund.services.gateway_client import PesapalClient, OrderRequest
from wedfund.services.guest_service import GuestService, normalize_phone, split_name
from wedfund.services.references import (
    generate_reference,
    pledge_reference,
    contribution_id_from_reference,
)

logger = logging.getLogger(__name__)

SERVICE_UNAVAILABLE_MESSAGE = "Payment service is currently unavailable. Please try again later."
GENERIC_FAILURE_MESSAGE = "Failed to process contribution. Please try again later."

SIMULATED_TRACKING_ID = "simulated"


@dataclass
class InitiatedPayment:
    contribution_id: uuid.UUID
    reference: str
    order_tracking_id: str
    redirect_url: str


def parse_amount(value: Any) -> Decimal:
    """Positive Decimal with two places, or ValidationError."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError("Amount must be a number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be greater than zero")
    return amount.quantize(Decimal("0.01"))


class PaymentService:
    """Service for contribution payments through Pesapal."""

    def __init__(self, db: AsyncSession, gateway: PesapalClient):
        self.db = db
        self.gateway = gateway

    # --- Initiation ---

    async def initiate_contribution(
        self,
        name: str,
        phone: str,
        amount: Any,
        email: Optional[str] = None,
        message: Optional[str] = None,
        currency: Optional[str] = None,
        description: str = "Wedding Contribution",
    ) -> InitiatedPayment:
        """
        Record a pending contribution and start a hosted checkout.

        Raises ConfigurationError (500) before writing anything when the
        gateway callback URLs or IPN id are not configured.

        1. Normalize phone and get/create the guest
        2. Generate a unique merchant reference
        3. Insert and commit the contribution as pending
        4. Submit the order to Pesapal
        5. Store the tracking id and move to pending_payment

        On gateway failure the contribution stays pending and
        PaymentInitiationError carries a user-facing message.
        """
        amount = parse_amount(amount)
        normalized_phone = normalize_phone(phone)
        # Fail before anything is written if orders could not be routed back
        self.gateway.config.require_order()

        guest = await GuestService(self.db).get_or_create(
            normalized_phone, name, email=email, message=message
        )

        contribution = Contribution(
            guest_id=guest.id,
            amount=amount,
            currency=currency or settings.default_currency,
            reference=generate_reference(normalized_phone),
            status=ContributionStatus.PENDING.value,
            meta={"name": name.strip(), "phone": normalized_phone},
            contributor_name=name.strip(),
            contributor_email=email or None,
            contributor_phone=normalized_phone,
            message=message or None,
        )
        self.db.add(contribution)
        # The record must exist before the gateway is contacted
        await self.db.commit()

        logger.info(f"Contribution {contribution.reference} created for {amount} {contribution.currency}")

        return await self._submit(contribution, name, email, description)

    async def initiate_pledge_fulfillment(
        self,
        pledge_id: uuid.UUID,
        amount: Any,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> InitiatedPayment:
        """
        Start a payment against a money pledge.

        The pledge itself is untouched here; it is credited only when the
        contribution reaches completed.
        """
        amount = parse_amount(amount)
        self.gateway.config.require_order()

        result = await self.db.execute(
            select(Pledge).where(Pledge.id == pledge_id).with_for_update()
        )
        pledge = result.scalar_one_or_none()
        if not pledge:
            raise NotFoundError("Pledge not found")
        if not pledge.is_money:
            raise PledgeError("Only money pledges can be fulfilled with a payment")
        if pledge.status != PledgeStatus.PENDING.value:
            raise PledgeError(f"Pledge is already {pledge.status}")
        if amount > pledge.outstanding_amount:
            raise PledgeError(
                f"Amount exceeds the outstanding pledge balance of {pledge.outstanding_amount}"
            )

        guest = None
        if pledge.guest_id:
            guest = await self.db.get(Guest, pledge.guest_id)

        payer_name = name or (guest.full_name if guest else "") or "Wedding Guest"
        payer_email = email or pledge.email or (guest.email if guest else None)

        contribution_id = uuid.uuid4()
        contribution = Contribution(
            id=contribution_id,
            guest_id=pledge.guest_id,
            amount=amount,
            currency=settings.default_currency,
            reference=pledge_reference(contribution_id),
            status=ContributionStatus.PENDING.value,
            meta={
                "name": payer_name,
                "phone": pledge.phone,
                "pledge_id": str(pledge.id),
                "fulfillment": FulfillmentIntent.PENDING.value,
            },
            contributor_name=payer_name,
            contributor_email=payer_email,
            contributor_phone=pledge.phone,
        )
        self.db.add(contribution)
        await self.db.commit()

        logger.info(f"Pledge fulfillment {contribution.reference} created for pledge {pledge.id}")

        return await self._submit(contribution, payer_name, payer_email, "Wedding Pledge Fulfillment")

    async def _submit(
        self,
        contribution: Contribution,
        name: str,
        email: Optional[str],
        description: str,
    ) -> InitiatedPayment:
        first_name, last_name = split_name(name)
        order = OrderRequest(
            reference=contribution.reference,
            amount=contribution.amount,
            currency=contribution.currency,
            description=description,
            first_name=first_name,
            last_name=last_name,
            email=email or "",
            phone=contribution.contributor_phone or "",
        )

        try:
            submitted = await self.gateway.submit_order(order)
        except OrderSubmissionError as e:
            logger.error(f"Payment initiation failed for {contribution.reference}: {e.message}")
            await self.db.refresh(contribution)
            contribution.meta = {
                **(contribution.meta or {}),
                "last_error": e.message,
                "last_error_status": e.status,
            }
            await self.db.commit()
            raise PaymentInitiationError(
                SERVICE_UNAVAILABLE_MESSAGE if e.is_service_unavailable else GENERIC_FAILURE_MESSAGE,
                service_unavailable=e.is_service_unavailable,
                contribution_id=str(contribution.id),
            ) from e

        # An IPN may have settled the row while the order was in flight, so
        # both writes are conditional on the stored row, not our copy of it
        now = datetime.now(timezone.utc)
        await self.db.execute(
            update(Contribution)
            .where(
                Contribution.id == contribution.id,
                Contribution.gateway_tracking_id.is_(None),
            )
            .values(gateway_tracking_id=submitted.order_tracking_id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(Contribution)
            .where(
                Contribution.id == contribution.id,
                Contribution.status == ContributionStatus.PENDING.value,
            )
            .values(status=ContributionStatus.PENDING_PAYMENT.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.db.refresh(contribution)

        return InitiatedPayment(
            contribution_id=contribution.id,
            reference=contribution.reference,
            order_tracking_id=submitted.order_tracking_id,
            redirect_url=submitted.redirect_url,
        )

    # --- Reconciliation ---

    async def find_contribution(
        self,
        tracking_id: Optional[str] = None,
        merchant_reference: Optional[str] = None,
    ) -> Optional[Contribution]:
        """
        Locate a contribution by tracking id, then merchant reference,
        then the id embedded in a WED-<uuid> reference.

        The row is locked for the rest of the transaction and re-read even if
        this session already holds it, so status checks see committed state.
        """
        if tracking_id:
            result = await self.db.execute(
                select(Contribution)
                .where(Contribution.gateway_tracking_id == tracking_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            contribution = result.scalars().first()
            if contribution:
                return contribution

        if merchant_reference:
            result = await self.db.execute(
                select(Contribution)
                .where(Contribution.reference == merchant_reference)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            contribution = result.scalar_one_or_none()
            if contribution:
                return contribution

            contribution_id = contribution_id_from_reference(merchant_reference)
            if contribution_id:
                return await self.db.get(
                    Contribution,
                    contribution_id,
                    with_for_update=True,
                    populate_existing=True,
                )

        return None

    async def apply_gateway_status(
        self,
        contribution: Contribution,
        reported_status: str,
        tracking_id: Optional[str] = None,
        gateway_reference: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Apply a gateway-reported status to a contribution.

        Returns True if the status changed. Terminal rows are never changed;
        a repeated report of the same outcome is a no-op.
        """
        if tracking_id and not contribution.gateway_tracking_id:
            contribution.gateway_tracking_id = tracking_id
        if gateway_reference:
            contribution.gateway_reference = gateway_reference

        target = map_gateway_status(reported_status)
        current = contribution.status_enum

        if current.is_terminal:
            if target != current and target.is_terminal:
                logger.warning(
                    f"Rejected {current.value} -> {target.value} for {contribution.reference} "
                    f"(gateway reported {reported_status!r})"
                )
            return False

        if not target.is_terminal:
            if current == ContributionStatus.PENDING and contribution.gateway_tracking_id:
                contribution.status = ContributionStatus.PENDING_PAYMENT.value
                contribution.updated_at = datetime.now(timezone.utc)
                return True
            return False

        contribution.status = target.value
        contribution.updated_at = datetime.now(timezone.utc)
        if details:
            contribution.meta = {**(contribution.meta or {}), **details}

        logger.info(f"Contribution {contribution.reference}: {current.value} -> {target.value}")

        if contribution.pledge_id:
            await self._settle_pledge_intent(contribution, target)

        return True

    async def _settle_pledge_intent(self, contribution: Contribution, outcome: ContributionStatus) -> None:
        """Credit or void the contribution's pledge fulfillment intent."""
        meta = contribution.meta or {}
        if meta.get("fulfillment") != FulfillmentIntent.PENDING.value:
            return

        if outcome != ContributionStatus.COMPLETED:
            contribution.meta = {**meta, "fulfillment": FulfillmentIntent.VOID.value}
            return

        try:
            pledge_id = uuid.UUID(meta["pledge_id"])
        except (KeyError, ValueError):
            logger.error(f"Invalid pledge_id on contribution {contribution.reference}")
            return

        result = await self.db.execute(
            select(Pledge).where(Pledge.id == pledge_id).with_for_update()
        )
        pledge = result.scalar_one_or_none()
        if not pledge:
            logger.error(f"Pledge {pledge_id} not found for contribution {contribution.reference}")
            return

        credit_pledge(pledge, Decimal(contribution.amount))
        contribution.meta = {**meta, "fulfillment": FulfillmentIntent.APPLIED.value}
        logger.info(
            f"Pledge {pledge.id} credited {contribution.amount}: "
            f"{pledge.fulfilled_amount}/{pledge.amount} ({pledge.status})"
        )

    async def handle_ipn(
        self,
        notification_type: Optional[str],
        merchant_reference: Optional[str],
        tracking_id: Optional[str],
        gateway_reference: Optional[str],
        payment_status: Optional[str],
    ) -> Optional[Contribution]:
        """
        Process an IPN notification. Ignores anything but type "IPN" with a
        merchant reference. Raises ReconciliationMismatch for unknown orders.
        """
        if notification_type != "IPN" or not merchant_reference:
            logger.info(f"Ignoring notification type={notification_type!r} ref={merchant_reference!r}")
            return None

        contribution = await self.find_contribution(tracking_id, merchant_reference)
        if not contribution:
            raise ReconciliationMismatch(
                f"No contribution for reference {merchant_reference} / tracking id {tracking_id}"
            )

        await self.apply_gateway_status(
            contribution,
            payment_status or "",
            tracking_id=tracking_id,
            gateway_reference=gateway_reference,
        )
        await self.db.commit()
        return contribution

    async def reconcile_from_gateway(
        self,
        tracking_id: Optional[str],
        merchant_reference: Optional[str] = None,
    ) -> Contribution:
        """
        Resolve the current status of an order for the callback/IPN pages.

        Queries Pesapal live; when that fails, the persisted status stands.
        """
        if not tracking_id and not merchant_reference:
            raise ReconciliationMismatch("Missing OrderTrackingId")

        contribution = await self.find_contribution(tracking_id, merchant_reference)
        if not contribution:
            raise ReconciliationMismatch(
                f"No contribution for tracking id {tracking_id} / reference {merchant_reference}"
            )

        query_id = tracking_id or contribution.gateway_tracking_id
        if query_id:
            try:
                details = await self.gateway.query_status(query_id)
            except GatewayQueryError as e:
                logger.warning(f"Live status query failed for {query_id}, using stored status: {e.message}")
            else:
                await self.apply_gateway_status(
                    contribution,
                    details.status,
                    tracking_id=query_id,
                    details={
                        "payment_method": details.method,
                        "payment_date": details.date,
                        "confirmation_code": details.confirmation_code,
                    },
                )
                await self.db.commit()

        return contribution

    async def cancel_from_redirect(self, tracking_id: Optional[str], simulated: bool = False) -> Optional[Contribution]:
        """
        Mark a contribution cancelled after the payer backed out of checkout.
        Simulated/test invocations change nothing.
        """
        if not tracking_id or simulated or tracking_id == SIMULATED_TRACKING_ID:
            return None

        contribution = await self.find_contribution(tracking_id)
        if not contribution:
            logger.warning(f"Cancel redirect for unknown tracking id {tracking_id}")
            return None

        await self.apply_gateway_status(contribution, "CANCELLED", tracking_id=tracking_id)
        await self.db.commit()
        return contribution

    async def cancel_order(self, contribution: Contribution) -> Contribution:
        """Cancel an unpaid order at the gateway and locally (admin action)."""
        await self.db.refresh(contribution, with_for_update=True)
        if contribution.is_terminal:
            raise ConflictError(f"Contribution is already {contribution.status}")
        if contribution.gateway_tracking_id:
            await self.gateway.cancel_order(contribution.gateway_tracking_id)
        await self.apply_gateway_status(contribution, "CANCELLED")
        await self.db.commit()
        return contribution


def credit_pledge(pledge: Pledge, amount: Decimal) -> Pledge:
    """
    Add a completed payment to a money pledge.

    fulfilled_amount is capped at the pledge amount; the pledge becomes
    fulfilled exactly when the running total reaches it.
    """
    target = Decimal(pledge.amount or 0)
    total = Decimal(pledge.fulfilled_amount or 0) + amount
    if total > target:
        logger.warning(f"Pledge {pledge.id} overpaid by {total - target}; capping at {target}")
        total = target

    pledge.fulfilled_amount = total
    if total >= target and pledge.status == PledgeStatus.PENDING.value:
        pledge.status = PledgeStatus.FULFILLED.value
        pledge.fulfilled_at = datetime.now(timezone.utc)
    return pledge
