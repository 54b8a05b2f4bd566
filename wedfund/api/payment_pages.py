"""
Payment Redirect Pages.
Where Pesapal sends the payer's browser after checkout (callback, cancel),
plus a page-style IPN endpoint for gateways configured with a page URL.
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from wedfund.api.deps import get_payment_service
from wedfund.config import settings
from wedfund.errors import ReconciliationMismatch
from wedfund.fsm.states import ContributionStatus
from wedfund.services.payment_service import PaymentService

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

logger = logging.getLogger(__name__)
router = APIRouter()

SUCCESS = "success"
IN_PROGRESS = "in-progress"
FAILURE = "failure"


def page_state(status: str) -> str:
    """Which of the three callback states a contribution status renders as."""
    if status == ContributionStatus.COMPLETED.value:
        return SUCCESS
    if status in (ContributionStatus.PENDING.value, ContributionStatus.PENDING_PAYMENT.value):
        return IN_PROGRESS
    return FAILURE


def _is_truthy(value: Optional[str]) -> bool:
    return (value or "").lower() in ("1", "true", "yes")


@router.get("/callback", response_class=HTMLResponse)
async def payment_callback(
    request: Request,
    order_tracking_id: Optional[str] = Query(None, alias="OrderTrackingId"),
    merchant_reference: Optional[str] = Query(None, alias="OrderMerchantReference"),
    service: PaymentService = Depends(get_payment_service),
):
    """Show the outcome of a checkout after Pesapal redirects back."""
    contribution = None
    try:
        contribution = await service.reconcile_from_gateway(order_tracking_id, merchant_reference)
        state = page_state(contribution.status)
    except ReconciliationMismatch as e:
        logger.warning(f"Callback reconciliation failed: {e.message}")
        state = FAILURE

    return templates.TemplateResponse(
        request,
        "payment_callback.html",
        {
            "state": state,
            "contribution": contribution,
            "home_url": settings.site_url,
        },
    )


@router.get("/cancel", response_class=HTMLResponse)
async def payment_cancel(
    request: Request,
    order_tracking_id: Optional[str] = Query(None, alias="OrderTrackingId"),
    simulated: Optional[str] = Query(None),
    service: PaymentService = Depends(get_payment_service),
):
    """Record an explicit cancellation and confirm it to the payer."""
    contribution = await service.cancel_from_redirect(order_tracking_id, simulated=_is_truthy(simulated))
    if contribution:
        logger.info(f"Contribution {contribution.reference} cancelled by payer ({contribution.status})")

    return templates.TemplateResponse(
        request,
        "payment_cancel.html",
        {
            "home_url": settings.site_url,
            "retry_url": f"{settings.site_url.rstrip('/')}/#contribute",
        },
    )


@router.get("/ipn", response_class=HTMLResponse)
async def payment_ipn_page(
    request: Request,
    order_tracking_id: Optional[str] = Query(None, alias="OrderTrackingId"),
    merchant_reference: Optional[str] = Query(None, alias="OrderMerchantReference"),
    service: PaymentService = Depends(get_payment_service),
):
    """Page-style IPN target. Same reconciliation as the callback, no UI state."""
    try:
        contribution = await service.reconcile_from_gateway(order_tracking_id, merchant_reference)
        logger.info(f"IPN page: contribution {contribution.reference} is {contribution.status}")
    except ReconciliationMismatch as e:
        logger.error(f"IPN page reconciliation failed: {e.message}")

    return templates.TemplateResponse(request, "payment_ipn.html", {})
