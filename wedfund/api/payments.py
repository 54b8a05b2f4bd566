"""
Payment Proxy Endpoints.
Holds the Pesapal secret server-side and forwards auth, order submission
and IPN callbacks.
"""

import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.api.deps import get_gateway_client
from wedfund.database import get_db
from wedfund.errors import (
    AuthError,
    ConfigurationError,
    OrderSubmissionError,
    ReconciliationMismatch,
)
from wedfund.services.gateway_client import PesapalClient, OrderRequest, GatewayToken
from wedfund.services.payment_service import PaymentService

router = APIRouter()
logger = logging.getLogger(__name__)


class SubmitOrderRequest(BaseModel):
    """Request body for submit-order (camelCase, as sent by the site)."""
    amount: Decimal = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)
    firstName: str = ""
    lastName: str = ""
    email: str = ""
    phone: str
    reference: str = Field(min_length=1, max_length=100)
    description: str = ""


def server_error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": message})


async def request_token(gateway: PesapalClient) -> GatewayToken:
    """Shared by the auth and submit-order handlers."""
    gateway.config.require_auth()
    return await gateway.authenticate()


@router.post("/auth")
async def auth(gateway: PesapalClient = Depends(get_gateway_client)):
    """Exchange the server-held consumer key/secret for a bearer token."""
    try:
        token = await request_token(gateway)
    except (ConfigurationError, AuthError) as e:
        logger.error(f"Pesapal auth error: {e.message}")
        return server_error(e.message)

    logger.info("Pesapal auth successful")
    return {"token": token.token, "expiryDate": token.expiry_date}


@router.post("/submit-order")
async def submit_order(
    request: SubmitOrderRequest,
    gateway: PesapalClient = Depends(get_gateway_client),
):
    """Submit an order to Pesapal and return the hosted checkout URL."""
    try:
        gateway.config.require_order()
        token = await request_token(gateway)
    except ConfigurationError as e:
        logger.error(f"Pesapal order config error: {e.message}")
        return server_error(e.message)
    except AuthError as e:
        logger.error(f"Auth service error: {e.message}")
        return server_error("Failed to authenticate with Pesapal")

    order = OrderRequest(
        reference=request.reference,
        amount=request.amount,
        currency=request.currency,
        description=request.description,
        first_name=request.firstName,
        last_name=request.lastName,
        email=request.email,
        phone=request.phone,
    )

    try:
        submitted = await gateway.submit_order(order, token=token)
    except OrderSubmissionError as e:
        logger.error(f"Pesapal order submission error: {e.message}")
        return server_error(e.message)

    return {
        "order_tracking_id": submitted.order_tracking_id,
        "redirect_url": submitted.redirect_url,
    }


@router.post("/ipn")
async def ipn(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: PesapalClient = Depends(get_gateway_client),
):
    """
    Handle Pesapal IPN callbacks.

    Always answers 200 so Pesapal doesn't retry-storm; failures are logged.
    """
    try:
        payload = await request.json()
        if not isinstance(payload, dict):
            payload = {}

        logger.info(f"IPN received: {payload}")

        service = PaymentService(db, gateway)
        contribution = await service.handle_ipn(
            notification_type=payload.get("OrderNotificationType"),
            merchant_reference=payload.get("OrderMerchantReference"),
            tracking_id=payload.get("OrderTrackingId"),
            gateway_reference=payload.get("OrderReference"),
            payment_status=payload.get("PaymentStatus"),
        )
        if contribution:
            logger.info(f"IPN applied to contribution {contribution.id}: {contribution.status}")

    except ReconciliationMismatch as e:
        logger.warning(f"IPN reconciliation mismatch: {e.message}")
    except Exception as e:
        logger.error(f"IPN processing error: {e}", exc_info=True)
        await db.rollback()

    return {"status": "success"}


async def method_not_allowed():
    return JSONResponse(status_code=405, content={"error": "Method not allowed"})


for _path in ("/auth", "/submit-order", "/ipn"):
    router.add_api_route(
        _path,
        method_not_allowed,
        methods=["GET", "PUT", "PATCH", "DELETE"],
        include_in_schema=False,
    )
