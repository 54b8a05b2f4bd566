"""
Public Site Endpoints.
Contributions, pledges, guestbook, meetings and landing-page metadata.
"""

import uuid
import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from wedfund.api.deps import error_response, get_payment_service
from wedfund.database import get_db
from wedfund.errors import WeddingFundError
from wedfund.models.pledge import Pledge
from wedfund.services.meeting_service import MeetingService
from wedfund.services.message_service import MessageService
from wedfund.services.payment_service import PaymentService, InitiatedPayment
from wedfund.services.pledge_service import PledgeService
from wedfund.services.site_service import SiteService, serialize_meeting

router = APIRouter()
logger = logging.getLogger(__name__)


class ContributionRequest(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    phone: str = Field(min_length=10, max_length=20)
    email: Optional[EmailStr] = None
    amount: Decimal = Field(gt=0)
    message: Optional[str] = Field(None, max_length=2000)


class PledgeRequest(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    phone: str = Field(min_length=10, max_length=20)
    email: Optional[EmailStr] = None
    type: str
    amount: Optional[Decimal] = None
    item_description: Optional[str] = None
    quantity: Optional[int] = None
    notes: Optional[str] = None


class FulfillPledgeRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    name: Optional[str] = None
    email: Optional[EmailStr] = None


class GuestbookRequest(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    phone: str = Field(min_length=10, max_length=20)
    message: str = Field(min_length=1)


class RegistrationRequest(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    phone: str = Field(min_length=10, max_length=20)
    email: Optional[EmailStr] = None


def serialize_pledge(pledge: Pledge) -> dict:
    return {
        "id": str(pledge.id),
        "type": pledge.type,
        "amount": float(pledge.amount) if pledge.amount is not None else None,
        "fulfilled_amount": float(pledge.fulfilled_amount or 0),
        "item_description": pledge.item_description,
        "quantity": pledge.quantity,
        "status": pledge.status,
        "fulfilled_at": pledge.fulfilled_at.isoformat() if pledge.fulfilled_at else None,
        "created_at": pledge.created_at.isoformat() if pledge.created_at else None,
    }


def serialize_payment(payment: InitiatedPayment) -> dict:
    return {
        "status": "success",
        "contribution_id": str(payment.contribution_id),
        "reference": payment.reference,
        "order_tracking_id": payment.order_tracking_id,
        "redirect_url": payment.redirect_url,
    }


# --- Contributions ---

@router.post("/contributions")
async def create_contribution(
    request: ContributionRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """
    Record a contribution and start payment.

    The response carries the redirect URL of Pesapal's hosted checkout.
    """
    try:
        payment = await service.initiate_contribution(
            name=request.name,
            phone=request.phone,
            amount=request.amount,
            email=request.email,
            message=request.message,
        )
    except WeddingFundError as e:
        logger.error(f"Contribution error: {e.message}")
        return error_response(e)

    return serialize_payment(payment)


@router.get("/contributions/summary")
async def contribution_summary(db: AsyncSession = Depends(get_db)):
    """Amount raised so far."""
    return await SiteService(db).contribution_summary()


# --- Pledges ---

@router.post("/pledges")
async def create_pledge(
    request: PledgeRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        pledge = await PledgeService(db).create_pledge(
            name=request.name,
            phone=request.phone,
            pledge_type=request.type,
            amount=request.amount,
            item_description=request.item_description,
            quantity=request.quantity,
            email=request.email,
            notes=request.notes,
        )
    except WeddingFundError as e:
        return error_response(e)

    return {"status": "success", "pledge": serialize_pledge(pledge)}


@router.get("/pledges")
async def list_pledges(
    phone: str = Query(..., min_length=10),
    db: AsyncSession = Depends(get_db),
):
    """Pledges made from one phone number."""
    try:
        pledges = await PledgeService(db).list_pledges(phone=phone)
    except WeddingFundError as e:
        return error_response(e)
    return {"status": "success", "items": [serialize_pledge(p) for p in pledges]}


@router.post("/pledges/{pledge_id}/fulfill")
async def fulfill_pledge(
    pledge_id: uuid.UUID,
    request: FulfillPledgeRequest,
    service: PaymentService = Depends(get_payment_service),
):
    """Start a payment against a money pledge."""
    try:
        payment = await service.initiate_pledge_fulfillment(
            pledge_id,
            request.amount,
            name=request.name,
            email=request.email,
        )
    except WeddingFundError as e:
        logger.error(f"Pledge fulfillment error: {e.message}")
        return error_response(e)

    return serialize_payment(payment)


# --- Guestbook ---

@router.post("/messages")
async def post_message(
    request: GuestbookRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        entry = await MessageService(db).post_message(request.name, request.phone, request.message)
    except WeddingFundError as e:
        return error_response(e)

    return {
        "status": "success",
        "id": str(entry.id),
        "message": "Thank you! Your message will appear once approved.",
    }


@router.get("/messages")
async def list_messages(db: AsyncSession = Depends(get_db)):
    rows = await MessageService(db).list_approved()
    return {
        "status": "success",
        "items": [
            {
                "id": str(entry.id),
                "name": name,
                "message": entry.message,
                "created_at": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry, name in rows
        ],
    }


# --- Meetings ---

@router.get("/meetings")
async def list_meetings(db: AsyncSession = Depends(get_db)):
    meetings = await MeetingService(db).list_active()
    return {"status": "success", "items": [serialize_meeting(m) for m in meetings]}


@router.post("/meetings/{meeting_id}/register")
async def register_for_meeting(
    meeting_id: uuid.UUID,
    request: RegistrationRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        attendance = await MeetingService(db).register(
            meeting_id, request.name, request.phone, email=request.email
        )
    except WeddingFundError as e:
        return error_response(e)

    return {
        "status": "success",
        "attendance_id": str(attendance.id),
        "attendance_status": attendance.status,
    }


# --- Site ---

@router.get("/site/metadata")
async def site_metadata(db: AsyncSession = Depends(get_db)):
    return await SiteService(db).metadata()
