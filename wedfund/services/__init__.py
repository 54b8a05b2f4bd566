"""Services package."""

from wedfund.redis import TokenCache
from wedfund.services.gateway_client import PesapalClient
from wedfund.services.guest_service import GuestService, normalize_phone
from wedfund.services.payment_service import PaymentService
from wedfund.services.pledge_service import PledgeService
from wedfund.services.meeting_service import MeetingService
from wedfund.services.message_service import MessageService
from wedfund.services.site_service import SiteService
from wedfund.services.audit_service import AuditService

__all__ = [
    "PesapalClient",
    "TokenCache",
    "GuestService",
    "normalize_phone",
    "PaymentService",
    "PledgeService",
    "MeetingService",
    "MessageService",
    "SiteService",
    "AuditService",
]
