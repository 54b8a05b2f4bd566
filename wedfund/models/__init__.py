"""Models package for database models."""

from wedfund.models.guest import Guest
from wedfund.models.contribution import Contribution
from wedfund.models.pledge import Pledge
from wedfund.models.meeting import Meeting, Attendance
from wedfund.models.guest_message import GuestMessage
from wedfund.models.gallery import GalleryItem
from wedfund.models.site_setting import SiteSetting
from wedfund.models.audit_log import AuditLog

__all__ = [
    "Guest",
    "Contribution",
    "Pledge",
    "Meeting",
    "Attendance",
    "GuestMessage",
    "GalleryItem",
    "SiteSetting",
    "AuditLog",
]
