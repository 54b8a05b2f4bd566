"""
Status vocabularies for contributions, pledges and attendances.
"""

from enum import Enum


class ContributionStatus(str, Enum):
    """
    Lifecycle of a contribution.

    pending -> pending_payment -> completed | failed | cancelled
    """

    PENDING = "pending"
    PENDING_PAYMENT = "pending_payment"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    ContributionStatus.COMPLETED,
    ContributionStatus.FAILED,
    ContributionStatus.CANCELLED,
})


class GatewayPaymentStatus(str, Enum):
    """Payment status tokens reported by Pesapal (IPN and status query)."""

    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    INVALID = "INVALID"
    CANCELLED = "CANCELLED"
    REVERSED = "REVERSED"
    PENDING = "PENDING"


# Exact uppercase tokens only; anything else stays pending
GATEWAY_STATUS_MAP = {
    GatewayPaymentStatus.COMPLETED.value: ContributionStatus.COMPLETED,
    GatewayPaymentStatus.FAILED.value: ContributionStatus.FAILED,
    GatewayPaymentStatus.INVALID.value: ContributionStatus.FAILED,
    GatewayPaymentStatus.CANCELLED.value: ContributionStatus.CANCELLED,
}


def map_gateway_status(reported: str) -> ContributionStatus:
    """Translate a gateway status token into the local vocabulary."""
    return GATEWAY_STATUS_MAP.get(reported, ContributionStatus.PENDING)


class PledgeType(str, Enum):
    MONEY = "money"
    ITEM = "item"


class PledgeStatus(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class FulfillmentIntent(str, Enum):
    """State of a contribution's claim against a pledge (metadata.fulfillment)."""

    PENDING = "pending"
    APPLIED = "applied"
    VOID = "void"


class AttendanceStatus(str, Enum):
    REGISTERED = "registered"
    ATTENDED = "attended"
    CANCELLED = "cancelled"


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
