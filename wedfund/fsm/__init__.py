"""Status vocabularies and transition rules."""

from wedfund.fsm.states import (
    ContributionStatus,
    GatewayPaymentStatus,
    PledgeStatus,
    PledgeType,
    FulfillmentIntent,
    AttendanceStatus,
    AuditAction,
    TERMINAL_STATUSES,
    map_gateway_status,
)

__all__ = [
    "ContributionStatus",
    "GatewayPaymentStatus",
    "PledgeStatus",
    "PledgeType",
    "FulfillmentIntent",
    "AttendanceStatus",
    "AuditAction",
    "TERMINAL_STATUSES",
    "map_gateway_status",
]
