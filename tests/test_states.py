"""
Tests for status vocabularies and gateway status mapping.
"""

import pytest

from wedfund.fsm.states import (
    ContributionStatus,
    GatewayPaymentStatus,
    TERMINAL_STATUSES,
    map_gateway_status,
)


@pytest.mark.parametrize("reported,expected", [
    ("COMPLETED", ContributionStatus.COMPLETED),
    ("FAILED", ContributionStatus.FAILED),
    ("INVALID", ContributionStatus.FAILED),
    ("CANCELLED", ContributionStatus.CANCELLED),
])
def test_known_gateway_statuses(reported, expected):
    assert map_gateway_status(reported) == expected


@pytest.mark.parametrize("reported", [
    "PENDING", "REVERSED", "completed", "Completed", " COMPLETED", "", "SOMETHING_NEW",
])
def test_everything_else_maps_to_pending(reported):
    assert map_gateway_status(reported) == ContributionStatus.PENDING


def test_mapping_is_total_over_gateway_vocabulary():
    for status in GatewayPaymentStatus:
        assert isinstance(map_gateway_status(status.value), ContributionStatus)


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {
        ContributionStatus.COMPLETED,
        ContributionStatus.FAILED,
        ContributionStatus.CANCELLED,
    }
    assert not ContributionStatus.PENDING.is_terminal
    assert not ContributionStatus.PENDING_PAYMENT.is_terminal
    assert ContributionStatus.CANCELLED.is_terminal
