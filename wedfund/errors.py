"""Domain exceptions raised by services and translated at the API boundary."""

from typing import Optional


class WeddingFundError(Exception):
    """Base class for all application errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(WeddingFundError):
    """A required environment value is missing."""


class AuthError(WeddingFundError):
    """Gateway rejected the credentials or could not be reached."""

    status_code = 502


class OrderSubmissionError(WeddingFundError):
    """Gateway rejected an order or the request never completed."""

    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body

    @property
    def is_service_unavailable(self) -> bool:
        """Network-class failure (no response, or 404 from the proxy/gateway)."""
        return self.status is None or self.status == 404


class GatewayQueryError(WeddingFundError):
    """Live status lookup against the gateway failed."""

    status_code = 502


class PaymentInitiationError(WeddingFundError):
    """
    Contribution was recorded but the payment could not be started.

    `message` is safe to show to the end user.
    """

    def __init__(self, message: str, service_unavailable: bool = False, contribution_id: Optional[str] = None):
        super().__init__(message)
        self.service_unavailable = service_unavailable
        self.contribution_id = contribution_id
        self.status_code = 503 if service_unavailable else 502


class ReconciliationMismatch(WeddingFundError):
    """A callback or IPN references no known contribution."""

    status_code = 404


class ValidationError(WeddingFundError):
    status_code = 400


class PledgeError(WeddingFundError):
    status_code = 400


class NotFoundError(WeddingFundError):
    status_code = 404


class ConflictError(WeddingFundError):
    status_code = 409
