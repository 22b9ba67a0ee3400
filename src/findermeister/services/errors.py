"""Exceptions raised by the service layer.

Each carries the HTTP status a route should answer with, so handlers can
translate them with a single ``except MarketplaceError``.
"""


class MarketplaceError(Exception):
    """Base class for expected business-rule failures."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationFailedError(MarketplaceError):
    status_code = 400


class ConflictError(MarketplaceError):
    """Request clashes with current state (duplicate, already accepted...)."""

    status_code = 400


class InsufficientTokensError(MarketplaceError):
    status_code = 400

    def __init__(self, message: str = "Insufficient findertokens to submit proposal"):
        super().__init__(message)


class InvalidOffenseError(MarketplaceError):
    status_code = 400

    def __init__(self, offense_type: str, role: str):
        self.offense_type = offense_type
        self.role = role
        super().__init__(f'Invalid offense type "{offense_type}" for role "{role}"')


class PermissionDeniedError(MarketplaceError):
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFoundError(MarketplaceError):
    status_code = 404
