# Overview: Error taxonomy shared by services and routes.

"""
Rewards error taxonomy.

Every error raised by the service layer carries an HTTP status and a short
machine-readable code so routes can turn it into a response body without
knowing which service raised it:

    {"message": str(err), "error": err.code, **err.details}

NotifierFailure is the exception to the rule: it is raised and caught
inside the notification layer and never reaches a route.
"""

from __future__ import annotations


class RewardsError(Exception):
    """Base for business-rule failures."""
    status_code = 500
    code = "RewardsError"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"message": str(self), "error": self.code}
        body.update(self.details)
        return body


class InvalidInput(RewardsError):
    """400-level input problem."""
    status_code = 400
    code = "InvalidInput"


class InvalidAmount(InvalidInput):
    code = "InvalidAmount"


class InvalidConfiguration(InvalidInput):
    code = "InvalidConfiguration"


class NotFound(RewardsError):
    status_code = 404
    code = "NotFound"


class Inactive(RewardsError):
    """Coupon or campaign is switched off or outside its window."""
    status_code = 409
    code = "Inactive"


class LimitExceeded(RewardsError):
    status_code = 409
    code = "LimitExceeded"


class DuplicateRedemption(RewardsError):
    """The same (code, referred phone) pair was already awarded."""
    status_code = 409
    code = "DuplicateRedemption"


class DuplicateCustomer(RewardsError):
    """Another customer in the organization already has this phone number."""
    status_code = 409
    code = "DuplicateCustomer"


class InsufficientPoints(RewardsError):
    status_code = 409
    code = "InsufficientPoints"

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient points: required {required}, available {available}",
            details={"required": required, "available": available},
        )


class InvalidTransition(RewardsError):
    """A terminal document was asked to change state again."""
    status_code = 409
    code = "InvalidTransition"


class Contention(RewardsError):
    """Row lock / optimistic retry budget exhausted. Safe to try again."""
    status_code = 503
    code = "Contention"


class GenerationExhausted(RewardsError):
    status_code = 503
    code = "GenerationExhausted"


class NotifierFailure(RewardsError):
    code = "NotifierFailure"
