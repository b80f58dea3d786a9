from __future__ import annotations

import enum
from typing import Any


class ForbiddenReason(str, enum.Enum):
    # purchase denials
    SELF_PURCHASE = "SelfPurchase"
    NOT_ACTIVE = "NotActive"
    NOT_PURCHASABLE_CATEGORY = "NotPurchasableCategory"
    INSUFFICIENT_BALANCE = "InsufficientBalance"

    # management denials
    NOT_MANAGER = "NotManager"
    NOT_VISIBLE = "NotVisible"
    NOT_SHOP_MEMBER = "NotShopMember"
    NOT_SHOP_OWNER = "NotShopOwner"
    OWNER_MEMBERSHIP = "OwnerMembership"
    NOT_ELEVATED = "NotElevated"


class MarketError(Exception):
    """
    Base of every error the core reports to callers.

    `code` is the error kind, `message` a human-readable reason and `reason`
    an optional sub-reason for diagnostics. None of these are fatal: the
    operation that raised left the store in its prior state.
    """

    code = "MarketError"
    status_code = 400

    def __init__(self, message: str, *, reason: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        details = dict(self.details)
        if self.reason:
            details["reason"] = self.reason
        return {"code": self.code, "message": self.message, "details": [details] if details else []}


class NotFound(MarketError):
    code = "NotFound"
    status_code = 404


class Forbidden(MarketError):
    code = "Forbidden"
    status_code = 403

    def __init__(self, reason: ForbiddenReason, message: str | None = None, **kw: Any):
        super().__init__(message or f"Operation not permitted ({reason.value})", reason=reason.value, **kw)
        self.forbidden_reason = reason


class PriceMismatch(MarketError):
    code = "PriceMismatch"
    status_code = 409


class AlreadySold(MarketError):
    code = "AlreadySold"
    status_code = 409


class InsufficientFunds(MarketError):
    code = "InsufficientFunds"
    status_code = 402


class InvalidTransition(MarketError):
    code = "InvalidTransition"
    status_code = 409


class ValidationError(MarketError):
    code = "ValidationError"
    status_code = 422
