"""
   业务层异常类型。
   校验失败走返回值（None / False / reason code），这里只放需要向上抛的错误。
"""

from typing import Optional


class PartnerHubError(Exception):
    """Base for all application errors."""


class DomainError(PartnerHubError, ValueError):
    """Invalid input to a pure domain computation (negative price, margin out of range)."""


class PersistenceError(PartnerHubError):
    """Partner store write failed; carries the shop being onboarded."""

    def __init__(self, shop: str, cause: Optional[BaseException] = None):
        self.shop = shop
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to store partner credentials for {shop}{detail}")


class PartnerLifecycleError(PartnerHubError):
    """Requested lifecycle transition is not allowed from the partner's current state."""


class PaginationError(PartnerHubError):
    """Page info extracted from a response is malformed."""
