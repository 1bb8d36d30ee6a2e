"""
   Partner 店铺 Admin API 调用的异常类型。
   将 HTTP/限流/服务端/载荷等错误与业务层解耦，便于上层统一处理。
"""

class ShopifyError(Exception):
    """Base for all partner Admin API errors."""

class ShopifyAuthError(ShopifyError):
    """401/403, or the partner has no usable access token."""

class ShopifyClientError(ShopifyError):
    """Network/client-side errors after retries, or a non-retryable 4xx."""

class ShopifyServerError(ShopifyError):
    """Server-side (5xx) errors after retries."""

class ShopifyRateLimitError(ShopifyError):
    """429 Too Many Requests not resolved after retries."""

class ShopifyPayloadError(ShopifyError):
    """Unexpected/invalid response payload shape, or top-level GraphQL errors."""
