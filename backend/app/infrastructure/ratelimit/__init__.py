"""
  Rate limit infrastructure utilities.
  调用方统一从这里导入：
     from app.infrastructure.ratelimit import RedisTokenBucketLimiter
"""
from .redis_token_bucket import RedisTokenBucketLimiter

__all__ = ["RedisTokenBucketLimiter"]
