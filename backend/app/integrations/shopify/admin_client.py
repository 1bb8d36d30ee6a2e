"""Shopify Admin GraphQL 基础 Client：重试 / 限流 / 错误映射，partner 与 owner 店铺共用"""
from __future__ import annotations

import asyncio, time, logging, requests
from typing import Any, Dict, Iterator, List, Optional, Sequence, TypeVar
from requests import Timeout, RequestException

from app.core.config import settings
from app.core.logging import mask_token
from app.infrastructure.ratelimit import RedisTokenBucketLimiter
from app.integrations.shopify.errors import (
    ShopifyAuthError,
    ShopifyClientError,
    ShopifyPayloadError,
    ShopifyRateLimitError,
    ShopifyServerError,
)
from app.utils.backoff import calc_next_delay


logger = logging.getLogger(__name__)

T = TypeVar("T")

# nodes(ids:) 一次最多 250 个
NODES_BATCH_SIZE = 250


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    for i in range(0, len(items), size):
        yield list(items[i:i + size])


class AdminGraphQLClient:

    log_prefix = "shopify.graphql"

    def __init__(
        self,
        shop: str,
        access_token: str,
        *,
        api_version: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        backoff_ms: Optional[int] = None,
        limiter: Optional[RedisTokenBucketLimiter] = None,
        sleep=time.sleep,
    ) -> None:
        if not access_token:
            raise ShopifyAuthError(f"{shop} has no access token")
        self.shop = shop
        self._token = access_token
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.session = session or requests.Session()
        self.timeout = timeout or settings.SHOPIFY_HTTP_TIMEOUT
        self.max_retries = max(0, int(settings.SHOPIFY_HTTP_RETRIES if max_retries is None else max_retries))
        self.backoff_ms = max(50, int(backoff_ms or settings.SHOPIFY_HTTP_BACKOFF_MS))
        self.limiter = limiter
        self._sleep = sleep


    @property
    def endpoint(self) -> str:
        return f"https://{self.shop}/admin/api/{self.api_version}/graphql.json"


    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self._token,
            "User-Agent": f"PartnerSyncHub/{type(self).__name__} (+python)",
        }


    def _backoff(self, attempt: int) -> float:
        return calc_next_delay(attempt, self.backoff_ms)


    '''
    通用 GraphQL POST（带日志 + 重试）
        - 429：优先按 Retry-After 等待，否则指数退避
        - 5xx / 超时 / 连接异常 / 非 JSON：指数退避重试
        - 401/403 → ShopifyAuthError（token 失效：partner 由上层吊销，owner 由上层刷新）
        - 其它 4xx → ShopifyClientError，不重试
        - 顶层 GraphQL errors → ShopifyPayloadError，不重试
        返回完整响应 body（上层自己从 data[...] 取节点）
    '''
    def post_graphql(self, query: str, variables: Optional[dict] = None, *, op_name: str = "") -> dict:
        payload = {"query": query, "variables": variables or {}}
        # 不打印 query 全文，仅打 op_name / 变量键
        safe_vars_keys = list(payload["variables"].keys())
        max_retries = self.max_retries

        for attempt in range(max_retries + 1):
            if self.limiter is not None:
                self.limiter.acquire(sleep=self._sleep)

            start = time.perf_counter()
            try:
                resp = self.session.post(self.endpoint, headers=self._headers(), json=payload, timeout=self.timeout)
            except Timeout:
                latency_ms = int((time.perf_counter() - start) * 1000)
                logger.warning("%s.timeout shop=%s op=%s latency_ms=%s attempt=%s/%s",
                    self.log_prefix, self.shop, op_name, latency_ms, attempt, max_retries)
                if attempt == max_retries:
                    raise ShopifyClientError(f"timeout calling {self.shop} op={op_name}")
                self._sleep(self._backoff(attempt))
                continue
            except RequestException as e:
                latency_ms = int((time.perf_counter() - start) * 1000)
                logger.warning("%s.request_exception shop=%s op=%s latency_ms=%s attempt=%s/%s err=%s",
                    self.log_prefix, self.shop, op_name, latency_ms, attempt, max_retries, type(e).__name__)
                if attempt == max_retries:
                    raise ShopifyClientError(f"request to {self.shop} failed: {type(e).__name__}") from e
                self._sleep(self._backoff(attempt))
                continue

            latency_ms = int((time.perf_counter() - start) * 1000)
            status = resp.status_code

            if status == 429:
                retry_after = resp.headers.get("Retry-After")
                logger.warning("%s.429_throttled shop=%s op=%s attempt=%s/%s retry_after=%s",
                    self.log_prefix, self.shop, op_name, attempt, max_retries, retry_after)
                if attempt == max_retries:
                    raise ShopifyRateLimitError(f"{self.shop} still throttled after {max_retries} retries")
                try:
                    sleep_s = max(0.1, float(retry_after))
                except (TypeError, ValueError):
                    sleep_s = self._backoff(attempt)
                self._sleep(sleep_s)
                continue

            if status in (401, 403):
                logger.error("%s.auth_failed shop=%s op=%s status=%s token=%s",
                    self.log_prefix, self.shop, op_name, status, mask_token(self._token))
                raise ShopifyAuthError(f"{self.shop} rejected the access token (status={status})")

            if 400 <= status < 500:
                logger.warning("%s.http_error shop=%s op=%s status=%s", self.log_prefix, self.shop, op_name, status)
                raise ShopifyClientError(f"{self.shop} returned {status} for op={op_name}")

            if status >= 500:
                logger.warning("%s.server_error shop=%s op=%s status=%s latency_ms=%s attempt=%s/%s",
                    self.log_prefix, self.shop, op_name, status, latency_ms, attempt, max_retries)
                if attempt == max_retries:
                    raise ShopifyServerError(f"{self.shop} returned {status} after {max_retries} retries")
                self._sleep(self._backoff(attempt))
                continue

            try:
                data = resp.json()
            except ValueError:
                if attempt < max_retries:
                    logger.warning("%s.non_json shop=%s op=%s attempt=%s/%s",
                        self.log_prefix, self.shop, op_name, attempt, max_retries)
                    self._sleep(self._backoff(attempt))
                    continue
                raise ShopifyPayloadError(f"GraphQL response is not JSON: status={status}")

            if not isinstance(data, dict):
                raise ShopifyPayloadError(f"GraphQL response is not an object: {type(data).__name__}")

            # 顶层 errors 多为语法/权限问题，直接抛出不重试
            if data.get("errors"):
                logger.error("%s.gql_errors shop=%s op=%s errors=%s", self.log_prefix, self.shop, op_name, data["errors"])
                raise ShopifyPayloadError(f"GraphQL top-level errors: {data['errors']}")

            logger.info("%s.ok shop=%s op=%s latency_ms=%s attempt=%s vars=%s",
                self.log_prefix, self.shop, op_name, latency_ms, attempt, safe_vars_keys)
            return data

        # range(max_retries + 1) 每条路径要么 return 要么 raise
        raise ShopifyClientError(f"{self.shop} op={op_name} exhausted retries")


    def fetch_data(self, query: str, variables: Optional[dict] = None, *, op_name: str = "") -> Dict[str, Any]:
        body = self.post_graphql(query, variables, op_name=op_name)
        data = body.get("data")
        if not isinstance(data, dict):
            raise ShopifyPayloadError("GraphQL response has no data object")
        return data


    async def query(self, query_doc: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """分页引擎的 query_fn：阻塞请求放到线程里跑，只返回 data 对象。"""
        return await asyncio.to_thread(self.fetch_data, query_doc, variables, op_name="query")


    '''
    nodes(ids:) 批量查询：按 batch_size 分批串行请求
       - null 节点（id 已不存在）和类型不匹配的节点直接丢弃
       - 任何一批失败都向上抛，调用方按 partner 整体处理
    '''
    def fetch_nodes(self, query: str, ids: Sequence[str], *, op_name: str,
                    batch_size: int = NODES_BATCH_SIZE) -> List[Dict[str, Any]]:
        nodes: List[Dict[str, Any]] = []
        for batch in chunked(list(ids), max(1, min(batch_size, NODES_BATCH_SIZE))):
            data = self.fetch_data(query, {"ids": batch}, op_name=op_name)
            raw = data.get("nodes")
            if not isinstance(raw, list):
                raise ShopifyPayloadError(f"{op_name}: response has no nodes list")
            nodes.extend(n for n in raw if isinstance(n, dict) and n.get("id"))
        return nodes
