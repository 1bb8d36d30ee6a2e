"""
通用游标分页（cursor pagination）引擎
  - 与具体 schema 解耦：调用方提供 query 函数 + 两个提取函数（items / pageInfo）
  - 每页必须等上一页返回后才能拿到 cursor，所以单条流只能串行
  - pageSize 硬上限 250（Shopify Admin API 的上限）；maxPages 是唯一的兜底闸门
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Mapping, Optional, TypeVar

from app.core.errors import PaginationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 250

QueryFn = Callable[[str, Dict[str, Any]], Awaitable[R]]


@dataclass(frozen=True)
class PageInfo:
    has_next_page: bool
    end_cursor: Optional[str] = None

    @classmethod
    def from_graphql(cls, raw: Any) -> "PageInfo":
        """Build from a GraphQL ``pageInfo`` object; malformed shapes fail fast."""
        if not isinstance(raw, Mapping):
            raise PaginationError(f"pageInfo must be an object, got {type(raw).__name__}")
        has_next = raw.get("hasNextPage")
        if not isinstance(has_next, bool):
            raise PaginationError(f"pageInfo.hasNextPage must be a boolean, got {has_next!r}")
        cursor = raw.get("endCursor")
        if cursor is not None and not isinstance(cursor, str):
            raise PaginationError(f"pageInfo.endCursor must be a string, got {cursor!r}")
        return cls(has_next_page=has_next, end_cursor=cursor)


@dataclass
class PaginatedResult(Generic[T]):
    items: List[T] = field(default_factory=list)
    page_info: PageInfo = field(default_factory=lambda: PageInfo(False, None))


def _resolve_page_size(page_size: Optional[int]) -> int:
    if page_size is None:
        return DEFAULT_PAGE_SIZE
    page_size = int(page_size)
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")
    return min(page_size, MAX_PAGE_SIZE)


def _next_cursor(page_info: PageInfo) -> Optional[str]:
    if not isinstance(page_info, PageInfo):
        raise PaginationError(f"extract_page_info must return PageInfo, got {type(page_info).__name__}")
    if not page_info.has_next_page:
        return None
    if not page_info.end_cursor:
        # hasNextPage=True 却没有 cursor：继续请求只会从第一页重来
        raise PaginationError("pageInfo reports another page but no endCursor")
    return page_info.end_cursor


async def drain_pages(
    query_fn: QueryFn[R],
    query_doc: str,
    extract_items: Callable[[R], List[T]],
    extract_page_info: Callable[[R], PageInfo],
    variables: Optional[Mapping[str, Any]] = None,
    *,
    page_size: Optional[int] = DEFAULT_PAGE_SIZE,
    max_pages: Optional[int] = None,
) -> PaginatedResult[T]:
    """
    Drain a cursor-paginated collection and return all items in cursor order.

    Stops when the remote reports no further page or when ``max_pages`` pages
    have been fetched; a remote that claims ``hasNextPage`` forever is only
    bounded by ``max_pages``. ``page_info`` is the last page's: when the walk
    was cut short by ``max_pages`` it still reports ``has_next_page=True``,
    so callers can tell a truncated walk from the end of the collection.
    """
    size = _resolve_page_size(page_size)
    if max_pages is not None and max_pages < 1:
        raise ValueError(f"max_pages must be >= 1, got {max_pages}")

    base_vars = dict(variables or {})
    all_items: List[T] = []
    cursor: Optional[str] = None
    page_count = 0

    while True:
        response = await query_fn(query_doc, {**base_vars, "first": size, "after": cursor})
        items = extract_items(response)
        all_items.extend(items)
        page_info = extract_page_info(response)
        cursor = _next_cursor(page_info)
        page_count += 1

        logger.debug("pagination.page page=%s items=%s has_next=%s", page_count, len(items), cursor is not None)

        if cursor is None:
            break
        if max_pages is not None and page_count >= max_pages:
            logger.info("pagination.max_pages_reached pages=%s items=%s", page_count, len(all_items))
            break

    return PaginatedResult(items=all_items, page_info=page_info)


async def fetch_all_pages(
    query_fn: QueryFn[R],
    query_doc: str,
    extract_items: Callable[[R], List[T]],
    extract_page_info: Callable[[R], PageInfo],
    variables: Optional[Mapping[str, Any]] = None,
    *,
    page_size: Optional[int] = DEFAULT_PAGE_SIZE,
    max_pages: Optional[int] = None,
) -> List[T]:
    """Items only; use ``drain_pages`` when truncation by ``max_pages`` matters."""
    result = await drain_pages(
        query_fn, query_doc, extract_items, extract_page_info, variables,
        page_size=page_size, max_pages=max_pages,
    )
    return result.items


async def fetch_page(
    query_fn: QueryFn[R],
    query_doc: str,
    extract_items: Callable[[R], List[T]],
    extract_page_info: Callable[[R], PageInfo],
    variables: Optional[Mapping[str, Any]] = None,
    cursor: Optional[str] = None,
    page_size: Optional[int] = DEFAULT_PAGE_SIZE,
) -> PaginatedResult[T]:
    """单页版本：调用方自己持有 cursor（例如 UI 的“加载更多”）。"""
    size = _resolve_page_size(page_size)
    response = await query_fn(query_doc, {**dict(variables or {}), "first": size, "after": cursor})
    page_info = extract_page_info(response)
    if not isinstance(page_info, PageInfo):
        raise PaginationError(f"extract_page_info must return PageInfo, got {type(page_info).__name__}")
    return PaginatedResult(items=list(extract_items(response)), page_info=page_info)
