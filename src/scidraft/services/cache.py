"""Template search with a process-local TTL cache.

The public template catalog changes rarely and is read on every visit to
the template picker, so search results are cached per (query, year, page,
page size) for a short time. The cache lives in the process: each app
instance keeps its own copy and entries may be stale for up to the TTL.
"""

import threading
from typing import Dict, List, Optional, Tuple

from cachetools import TTLCache
from sqlalchemy import or_
from sqlalchemy.orm import Session
from loguru import logger

from ..config import get_config
from ..database import AdminManualTemplate


MAX_CACHE_SIZE = 512

_cache: Optional[TTLCache] = None
_cache_lock = threading.Lock()


def get_template_cache() -> TTLCache:
    """Get or create the template search cache."""
    global _cache

    if _cache is None:
        ttl = get_config().sd_template_cache_ttl_seconds
        _cache = TTLCache(maxsize=MAX_CACHE_SIZE, ttl=ttl)
        logger.info(f"Template cache size: {MAX_CACHE_SIZE} items, TTL: {ttl}s")

    return _cache


def clear_template_cache() -> None:
    """Drop all cached template searches."""
    with _cache_lock:
        get_template_cache().clear()


def build_cache_key(q: Optional[str], year: Optional[int], page: int, page_size: int) -> tuple:
    """
    Build a cache key for a template search.

    The query is trimmed and lowercased since matching is case-insensitive.
    """
    return ((q or "").strip().lower(), year, page, page_size)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def query_templates(
    db: Session,
    q: Optional[str],
    year: Optional[int],
    page: int,
    page_size: int,
) -> Tuple[List[Dict], int]:
    """
    Search admin manual templates without caching.

    Args:
        db: Database session
        q: Case-insensitive text matched against title, unit name and unit code
        year: Exact year filter
        page: 1-based page number
        page_size: Rows per page

    Returns:
        (rows as dicts, total matching rows)
    """
    query = db.query(AdminManualTemplate)

    term = (q or "").strip()
    if term:
        pattern = f"%{_escape_like(term)}%"
        query = query.filter(
            or_(
                AdminManualTemplate.practical_title.ilike(pattern, escape="\\"),
                AdminManualTemplate.unit_name.ilike(pattern, escape="\\"),
                AdminManualTemplate.unit_code.ilike(pattern, escape="\\"),
            )
        )

    if year is not None:
        query = query.filter(AdminManualTemplate.year == year)

    total = query.count()

    rows = (
        query.order_by(AdminManualTemplate.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    return [row.to_dict(exclude=("practical_content",)) for row in rows], total


def search_templates(
    db: Session,
    q: Optional[str] = None,
    year: Optional[int] = None,
    page: int = 1,
    page_size: int = 12,
) -> Tuple[List[Dict], int]:
    """Cached wrapper around query_templates."""
    key = build_cache_key(q, year, page, page_size)

    with _cache_lock:
        cached = get_template_cache().get(key)
    if cached is not None:
        logger.debug(f"Template search cache hit: {key}")
        return cached

    result = query_templates(db, q, year, page, page_size)

    with _cache_lock:
        get_template_cache()[key] = result

    return result
