"""
Result Post-Processing Plugins

Row transformations applied after a query has run, configured per query
type in the catalog (`plugins:` section). They run on both the single and
the merged execution path, after merged rows have been split per type.

Order of application:
1. normalize_urls       - "/blog/post/" and "https://site.com/blog/post" -> "/blog/post"
2. normalize_referrers  - full referrer URLs -> host; self-referrals -> "direct"
3. normalize_geo        - country codes upper-cased, blanks -> "Unknown"
4. merge_duplicates     - rows sharing a key after normalisation are summed
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from sitelens.query.registry import QueryConfig
from sitelens.query.types import Row

logger = logging.getLogger(__name__)

DIRECT_TRAFFIC = "direct"
UNKNOWN_LOCATION = "Unknown"


def apply_plugins(
    rows: List[Row],
    config: QueryConfig,
    website_domain: Optional[str] = None
) -> List[Row]:
    """
    Run the post-processing steps enabled on `config` over `rows`.

    Args:
        rows: Result rows of a single query type
        config: Query configuration declaring the plugins
        website_domain: The tenant's own domain, used to detect self-referrals

    Returns:
        New list of rows; input rows are not mutated
    """
    options = config.plugins
    key = options.key_field

    if options.normalize_urls:
        rows = _map_key(rows, key, normalize_url)

    if options.normalize_referrers:
        rows = _map_key(rows, key, lambda value: normalize_referrer(value, website_domain))

    if options.normalize_geo:
        rows = _map_key(rows, key, normalize_country)

    if options.merge_duplicates:
        rows = merge_duplicate_rows(rows, key, options.additive_fields)

    return rows


def _map_key(rows: List[Row], key: str, transform) -> List[Row]:
    mapped = []
    for row in rows:
        new_row = dict(row)
        if key in new_row:
            new_row[key] = transform(new_row[key])
        mapped.append(new_row)
    return mapped


# =============================================================================
# Transformations
# =============================================================================

def _strip_www(host: str) -> str:
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def _hostname(url: str) -> Optional[str]:
    try:
        return urlparse(url).hostname
    except ValueError:
        # malformed netloc, e.g. an unclosed IPv6 bracket
        return None


def normalize_url(value: Any) -> Any:
    """Reduce a page URL or path to a bare path without trailing slash."""
    if not isinstance(value, str) or not value:
        return value

    if "://" in value:
        try:
            path = urlparse(value).path
        except ValueError:
            return value
    else:
        path = value.split("?", 1)[0].split("#", 1)[0]
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def normalize_referrer(value: Any, website_domain: Optional[str] = None) -> Any:
    """Reduce a referrer URL to its host; empty and self-referrals become "direct"."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return DIRECT_TRAFFIC
    if not isinstance(value, str):
        return value

    candidate = value.strip()
    host = _hostname(candidate if "://" in candidate else f"//{candidate}")
    if not host:
        return candidate

    host = _strip_www(host)
    own_host = _hostname(website_domain) if website_domain and "://" in website_domain else website_domain
    if own_host:
        own = _strip_www(own_host)
        if host == own or host.endswith("." + own):
            return DIRECT_TRAFFIC
    return host


def normalize_country(value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        return UNKNOWN_LOCATION
    if isinstance(value, str) and len(value.strip()) == 2:
        return value.strip().upper()
    return value


def merge_duplicate_rows(
    rows: List[Row],
    key: str,
    additive_fields: Optional[List[str]] = None
) -> List[Row]:
    """
    Collapse rows sharing the same `key` value.

    Numeric columns listed in `additive_fields` are summed; with no list,
    every numeric column is. Other numeric columns, such as distinct visitor
    counts that cannot be added across rows, keep the largest value, which
    is a lower bound of the true distinct count. Non-numeric columns keep
    the value of the first row seen. Row order follows the first occurrence
    of each key.
    """
    merged: Dict[Any, Row] = {}
    for row in rows:
        row_key = row.get(key)
        existing = merged.get(row_key)
        if existing is None:
            merged[row_key] = dict(row)
            continue
        for column, value in row.items():
            if column == key:
                continue
            current = existing.get(column)
            if not (_is_number(value) and _is_number(current)):
                continue
            if additive_fields is None or column in additive_fields:
                existing[column] = current + value
            else:
                existing[column] = max(current, value)

    if len(merged) < len(rows):
        logger.debug(f"Merged {len(rows) - len(merged)} duplicate rows on '{key}'")
    return list(merged.values())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
