"""Query-string mirroring of the filter state.

A shared link reproduces the same filtered view. Encoding is plain key/value:

    ?mode=blood&q=cardio&types=hospital,pharmacy&open=1

Only non-default values are written. Decoding is total: unknown modes,
unknown types and malformed flags fall back to defaults instead of raising.
"""

import logging
from collections.abc import Mapping

from cityhealth_map.constants import FilterConfig, MapMode, ProviderType
from cityhealth_map.core.filter_pipeline import ProviderFilters

logger = logging.getLogger(__name__)


def encode_filters(filters: ProviderFilters) -> dict[str, str]:
    """Encode filters into query parameters.

    Types are sorted so the same filter state always yields the same link.
    """
    params = {FilterConfig.KEY_MODE: filters.mode}
    query = filters.query.strip()
    if query:
        params[FilterConfig.KEY_QUERY] = query
    if filters.types:
        params[FilterConfig.KEY_TYPES] = FilterConfig.TYPES_SEPARATOR.join(sorted(filters.types))
    if filters.open_now:
        params[FilterConfig.KEY_OPEN_NOW] = FilterConfig.TRUE_VALUE
    return params


def decode_filters(params: Mapping[str, str | list[str]], default_mode: str = MapMode.PROVIDERS) -> ProviderFilters:
    """Decode query parameters into filters.

    Args:
        params: Query parameters (values may be strings or lists of strings)
        default_mode: Mode used when the link carries none or an unknown one

    Returns:
        ProviderFilters reproducing the encoded view.
    """
    mode = _first(params.get(FilterConfig.KEY_MODE)) or default_mode
    if not MapMode.is_valid(mode):
        logger.warning(f"Ignoring unknown map mode in link: {mode!r}")
        mode = default_mode

    query = _first(params.get(FilterConfig.KEY_QUERY)) or ""

    types: set[str] = set()
    raw_types = _first(params.get(FilterConfig.KEY_TYPES)) or ""
    for token in raw_types.split(FilterConfig.TYPES_SEPARATOR):
        token = token.strip()
        if not token:
            continue
        if ProviderType.is_valid(token):
            types.add(token)
        else:
            logger.warning(f"Ignoring unknown provider type in link: {token!r}")

    open_now = (_first(params.get(FilterConfig.KEY_OPEN_NOW)) or "").lower() in (FilterConfig.TRUE_VALUE, "true")

    return ProviderFilters(mode=mode, query=query, types=frozenset(types), open_now=open_now)


def _first(value: str | list[str] | None) -> str | None:
    """Streamlit returns str, urllib.parse_qs returns lists."""
    if isinstance(value, list):
        return value[0] if value else None
    return value
