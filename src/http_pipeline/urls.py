"""
URL helpers for http_pipeline.

Default url normalization and the query merge performed between the
url and params hooks and dispatch.
"""

from typing import Any, List, Mapping, Optional, Tuple
from urllib.parse import urlencode, urlsplit

from .http_primitives import Params

KNOWN_SCHEMES = ("http://", "https://", "http+unix://")


def default_process_url(url: str) -> str:
    """
    Prefix ``http://`` unless the url already carries a known scheme.

    The scheme check is case-insensitive; the url itself is returned
    unchanged.
    """
    if url[:12].lower().startswith(KNOWN_SCHEMES):
        return url
    return "http://" + url


def _param_pairs(params: Optional[Any]) -> List[Tuple[Any, Any]]:
    if params is None:
        return []
    if isinstance(params, Params):
        params = params.to_params()
    if isinstance(params, Mapping):
        return list(params.items())
    return [(key, value) for key, value in params]


def encode_query(params: Any) -> str:
    """
    Form-encode params, keeping their order and any repeated keys.

    Args:
        params: Mapping, sequence of (key, value) pairs, or Params

    Returns:
        Encoded query string without a leading ``?``
    """
    return urlencode([(str(key), str(value)) for key, value in _param_pairs(params)])


def merge_query(url: str, params: Optional[Any]) -> str:
    """
    Append params to url.

    Existing query pairs come first, then the new ones in the given order.
    Keys present on both sides are kept as duplicates.
    """
    pairs = _param_pairs(params)
    if not pairs:
        return url
    separator = "&" if "?" in url else "?"
    return url + separator + encode_query(pairs)


def url_scheme(url: str) -> str:
    """Return the lower-cased scheme of url, or an empty string."""
    return urlsplit(url).scheme.lower()
