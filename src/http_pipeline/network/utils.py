"""
Network utilities for the h11 transport.

URL target parsing, proxy and timeout option conversion, and SSL context
setup.
"""

import base64
import ssl
from typing import Any, Mapping, NamedTuple, Optional, Tuple, Union
from urllib.parse import unquote, urlsplit

from ..http_primitives import INFINITE


class Target(NamedTuple):
    """Where and how to send a request for a given url."""
    scheme: str
    host: str
    port: int
    path: str
    unix_path: Optional[str] = None

    @property
    def is_tls(self) -> bool:
        return self.scheme == "https"

    @property
    def authority(self) -> str:
        return f"{self.host}:{self.port}"


def parse_target(url: str) -> Target:
    """
    Parse url into a Target.

    ``http+unix`` urls carry the percent-encoded socket path as their
    host, e.g. ``http+unix://%2Fvar%2Frun%2Fdocker.sock/info``.

    Raises:
        ValueError: If the url has no host or an unsupported scheme
    """
    parsed = urlsplit(url)
    scheme = parsed.scheme.lower()

    path = parsed.path or "/"
    if parsed.query:
        path += "?" + parsed.query

    if scheme == "http+unix":
        return Target(scheme, "localhost", 0, path, unquote(parsed.netloc))

    if scheme not in ("http", "https"):
        raise ValueError(f"unsupported scheme {parsed.scheme!r}")

    host = parsed.hostname or ""
    if not host:
        raise ValueError("No hostname found in URL")

    port = parsed.port or (443 if scheme == "https" else 80)
    return Target(scheme, host, port, path)


def format_host_header(target: Target) -> str:
    """Host header value, omitting the default port for the scheme."""
    if target.unix_path is not None:
        return target.host
    if (target.scheme, target.port) in (("https", 443), ("http", 80)):
        return target.host
    return target.authority


def parse_proxy(proxy: Union[str, Tuple[str, int]]) -> Tuple[str, int]:
    """
    Return (host, port) for a proxy given as a url or a (host, port) tuple.

    Bare ``host:port`` strings are accepted; the port defaults to 8080.
    """
    if isinstance(proxy, tuple):
        host, port = proxy
        return str(host), int(port)

    if "://" not in proxy:
        proxy = "http://" + proxy
    parsed = urlsplit(proxy)
    if not parsed.hostname:
        raise ValueError(f"invalid proxy {proxy!r}")
    return parsed.hostname, parsed.port or 8080


def proxy_authorization(proxy_auth: Tuple[str, str]) -> str:
    """Basic Proxy-Authorization header value for (user, password)."""
    user, password = proxy_auth
    token = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def timeout_seconds(value: Any, default_ms: Optional[int]) -> Optional[float]:
    """
    Convert a millisecond timeout option to seconds.

    ``"infinite"`` means no timeout; None falls back to default_ms.
    """
    if value is None:
        value = default_ms
    if value is None or value == INFINITE:
        return None
    return int(value) / 1000.0


def create_ssl_context(tls_options: Optional[Union[ssl.SSLContext, Mapping[str, Any]]] = None) -> ssl.SSLContext:
    """
    Build the SSL context for an https connection.

    Args:
        tls_options: An SSLContext used as is, or a mapping with any of
            ``verify`` (bool, default True), ``cafile``, ``cert_file``,
            ``key_file``, ``alpn_protocols``

    Returns:
        Configured SSL context
    """
    if isinstance(tls_options, ssl.SSLContext):
        return tls_options

    tls_options = tls_options or {}
    context = ssl.create_default_context(cafile=tls_options.get("cafile"))

    if not tls_options.get("verify", True):
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    alpn_protocols = tls_options.get("alpn_protocols") or ["http/1.1"]
    context.set_alpn_protocols(list(alpn_protocols))

    # Disable legacy protocols
    context.minimum_version = ssl.TLSVersion.TLSv1_2

    cert_file = tls_options.get("cert_file")
    if cert_file:
        context.load_cert_chain(cert_file, tls_options.get("key_file"))

    return context
