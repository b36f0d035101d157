"""
Outbound request guard for server-side fetches (scraper, test proxy).
Rejects non-http(s) URLs and destinations inside private/internal networks.
"""
import asyncio
import ipaddress
import socket
from typing import NamedTuple, Optional, Tuple
from urllib.parse import urlparse, urlsplit, urlunsplit

from core.config import OUTBOUND_ALLOWED_HOSTS


class UnsafeURLError(ValueError):
    """Raised when a URL must not be fetched from the server."""


def _is_public_ip(ip) -> bool:
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


def _host_allowed(host: str, allowed_hosts: list[str]) -> bool:
    if not allowed_hosts:
        return True
    for allowed in allowed_hosts:
        if host == allowed or host.endswith("." + allowed):
            return True
    return False


def parse_http_url(url: str) -> Tuple[str, str]:
    """Return (scheme, host) for a syntactically valid http(s) URL."""
    try:
        parsed = urlparse((url or "").strip())
    except ValueError:
        raise UnsafeURLError("Invalid URL")
    scheme = (parsed.scheme or "").lower()
    if scheme not in ("http", "https"):
        raise UnsafeURLError("Only http and https URLs are allowed")
    host = (parsed.hostname or "").strip().lower().rstrip(".")
    if not host:
        raise UnsafeURLError("URL has no host")
    return scheme, host


class OutboundTarget(NamedTuple):
    """A vetted destination: the caller connects to ``address``, never re-resolving ``host``."""
    url: str
    host: str
    address: str

    def request_args(self) -> Tuple[str, dict, dict]:
        """Return (url, headers, extensions) that pin the connection to the vetted address.

        The original authority travels in the Host header and, for https, as the
        SNI / certificate hostname.
        """
        parts = urlsplit(self.url)
        authority = parts.netloc.rsplit("@", 1)[-1]
        ip_host = f"[{self.address}]" if ":" in self.address else self.address
        netloc = f"{ip_host}:{parts.port}" if parts.port else ip_host
        pinned = urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
        extensions = {"sni_hostname": self.host} if parts.scheme.lower() == "https" else {}
        return pinned, {"Host": authority}, extensions


async def _resolve(host: str) -> list:
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
    except socket.gaierror as ex:
        raise UnsafeURLError(f"Could not resolve host '{host}': {ex}")
    addresses = []
    for info in infos:
        try:
            ip = ipaddress.ip_address(info[4][0].split("%", 1)[0])
        except ValueError:
            raise UnsafeURLError("Destination is not allowed")
        if not _is_public_ip(ip):
            raise UnsafeURLError("Destination is not allowed")
        if str(ip) not in addresses:
            addresses.append(str(ip))
    if not addresses:
        raise UnsafeURLError(f"Could not resolve host '{host}'")
    return addresses


async def check_outbound_url(url: str, allowed_hosts: Optional[list[str]] = None) -> OutboundTarget:
    """Validate that ``url`` points at a public http(s) destination.

    Resolution runs on the event loop's resolver. Every address the host
    resolves to must be public; one internal address is enough to reject
    (DNS answers can be mixed). Raises UnsafeURLError otherwise.
    """
    allowed = OUTBOUND_ALLOWED_HOSTS if allowed_hosts is None else allowed_hosts
    _, host = parse_http_url(url)

    if host == "localhost" or host.endswith(".localhost"):
        raise UnsafeURLError("Destination is not allowed")
    if not _host_allowed(host, allowed):
        raise UnsafeURLError(f"Host '{host}' is not in the allow-list")

    try:
        literal = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        literal = None
    if literal is not None:
        if not _is_public_ip(literal):
            raise UnsafeURLError("Destination is not allowed")
        return OutboundTarget(url, host, str(literal))

    addresses = await _resolve(host)
    return OutboundTarget(url, host, addresses[0])
