"""
Guarded outbound fetching for reference URLs.

Only public https hosts are reachable. Hostnames are resolved and every
resulting address is checked, redirects are followed manually so each hop is
re-checked, and bodies are streamed against a byte cap.
"""

from __future__ import annotations

import asyncio
import ipaddress
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable

import httpx

from ...core.exceptions import ServiceError, UnsafeReferenceError
from ...core.logging import get_logger

logger = get_logger(__name__)

Resolver = Callable[[str], Awaitable[list[str]]]

LOCAL_HOSTNAMES = frozenset({"localhost", "127.0.0.1", "::1", "0.0.0.0"})


def is_blocked_address(address: str) -> bool:
    """True for loopback, private, link-local, CGNAT, reserved and other non-public addresses.

    Unparseable input counts as blocked.
    """
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return True
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return not ip.is_global or ip.is_multicast


async def system_resolver(hostname: str) -> list[str]:
    """Resolve a hostname to all of its addresses."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


async def assert_safe_remote(url: httpx.URL, resolver: Resolver = system_resolver) -> None:
    """Reject anything but a public https destination.

    Raises:
        UnsafeReferenceError: For non-https schemes, local or private hosts,
            and hosts that cannot be resolved.
    """
    if url.scheme != "https":
        raise UnsafeReferenceError(message="Only https:// URLs are allowed", url=str(url))

    hostname = (url.host or "").lower()
    if not hostname or hostname in LOCAL_HOSTNAMES or hostname.endswith(".local"):
        raise UnsafeReferenceError(message="Local and private hosts are not allowed", url=str(url))

    try:
        ipaddress.ip_address(hostname)
        is_literal = True
    except ValueError:
        is_literal = False
    if is_literal:
        if is_blocked_address(hostname):
            raise UnsafeReferenceError(
                message="Private network addresses are not allowed", url=str(url)
            )
        return

    try:
        addresses = await resolver(hostname)
    except (OSError, UnicodeError) as e:
        raise UnsafeReferenceError(
            message="Unable to resolve host safely. Please verify the URL is public and reachable.",
            url=str(url),
            cause=e,
        ) from e
    if not addresses:
        raise UnsafeReferenceError(message="Host did not resolve to any address", url=str(url))
    if any(is_blocked_address(address) for address in addresses):
        raise UnsafeReferenceError(
            message="Resolved host points to a private network address", url=str(url)
        )


@dataclass(frozen=True)
class FetchedDocument:
    final_url: str
    content_type: str
    body: bytes


async def _read_capped(response: httpx.Response, max_bytes: int) -> bytes:
    chunks: list[bytes] = []
    total = 0
    async for chunk in response.aiter_bytes():
        total += len(chunk)
        if total > max_bytes:
            raise ServiceError(
                message=f"Response exceeds {max_bytes} byte limit",
                service_name="ingestion",
                operation="fetch",
            )
        chunks.append(chunk)
    return b"".join(chunks)


async def fetch_with_limit(
    client: httpx.AsyncClient,
    url: httpx.URL,
    *,
    max_bytes: int,
    max_redirects: int,
    accept: str,
    resolver: Resolver = system_resolver,
) -> FetchedDocument:
    """GET a public URL, following at most ``max_redirects`` redirects.

    Raises:
        UnsafeReferenceError: If any hop fails the network guard.
        ServiceError: On HTTP errors, missing redirect targets, or oversize bodies.
    """
    current = url
    for _hop in range(max_redirects + 1):
        await assert_safe_remote(current, resolver)
        async with client.stream("GET", current, headers={"Accept": accept}) as response:
            if response.is_redirect:
                location = response.headers.get("location")
                if not location:
                    raise ServiceError(
                        message="Redirect without location",
                        service_name="ingestion",
                        operation="fetch",
                    )
                current = current.join(location)
                logger.debug("Following redirect", target=str(current))
                continue
            if response.status_code >= 400:
                raise ServiceError(
                    message=f"Failed to fetch URL ({response.status_code})",
                    service_name="ingestion",
                    operation="fetch",
                )
            body = await _read_capped(response, max_bytes)
            return FetchedDocument(
                final_url=str(current),
                content_type=response.headers.get("content-type", ""),
                body=body,
            )
    raise ServiceError(message="Too many redirects", service_name="ingestion", operation="fetch")
