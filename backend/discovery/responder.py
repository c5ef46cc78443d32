"""
UDP discovery responder.

Answers broadcast probes from LocalBrowser clients with the addresses
this host can be reached on.
"""

import asyncio
import ipaddress
import logging
import socket
from typing import Callable

import psutil

from config import DISCOVERY_PORT
from discovery.models import DiscoveryResponse, is_discovery_request

logger = logging.getLogger(__name__)


def local_ipv4_addresses() -> list[str]:
    """Non-loopback IPv4 addresses of every interface, in enumeration order."""
    addresses: list[str] = []
    for interface, snics in psutil.net_if_addrs().items():
        for snic in snics:
            if snic.family != socket.AF_INET:
                continue
            try:
                ip = ipaddress.IPv4Address(snic.address)
            except ValueError:
                continue
            if ip.is_loopback or snic.address in addresses:
                continue
            addresses.append(snic.address)
    return addresses


class ResponderProtocol(asyncio.DatagramProtocol):
    """asyncio UDP protocol replying to discovery probes."""

    def __init__(self, responder: "DiscoveryResponder"):
        self.responder = responder
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        if not is_discovery_request(data):
            logger.debug(f"Ignoring non-discovery datagram from {addr}")
            return

        try:
            reply = DiscoveryResponse(addresses=self.responder.address_provider())
        except Exception as e:
            logger.warning(f"Could not enumerate local addresses: {e}")
            reply = DiscoveryResponse()

        logger.debug(f"Discovery probe from {addr[0]}:{addr[1]}, answering {reply.addresses}")
        self.transport.sendto(reply.encode(), addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"Discovery UDP error: {exc}")


class DiscoveryResponder:
    """Owns the UDP socket bound to the discovery port."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = DISCOVERY_PORT,
        address_provider: Callable[[], list[str]] = local_ipv4_addresses,
    ) -> None:
        self.host = host
        self.port = port
        self.address_provider = address_provider
        self._transport: asyncio.DatagramTransport | None = None

    @property
    def is_running(self) -> bool:
        return self._transport is not None

    @property
    def bound_port(self) -> int:
        """Actual port, useful when bound to port 0."""
        if self._transport is None:
            return 0
        return self._transport.get_extra_info("sockname")[1]

    async def start(self) -> None:
        """Bind the discovery port. Raises OSError if the port is unavailable."""
        loop = asyncio.get_running_loop()

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setblocking(False)
            sock.bind((self.host, self.port))
        except OSError:
            sock.close()
            raise

        transport, _ = await loop.create_datagram_endpoint(
            lambda: ResponderProtocol(self),
            sock=sock,
        )
        self._transport = transport
        logger.info(f"UDP discovery server started on port {self.bound_port}")

    async def stop(self) -> None:
        if self._transport:
            self._transport.close()
            self._transport = None
        logger.info("Discovery responder stopped")
