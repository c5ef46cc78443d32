"""
UDP discovery client.

Broadcasts a probe and waits briefly for a LocalBrowser server to answer.
A missing server is an ordinary outcome (``None``), not an error.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Union

from config import BROADCAST_ADDRESS, DISCOVERY_PORT, DISCOVERY_REQUEST, DISCOVERY_TIMEOUT
from discovery.models import AddressSelection, DiscoveryResponse

logger = logging.getLogger(__name__)

# Receives the candidate addresses, returns the chosen one (or None to cancel)
AddressSelector = Callable[[list[str]], Union[str, None, Awaitable[str | None]]]


class DiscoveryClientProtocol(asyncio.DatagramProtocol):
    """Resolves ``found`` with the candidate list of the first valid reply."""

    def __init__(self, found: asyncio.Future):
        self.found = found

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        if self.found.done():
            return
        response = DiscoveryResponse.parse(data)
        if response is None:
            logger.debug(f"Ignoring unexpected datagram from {addr}")
            return
        # Older servers answer with the bare marker; fall back to the sender
        self.found.set_result(response.addresses or [addr[0]])

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"Discovery UDP error: {exc}")


async def _choose(candidates: list[str], select: AddressSelector | None) -> str | None:
    if len(candidates) == 1 or select is None:
        return candidates[0]

    chosen = select(candidates)
    if inspect.isawaitable(chosen):
        chosen = await chosen
    if chosen is None:
        logger.info("Server address selection cancelled")
        return None
    if chosen not in candidates:
        logger.warning(f"Selected address {chosen} is not one of {candidates}")
        return None
    return chosen


async def discover(
    select: AddressSelector | None = None,
    timeout: float = DISCOVERY_TIMEOUT,
    target: tuple[str, int] = (BROADCAST_ADDRESS, DISCOVERY_PORT),
) -> AddressSelection | None:
    """
    Locate a LocalBrowser server on the local network.

    Args:
        select: called with every candidate when the server reports more
            than one address; may be sync or async. Without it the first
            candidate wins.
        timeout: seconds to wait for a reply.
        target: where the probe is sent, the broadcast address by default.

    Returns:
        The chosen address and all candidates, or None when nothing
        answered in time or the selection was cancelled.
    """
    loop = asyncio.get_running_loop()
    found: asyncio.Future[list[str]] = loop.create_future()

    transport, _ = await loop.create_datagram_endpoint(
        lambda: DiscoveryClientProtocol(found),
        local_addr=("0.0.0.0", 0),
        allow_broadcast=True,
    )
    try:
        try:
            transport.sendto(DISCOVERY_REQUEST.encode("utf-8"), target)
            logger.debug(f"Discovery probe sent to {target[0]}:{target[1]}")
        except OSError as e:
            # The timeout below still decides the outcome
            logger.error(f"Discovery broadcast failed: {e}")

        try:
            candidates = await asyncio.wait_for(found, timeout)
        except asyncio.TimeoutError:
            logger.info(f"No LocalBrowser server answered within {timeout:.1f}s")
            return None
    finally:
        transport.close()

    logger.info(f"LocalBrowser server found: {', '.join(candidates)}")
    address = await _choose(candidates, select)
    if address is None:
        return None
    return AddressSelection(address=address, candidates=candidates)
