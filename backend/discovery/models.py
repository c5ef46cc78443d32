"""Pydantic models for the UDP discovery protocol."""

import ipaddress

from pydantic import BaseModel

from config import API_PORT, DISCOVERY_REQUEST, DISCOVERY_RESPONSE


def is_discovery_request(data: bytes) -> bool:
    """Probes must match the request marker exactly."""
    return data == DISCOVERY_REQUEST.encode("utf-8")


class DiscoveryResponse(BaseModel):
    """
    Reply datagram: the response marker, optionally followed by
    ``:`` and the comma-separated IPv4 addresses of the server.
    """
    addresses: list[str] = []

    def encode(self) -> bytes:
        if not self.addresses:
            return DISCOVERY_RESPONSE.encode("utf-8")
        return f"{DISCOVERY_RESPONSE}:{','.join(self.addresses)}".encode("utf-8")

    @classmethod
    def parse(cls, data: bytes) -> "DiscoveryResponse | None":
        """Decode a reply; None when the payload is not a discovery response."""
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            return None
        if not text.startswith(DISCOVERY_RESPONSE):
            return None

        rest = text[len(DISCOVERY_RESPONSE):]
        if not rest:
            return cls()
        if not rest.startswith(":"):
            return None

        addresses = []
        for token in rest[1:].split(","):
            token = token.strip()
            try:
                ipaddress.IPv4Address(token)
            except ValueError:
                continue
            if token not in addresses:
                addresses.append(token)
        return cls(addresses=addresses)


class AddressSelection(BaseModel):
    """Outcome of a successful discovery run."""
    address: str
    candidates: list[str]

    @property
    def base_url(self) -> str:
        return f"http://{self.address}:{API_PORT}"
