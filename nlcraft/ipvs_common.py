"""IPVS constants and values shared by every IPVS request."""

import ipaddress
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from nlcraft import attr

IPVS_FAMILY = "IPVS"
"""Generic netlink family name of IPVS."""
IPVS_GENL_VERSION = 1
"""Generic netlink IPVS protocol version."""

# Nested command attributes.
IPVS_CMD_ATTR_SERVICE = 1
IPVS_CMD_ATTR_DEST = 2
IPVS_CMD_ATTR_DAEMON = 3
IPVS_CMD_ATTR_TIMEOUT_TCP = 4
IPVS_CMD_ATTR_TIMEOUT_TCP_FIN = 5
IPVS_CMD_ATTR_TIMEOUT_UDP = 6

# Service attributes used to select a service.
IPVS_SVC_ATTR_AF = 1
IPVS_SVC_ATTR_PROTOCOL = 2
IPVS_SVC_ATTR_ADDR = 3
IPVS_SVC_ATTR_PORT = 4

ADDRESS_SIZE = 16
"""IPVS addresses always travel in a 16-byte field."""

SERVICE_SELECTOR_NESTED_LEN = (
    attr.set_attr_length_aligned(2)
    + attr.set_attr_length_aligned(2)
    + attr.set_attr_length_aligned(ADDRESS_SIZE)
    + attr.set_attr_length_aligned(2)
)
"""Payload size of the nested attribute selecting a service."""


class Protocol(IntEnum):
    """Layer 4 protocol of a service."""

    TCP = 6
    UDP = 17


class IpFamily(IntEnum):
    """Address family."""

    AF_INET = 2
    AF_INET6 = 10


@dataclass(frozen=True)
class IpvsService:
    """A virtual service (frontend): address, port and protocol."""

    address: Any
    port: int
    protocol: Protocol

    def __post_init__(self):
        object.__setattr__(self, "address", ipaddress.ip_address(self.address))
        object.__setattr__(self, "protocol", Protocol(self.protocol))
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port {self.port} out of range")


def encode_address(address):
    """Return the family of ``address`` and its 16-byte IPVS encoding."""
    address = ipaddress.ip_address(address)
    if address.version == 4:
        return IpFamily.AF_INET, address.packed + bytes(ADDRESS_SIZE - 4)
    return IpFamily.AF_INET6, address.packed


def decode_address(family, raw):
    """Decode a 16-byte IPVS address field of the given family."""
    family = IpFamily(family)
    raw = bytes(raw)
    if len(raw) != ADDRESS_SIZE:
        raise ValueError(f"address field of {len(raw)} bytes, expected {ADDRESS_SIZE}")
    if family is IpFamily.AF_INET:
        return ipaddress.IPv4Address(raw[:4])
    return ipaddress.IPv6Address(raw)


def write_service_selector(writer, service):
    """Write the nested attribute selecting ``service``; return the bytes written."""
    family, raw = encode_address(service.address)
    written = attr.NlAttribute(
        attr.set_attr_length(SERVICE_SELECTOR_NESTED_LEN),
        attr.nl_nest(IPVS_CMD_ATTR_SERVICE),
    ).write(writer)
    written += attr.write_u16_attr(writer, IPVS_SVC_ATTR_AF, int(family))
    written += attr.write_u16_attr(writer, IPVS_SVC_ATTR_PROTOCOL, int(service.protocol))
    written += attr.write_bytes_attr(writer, IPVS_SVC_ATTR_ADDR, raw)
    written += attr.write_be_u16_attr(writer, IPVS_SVC_ATTR_PORT, service.port)
    return written