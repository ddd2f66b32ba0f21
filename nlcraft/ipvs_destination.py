"""IPVS destination (backend) listing: attributes, parsing and the listing request."""

import ipaddress
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any

from nlcraft import attr
from nlcraft.errors import ProtocolParseError, ResponseIoError
from nlcraft.genetlink import (
    GeNlMsgHeader,
    GenericMessageBuilder,
    set_generic_payload_length,
    skip_generic_netlink_header,
)
from nlcraft.ipvs_common import (
    ADDRESS_SIZE,
    IPVS_CMD_ATTR_DEST,
    IPVS_GENL_VERSION,
    SERVICE_SELECTOR_NESTED_LEN,
    IpFamily,
    decode_address,
    write_service_selector,
)
from nlcraft.message import (
    NLM_F_DUMP,
    NLM_F_REQUEST,
    NlMsgHeader,
    iter_messages,
)
from nlcraft.utils import skip_n_bytes

IPVS_DEST_ATTR_ADDR = 1
"""Real server address."""
IPVS_DEST_ATTR_PORT = 2
"""Real server port."""
IPVS_DEST_ATTR_FWD_METHOD = 3
"""Forwarding method."""
IPVS_DEST_ATTR_WEIGHT = 4
"""Destination weight."""
IPVS_DEST_ATTR_U_THRESH = 5
"""Upper threshold."""
IPVS_DEST_ATTR_L_THRESH = 6
"""Lower threshold."""
IPVS_DEST_ATTR_ACTIVE_CONNS = 7
"""Active connections."""
IPVS_DEST_ATTR_INACT_CONNS = 8
"""Inactive connections."""
IPVS_DEST_ATTR_PERSIST_CONNS = 9
"""Persistent connections."""
IPVS_DEST_ATTR_STATS = 10
"""Nested attribute for destination statistics."""
IPVS_DEST_ATTR_ADDR_FAMILY = 11
"""Address family of the address."""
IPVS_DEST_ATTR_STATS64 = 12
"""Nested attribute for destination statistics (64 bit)."""
IPVS_DEST_ATTR_TUN_TYPE = 13
"""Tunnel type."""
IPVS_DEST_ATTR_TUN_PORT = 14
"""Tunnel port."""
IPVS_DEST_ATTR_TUN_FLAGS = 15
"""Tunnel flags."""

IP_VS_CONN_F_MASQ = 0
IP_VS_CONN_F_LOCALNODE = 1
IP_VS_CONN_F_TUNNEL = 2
IP_VS_CONN_F_DROUTE = 3
IP_VS_CONN_F_BYPASS = 4

IPVS_CMD_NEW_DEST = 5
IPVS_CMD_SET_DEST = 6
IPVS_CMD_DEL_DEST = 7
IPVS_CMD_GET_DEST = 8


@contextmanager
def _io_errors():
    try:
        yield
    except (EOFError, OSError, ValueError) as error:
        raise ResponseIoError(error) from error


class GetDestinationParseError(Enum):
    """Reasons a destination listing response could not be understood."""

    NO_RESPONSE = "no response"
    UNEXPECTED_CMD_ATTRIBUTE = "unexpected command attribute"
    UNEXPECTED_FORWARD_METHOD = "unexpected forward method"
    UNPARSABLE_ADDRESS = "unparsable address"
    UNPARSABLE_PORT = "unparsable port"
    UNPARSABLE_FORWARDING_METHOD = "unparsable forwarding method"
    UNPARSABLE_WEIGHT = "unparsable weight"
    UNPARSABLE_UPPER_THRESHOLD = "unparsable upper threshold"
    UNPARSABLE_LOWER_THRESHOLD = "unparsable lower threshold"
    UNPARSABLE_ACTIVE_CONNS = "unparsable active connections"
    UNPARSABLE_INACTIVE_CONNS = "unparsable inactive connections"
    UNPARSABLE_PERSISTENT_CONNS = "unparsable persistent connections"
    UNPARSABLE_ADDRESS_FAMILY = "unparsable address family"
    UNPARSABLE_TUNNEL_TYPE = "unparsable tunnel type"
    UNPARSABLE_TUNNEL_PORT = "unparsable tunnel port"
    UNPARSABLE_TUNNEL_FLAGS = "unparsable tunnel flags"
    NO_ADDRESS_FAMILY = "no address family"
    NO_ADDRESS = "no address"
    NO_PORT = "no port"
    NO_FORWARD_METHOD = "no forward method"
    NO_WEIGHT = "no weight"


class DestinationAttributeKind(Enum):
    """Kinds of attribute found in a destination description."""

    ADDRESS = "address"
    PORT = "port"
    FORWARDING_METHOD = "forwarding_method"
    WEIGHT = "weight"
    UPPER_THRESHOLD = "upper_threshold"
    LOWER_THRESHOLD = "lower_threshold"
    ACTIVE_CONNS = "active_conns"
    INACTIVE_CONNS = "inactive_conns"
    PERSISTENT_CONNS = "persistent_conns"
    ADDRESS_FAMILY = "address_family"
    TUNNEL_PORT = "tunnel_port"
    OTHER = "other"


@dataclass(frozen=True)
class DestinationAttribute:
    """A parsed destination attribute; for OTHER, ``value`` is the attribute type."""

    kind: DestinationAttributeKind
    value: Any = None


class IpvsForwardMethod(IntEnum):
    """How packets are forwarded to a destination."""

    MASQUERADE = IP_VS_CONN_F_MASQ
    LOCAL = IP_VS_CONN_F_LOCALNODE
    TUNNEL = IP_VS_CONN_F_TUNNEL
    DIRECT_ROUTE = IP_VS_CONN_F_DROUTE
    BYPASS = IP_VS_CONN_F_BYPASS


_REQUIRED = (
    (DestinationAttributeKind.ADDRESS_FAMILY, GetDestinationParseError.NO_ADDRESS_FAMILY),
    (DestinationAttributeKind.ADDRESS, GetDestinationParseError.NO_ADDRESS),
    (DestinationAttributeKind.PORT, GetDestinationParseError.NO_PORT),
    (DestinationAttributeKind.FORWARDING_METHOD, GetDestinationParseError.NO_FORWARD_METHOD),
    (DestinationAttributeKind.WEIGHT, GetDestinationParseError.NO_WEIGHT),
)


@dataclass
class IpvsDestination:
    """A destination (real server) as listed by the kernel, with its remaining attributes."""

    address: Any
    port: int
    weight: int
    forward_method: IpvsForwardMethod
    attributes: list = field(default_factory=list)

    @classmethod
    def from_attributes(cls, attributes):
        """Assemble a destination from parsed attributes; raise ProtocolParseError if incomplete."""
        found = {}
        others = []
        required_kinds = {kind for kind, _ in _REQUIRED}
        for attribute in attributes:
            if attribute.kind in required_kinds:
                found[attribute.kind] = attribute.value
            else:
                others.append(attribute)

        for kind, missing in _REQUIRED:
            if kind not in found:
                raise ProtocolParseError(missing)

        try:
            family = IpFamily(found[DestinationAttributeKind.ADDRESS_FAMILY])
        except ValueError:
            raise ProtocolParseError(
                GetDestinationParseError.UNPARSABLE_ADDRESS_FAMILY
            ) from None
        address = decode_address(family, found[DestinationAttributeKind.ADDRESS])

        raw_method = found[DestinationAttributeKind.FORWARDING_METHOD]
        try:
            forward_method = IpvsForwardMethod(raw_method)
        except ValueError:
            error = ProtocolParseError(GetDestinationParseError.UNEXPECTED_FORWARD_METHOD)
            error.forward_method = raw_method
            raise error from None

        return cls(
            ipaddress.ip_address(address),
            found[DestinationAttributeKind.PORT],
            found[DestinationAttributeKind.WEIGHT],
            forward_method,
            others,
        )


def _read_address(reader, length):
    return attr.read_array_attr(reader, length, ADDRESS_SIZE)


_DEST_READERS = {
    IPVS_DEST_ATTR_ADDR: (
        _read_address,
        DestinationAttributeKind.ADDRESS,
        GetDestinationParseError.UNPARSABLE_ADDRESS,
    ),
    IPVS_DEST_ATTR_PORT: (
        attr.read_be_u16_attr,
        DestinationAttributeKind.PORT,
        GetDestinationParseError.UNPARSABLE_PORT,
    ),
    IPVS_DEST_ATTR_FWD_METHOD: (
        attr.read_u32_attr,
        DestinationAttributeKind.FORWARDING_METHOD,
        GetDestinationParseError.UNPARSABLE_FORWARDING_METHOD,
    ),
    IPVS_DEST_ATTR_WEIGHT: (
        attr.read_u32_attr,
        DestinationAttributeKind.WEIGHT,
        GetDestinationParseError.UNPARSABLE_WEIGHT,
    ),
    IPVS_DEST_ATTR_U_THRESH: (
        attr.read_u32_attr,
        DestinationAttributeKind.UPPER_THRESHOLD,
        GetDestinationParseError.UNPARSABLE_UPPER_THRESHOLD,
    ),
    IPVS_DEST_ATTR_L_THRESH: (
        attr.read_u32_attr,
        DestinationAttributeKind.LOWER_THRESHOLD,
        GetDestinationParseError.UNPARSABLE_LOWER_THRESHOLD,
    ),
    IPVS_DEST_ATTR_ACTIVE_CONNS: (
        attr.read_u32_attr,
        DestinationAttributeKind.ACTIVE_CONNS,
        GetDestinationParseError.UNPARSABLE_ACTIVE_CONNS,
    ),
    IPVS_DEST_ATTR_INACT_CONNS: (
        attr.read_u32_attr,
        DestinationAttributeKind.INACTIVE_CONNS,
        GetDestinationParseError.UNPARSABLE_INACTIVE_CONNS,
    ),
    IPVS_DEST_ATTR_PERSIST_CONNS: (
        attr.read_u32_attr,
        DestinationAttributeKind.PERSISTENT_CONNS,
        GetDestinationParseError.UNPARSABLE_PERSISTENT_CONNS,
    ),
    IPVS_DEST_ATTR_ADDR_FAMILY: (
        attr.read_u16_attr,
        DestinationAttributeKind.ADDRESS_FAMILY,
        GetDestinationParseError.UNPARSABLE_ADDRESS_FAMILY,
    ),
    IPVS_DEST_ATTR_TUN_PORT: (
        attr.read_u16_attr,
        DestinationAttributeKind.TUNNEL_PORT,
        GetDestinationParseError.UNPARSABLE_TUNNEL_PORT,
    ),
}


def read_get_dest_attr(reader, attribute):
    """Parse one destination attribute whose payload is next in ``reader``."""
    with _io_errors():
        entry = _DEST_READERS.get(attribute.attr_type)
        if entry is not None:
            parser, kind, reason = entry
            value = attr.recover_read(
                reader, attribute.length, parser, ProtocolParseError(reason)
            )
            return DestinationAttribute(kind, value)
        skip_n_bytes(reader, attribute.length)
        return DestinationAttribute(DestinationAttributeKind.OTHER, attribute.attr_type)


def read_get_destination_cmd_attr(reader, attribute):
    """Parse a nested destination attribute into its list of destination attributes.

    Any other command attribute is skipped and raises ProtocolParseError whose
    ``attr_type`` holds the unexpected type.
    """
    with _io_errors():
        if attribute.attr_type == IPVS_CMD_ATTR_DEST:
            return list(
                attr.iter_attributes(reader, read_get_dest_attr, attribute.length)
            )
        skip_n_bytes(reader, attribute.length)
    error = ProtocolParseError(GetDestinationParseError.UNEXPECTED_CMD_ATTRIBUTE)
    error.attr_type = attribute.attr_type
    raise error


def read_get_destination_msg(reader, length):
    """Parse the payload of one destination message: the first command attribute it holds."""
    with _io_errors():
        skip_generic_netlink_header(reader)
        commands = attr.iter_attributes(
            reader, read_get_destination_cmd_attr, length - GeNlMsgHeader.SIZE
        )
        first = next(commands, None)
    if first is None:
        raise ProtocolParseError(GetDestinationParseError.NO_RESPONSE)
    return first


def read_get_destination_response(reader):
    """Iterate over the destination attribute lists of a dump response."""
    return iter_messages(reader, read_get_destination_msg)


def get_destination_nl_header(header, family):
    """Set message type and flags for a destination listing request."""
    header.msg_type = family
    header.flags = NLM_F_REQUEST | NLM_F_DUMP


@dataclass
class GetDestinationMessageBuilder(GenericMessageBuilder):
    """Request listing the destinations of a virtual service."""

    nl_msg_header: NlMsgHeader
    ge_nl_msg_header: GeNlMsgHeader
    service_selector: Any

    @classmethod
    def new_with_header(cls, nl_msg_header, family, input):
        header = replace(nl_msg_header)
        get_destination_nl_header(header, family)
        return cls(header, GeNlMsgHeader(IPVS_CMD_GET_DEST, IPVS_GENL_VERSION), input)

    def build(self, writer):
        set_generic_payload_length(
            self.nl_msg_header, attr.set_attr_length_aligned(SERVICE_SELECTOR_NESTED_LEN)
        )
        written = self.nl_msg_header.write(writer)
        written += self.ge_nl_msg_header.write(writer)
        written += write_service_selector(writer, self.service_selector)
        return written

    @classmethod
    def parse_response(cls, reader):
        return [
            IpvsDestination.from_attributes(attributes)
            for attributes in read_get_destination_response(reader)
        ]