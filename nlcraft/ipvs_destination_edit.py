"""IPVS destination (backend) requests: create, edit and delete destinations."""

from dataclasses import dataclass, replace
from typing import Any, ClassVar

from nlcraft import attr
from nlcraft.genetlink import (
    GeNlMsgHeader,
    GenericMessageBuilder,
    set_generic_payload_length,
)
from nlcraft.ipvs_common import (
    ADDRESS_SIZE,
    IPVS_CMD_ATTR_DEST,
    IPVS_GENL_VERSION,
    SERVICE_SELECTOR_NESTED_LEN,
    encode_address,
    write_service_selector,
)
from nlcraft.ipvs_destination import (
    IPVS_CMD_DEL_DEST,
    IPVS_CMD_NEW_DEST,
    IPVS_CMD_SET_DEST,
    IPVS_DEST_ATTR_ADDR,
    IPVS_DEST_ATTR_ADDR_FAMILY,
    IPVS_DEST_ATTR_FWD_METHOD,
    IPVS_DEST_ATTR_L_THRESH,
    IPVS_DEST_ATTR_PORT,
    IPVS_DEST_ATTR_TUN_FLAGS,
    IPVS_DEST_ATTR_TUN_PORT,
    IPVS_DEST_ATTR_TUN_TYPE,
    IPVS_DEST_ATTR_U_THRESH,
    IPVS_DEST_ATTR_WEIGHT,
    IpvsForwardMethod,
)
from nlcraft.message import NLM_F_ACK, NLM_F_REQUEST, NlMsgHeader, validate_ack

_EDIT_DEST_NESTED_LEN = (
    attr.set_attr_length_aligned(2)  # address family
    + attr.set_attr_length_aligned(ADDRESS_SIZE)  # address
    + attr.set_attr_length_aligned(2)  # port
    + attr.set_attr_length_aligned(4)  # forward method
    + attr.set_attr_length_aligned(4)  # weight
    + attr.set_attr_length_aligned(4)  # upper threshold
    + attr.set_attr_length_aligned(4)  # lower threshold
)

_DEL_DEST_NESTED_LEN = (
    attr.set_attr_length_aligned(2)  # address family
    + attr.set_attr_length_aligned(ADDRESS_SIZE)  # address
    + attr.set_attr_length_aligned(2)  # port
)


def _destination_fields(destination_address):
    address, port = destination_address
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"port {port} out of range")
    family, raw = encode_address(address)
    return int(family), raw, port


def _checked_address(address):
    address = bytes(address)
    if len(address) != ADDRESS_SIZE:
        raise ValueError(f"address of {len(address)} bytes, expected {ADDRESS_SIZE}")
    return address


def _ack_request_header(header, family):
    header.msg_type = family
    header.flags = NLM_F_REQUEST | NLM_F_ACK


def new_destination_nl_header(header, family):
    """Set message type and flags for a destination creation request."""
    _ack_request_header(header, family)


def set_destination_nl_header(header, family):
    """Set message type and flags for a destination edition request."""
    _ack_request_header(header, family)


def del_destination_nl_header(header, family):
    """Set message type and flags for a destination deletion request."""
    _ack_request_header(header, family)


@dataclass
class _DestinationEditBuilder(GenericMessageBuilder):
    """Shared layout of the destination creation and edition requests.

    ``forward_method`` and ``weight`` may be changed before building.
    """

    nl_msg_header: NlMsgHeader
    ge_nl_msg_header: GeNlMsgHeader
    service_selector: Any
    address_family: int
    address: bytes
    port: int
    forward_method: int = IpvsForwardMethod.DIRECT_ROUTE
    weight: int = 1
    uthreshold: int = 0
    lthreshold: int = 0
    tun_type: int = 0
    tun_port: int = 0
    tun_flags: int = 0

    _COMMAND: ClassVar[int] = IPVS_CMD_NEW_DEST

    @classmethod
    def new_with_default(cls, nl_msg_header, service_selector, destination_address):
        """Builder for the ``(address, port)`` destination of a service, with defaults."""
        family, raw, port = _destination_fields(destination_address)
        return cls(
            replace(nl_msg_header),
            GeNlMsgHeader(cls._COMMAND, IPVS_GENL_VERSION),
            service_selector,
            family,
            raw,
            port,
        )

    def build(self, writer):
        address = _checked_address(self.address)
        total_nested_len = attr.set_attr_length_aligned(
            SERVICE_SELECTOR_NESTED_LEN
        ) + attr.set_attr_length_aligned(_EDIT_DEST_NESTED_LEN)
        # the announced lengths do not include the trailing tunnel attributes
        set_generic_payload_length(
            self.nl_msg_header, attr.set_attr_length_aligned(total_nested_len)
        )

        written = self.nl_msg_header.write(writer)
        written += self.ge_nl_msg_header.write(writer)
        written += write_service_selector(writer, self.service_selector)
        written += attr.NlAttribute(
            attr.set_attr_length(_EDIT_DEST_NESTED_LEN),
            attr.nl_nest(IPVS_CMD_ATTR_DEST),
        ).write(writer)
        written += attr.write_u16_attr(
            writer, IPVS_DEST_ATTR_ADDR_FAMILY, self.address_family
        )
        written += attr.write_bytes_attr(writer, IPVS_DEST_ATTR_ADDR, address)
        written += attr.write_be_u16_attr(writer, IPVS_DEST_ATTR_PORT, self.port)
        written += attr.write_u32_attr(
            writer, IPVS_DEST_ATTR_FWD_METHOD, int(self.forward_method)
        )
        written += attr.write_u32_attr(writer, IPVS_DEST_ATTR_WEIGHT, self.weight)
        written += attr.write_u32_attr(writer, IPVS_DEST_ATTR_U_THRESH, self.uthreshold)
        written += attr.write_u32_attr(writer, IPVS_DEST_ATTR_L_THRESH, self.lthreshold)
        written += attr.write_u8_attr(writer, IPVS_DEST_ATTR_TUN_TYPE, self.tun_type)
        written += attr.write_u16_attr(writer, IPVS_DEST_ATTR_TUN_PORT, self.tun_port)
        written += attr.write_u16_attr(writer, IPVS_DEST_ATTR_TUN_FLAGS, self.tun_flags)
        return written

    @classmethod
    def parse_response(cls, reader):
        validate_ack(reader)


@dataclass
class NewDestinationMessageBuilder(_DestinationEditBuilder):
    """Request adding a destination to a virtual service.

    The input is ``(service, (address, port))``.
    """

    _COMMAND: ClassVar[int] = IPVS_CMD_NEW_DEST

    @classmethod
    def new_with_default(cls, nl_msg_header, service_selector, destination_address):
        return super().new_with_default(
            nl_msg_header, service_selector, destination_address
        )

    @classmethod
    def new_with_header(cls, nl_msg_header, family, input):
        header = replace(nl_msg_header)
        new_destination_nl_header(header, family)
        service_selector, destination_address = input
        return cls.new_with_default(header, service_selector, destination_address)

    def build(self, writer):
        return super().build(writer)

    @classmethod
    def parse_response(cls, reader):
        validate_ack(reader)


@dataclass
class SetDestinationMessageBuilder(_DestinationEditBuilder):
    """Request changing the settings of a destination of a virtual service.

    The input is ``(service, (address, port))``.
    """

    _COMMAND: ClassVar[int] = IPVS_CMD_SET_DEST

    @classmethod
    def new_with_default(cls, nl_msg_header, service_selector, destination_address):
        return super().new_with_default(
            nl_msg_header, service_selector, destination_address
        )

    @classmethod
    def new_with_header(cls, nl_msg_header, family, input):
        header = replace(nl_msg_header)
        set_destination_nl_header(header, family)
        service_selector, destination_address = input
        return cls.new_with_default(header, service_selector, destination_address)

    def build(self, writer):
        return super().build(writer)

    @classmethod
    def parse_response(cls, reader):
        validate_ack(reader)


@dataclass
class DelDestinationMessageBuilder(GenericMessageBuilder):
    """Request removing a destination from a virtual service.

    The input is ``(service, (address, port))``.
    """

    nl_msg_header: NlMsgHeader
    ge_nl_msg_header: GeNlMsgHeader
    service_selector: Any
    address_family: int
    address: bytes
    port: int

    @classmethod
    def new_with_address(cls, nl_msg_header, service_selector, destination_address):
        """Builder for the ``(address, port)`` destination of a service."""
        family, raw, port = _destination_fields(destination_address)
        return cls(
            replace(nl_msg_header),
            GeNlMsgHeader(IPVS_CMD_DEL_DEST, IPVS_GENL_VERSION),
            service_selector,
            family,
            raw,
            port,
        )

    @classmethod
    def new_with_header(cls, nl_msg_header, family, input):
        header = replace(nl_msg_header)
        del_destination_nl_header(header, family)
        service_selector, destination_address = input
        return cls.new_with_address(header, service_selector, destination_address)

    def build(self, writer):
        address = _checked_address(self.address)
        total_nested_len = attr.set_attr_length_aligned(
            SERVICE_SELECTOR_NESTED_LEN
        ) + attr.set_attr_length_aligned(_DEL_DEST_NESTED_LEN)
        set_generic_payload_length(self.nl_msg_header, total_nested_len)

        written = self.nl_msg_header.write(writer)
        written += self.ge_nl_msg_header.write(writer)
        written += write_service_selector(writer, self.service_selector)
        written += attr.NlAttribute(
            attr.set_attr_length(_DEL_DEST_NESTED_LEN),
            attr.nl_nest(IPVS_CMD_ATTR_DEST),
        ).write(writer)
        written += attr.write_bytes_attr(writer, IPVS_DEST_ATTR_ADDR, address)
        written += attr.write_be_u16_attr(writer, IPVS_DEST_ATTR_PORT, self.port)
        written += attr.write_u16_attr(
            writer, IPVS_DEST_ATTR_ADDR_FAMILY, self.address_family
        )
        return written

    @classmethod
    def parse_response(cls, reader):
        validate_ack(reader)