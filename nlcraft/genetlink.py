"""Generic netlink: headers, family resolution and the generic request builder protocol."""

import struct
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, ClassVar

from nlcraft import attr
from nlcraft.errors import ProtocolParseError, ResponseIoError
from nlcraft.message import (
    NLM_F_REQUEST,
    NLMSG_MIN_TYPE,
    MessageBuilder,
    NlMsgHeader,
    iter_messages,
)
from nlcraft.nlsocket import NL_SOCKET_AUTOPID
from nlcraft.utils import read_exact, skip_n_bytes

_HEADER = struct.Struct("=BBH")

GENL_ID_CTRL = NLMSG_MIN_TYPE
"""Message type of the generic netlink controller."""
CTRL_CMD_GETFAMILY = 3

CTRL_ATTR_FAMILY_ID = 1
CTRL_ATTR_FAMILY_NAME = 2
CTRL_ATTR_VERSION = 3
CTRL_ATTR_HDRSIZE = 4
CTRL_ATTR_MAXATTR = 5
CTRL_ATTR_OPS = 6


@contextmanager
def _io_errors():
    try:
        yield
    except (EOFError, OSError, ValueError) as error:
        raise ResponseIoError(error) from error


@dataclass
class GeNlMsgHeader:
    """Generic netlink header: command, version and a reserved field."""

    cmd: int
    version: int
    reserved: int = 0

    SIZE: ClassVar[int] = _HEADER.size

    def write(self, writer):
        """Write the header and return the number of bytes written."""
        writer.write(_HEADER.pack(self.cmd, self.version, self.reserved))
        return self.SIZE

    @classmethod
    def read(cls, reader):
        """Read a header from ``reader``."""
        return cls(*_HEADER.unpack(read_exact(reader, cls.SIZE)))


def set_generic_payload_length(header, length):
    """Set the total length of ``header`` from a payload following a generic header."""
    return header.set_payload_length(GeNlMsgHeader.SIZE + length)


def resolve_family_id_nl_header(header):
    """Set message type and flags for a controller GETFAMILY request."""
    header.msg_type = GENL_ID_CTRL
    header.flags = NLM_F_REQUEST


def skip_generic_netlink_header(reader):
    """Consume a generic netlink header from ``reader``."""
    read_exact(reader, GeNlMsgHeader.SIZE)


class ResolveFamilyIdParseError(Enum):
    """Reasons a family resolution response could not be understood."""

    NO_RESPONSE = "no response"
    NO_FAMILY_ID = "no family id"
    UNPARSABLE_FAMILY_ID = "unparsable family id"
    UNPARSABLE_FAMILY_STRING = "unparsable family name"
    UNPARSABLE_FAMILY_VERSION = "unparsable family version"
    UNPARSABLE_FAMILY_HEADER_SIZE = "unparsable family header size"
    UNPARSABLE_FAMILY_MAX_ATTRIBUTES = "unparsable family max attributes"


class GeNetlinkAttributeKind(Enum):
    """Kinds of attribute found in a family resolution response."""

    FAMILY_ID = "family_id"
    FAMILY_NAME = "family_name"
    FAMILY_VERSION = "family_version"
    FAMILY_HEADER_SIZE = "family_header_size"
    MAX_ATTRIBUTES = "max_attributes"
    ATTRIBUTE_OPS = "attribute_ops"
    OTHER = "other"


@dataclass(frozen=True)
class GeNetlinkAttribute:
    """A parsed controller attribute; for OTHER, ``value`` is the attribute type."""

    kind: GeNetlinkAttributeKind
    value: Any = None


@dataclass
class FamilyResolution:
    """Resolved family id and the other attributes of the response."""

    family_id: int
    attributes: list = field(default_factory=list)


_RESOLUTION_READERS = {
    CTRL_ATTR_FAMILY_ID: (
        attr.read_u16_attr,
        GeNetlinkAttributeKind.FAMILY_ID,
        ResolveFamilyIdParseError.UNPARSABLE_FAMILY_ID,
    ),
    CTRL_ATTR_FAMILY_NAME: (
        attr.read_string_attr,
        GeNetlinkAttributeKind.FAMILY_NAME,
        ResolveFamilyIdParseError.UNPARSABLE_FAMILY_STRING,
    ),
    CTRL_ATTR_VERSION: (
        attr.read_u32_attr,
        GeNetlinkAttributeKind.FAMILY_VERSION,
        ResolveFamilyIdParseError.UNPARSABLE_FAMILY_VERSION,
    ),
    CTRL_ATTR_HDRSIZE: (
        attr.read_u32_attr,
        GeNetlinkAttributeKind.FAMILY_HEADER_SIZE,
        ResolveFamilyIdParseError.UNPARSABLE_FAMILY_HEADER_SIZE,
    ),
    CTRL_ATTR_MAXATTR: (
        attr.read_u32_attr,
        GeNetlinkAttributeKind.MAX_ATTRIBUTES,
        ResolveFamilyIdParseError.UNPARSABLE_FAMILY_MAX_ATTRIBUTES,
    ),
}


def read_family_resolution_attr(reader, attribute):
    """Parse one controller attribute whose payload is next in ``reader``."""
    with _io_errors():
        entry = _RESOLUTION_READERS.get(attribute.attr_type)
        if entry is not None:
            parser, kind, reason = entry
            value = attr.recover_read(
                reader, attribute.length, parser, ProtocolParseError(reason)
            )
            return GeNetlinkAttribute(kind, value)
        skip_n_bytes(reader, attribute.length)
        if attribute.attr_type == CTRL_ATTR_OPS:
            return GeNetlinkAttribute(GeNetlinkAttributeKind.ATTRIBUTE_OPS)
        return GeNetlinkAttribute(GeNetlinkAttributeKind.OTHER, attribute.attr_type)


def read_family_resolution(reader, length):
    """Parse the payload of a family resolution message into a list of attributes."""
    with _io_errors():
        skip_generic_netlink_header(reader)
        return list(
            attr.iter_attributes(
                reader, read_family_resolution_attr, length - GeNlMsgHeader.SIZE
            )
        )


def _swap_remove(items, index):
    last = items.pop()
    if index == len(items):
        return last
    removed = items[index]
    items[index] = last
    return removed


class GenericMessageBuilder(ABC):
    """A generic netlink request addressed to a resolved family."""

    @classmethod
    def new(cls, family_id, seq, input):
        """Builder with a fresh header using ``seq``; return the builder and ``seq``."""
        header = NlMsgHeader.new_with_seq_and_pid(seq, NL_SOCKET_AUTOPID)
        return cls.new_with_header(header, family_id, input), seq

    @classmethod
    @abstractmethod
    def new_with_header(cls, nl_msg_header, family, input):
        """Builder using a caller-provided netlink header."""

    @abstractmethod
    def build(self, writer):
        """Write the request to ``writer`` and return the number of bytes written."""

    @classmethod
    @abstractmethod
    def parse_response(cls, reader):
        """Parse the response read from ``reader``."""


@dataclass
class ResolveFamilyIdMsgBuilder(MessageBuilder):
    """Request resolving a generic netlink family name to its id."""

    nl_msg_header: NlMsgHeader
    ge_nl_msg_header: GeNlMsgHeader
    family: str

    @classmethod
    def new_with_header(cls, nl_msg_header, input):
        header = replace(nl_msg_header)
        resolve_family_id_nl_header(header)
        # the controller ignores the version; 2 is what is usually sent
        return cls(header, GeNlMsgHeader(CTRL_CMD_GETFAMILY, 2), input)

    def build(self, writer):
        name_length = len(self.family.encode("utf-8"))
        set_generic_payload_length(
            self.nl_msg_header, attr.set_string_length_aligned(name_length)
        )
        written = self.nl_msg_header.write(writer)
        written += self.ge_nl_msg_header.write(writer)
        written += attr.write_string_attr(writer, CTRL_ATTR_FAMILY_NAME, self.family)
        return written

    @classmethod
    def parse_response(cls, reader):
        attributes = next(iter_messages(reader, read_family_resolution), None)
        if attributes is None:
            raise ProtocolParseError(ResolveFamilyIdParseError.NO_RESPONSE)
        position = next(
            (
                index
                for index, attribute in enumerate(attributes)
                if attribute.kind is GeNetlinkAttributeKind.FAMILY_ID
            ),
            None,
        )
        if position is None:
            raise ProtocolParseError(ResolveFamilyIdParseError.NO_FAMILY_ID)
        family_id = _swap_remove(attributes, position).value
        return FamilyResolution(family_id, attributes)