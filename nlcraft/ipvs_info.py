"""IPVS information request: version and connection table size."""

from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from nlcraft import attr
from nlcraft.errors import ProtocolParseError, ResponseIoError
from nlcraft.genetlink import (
    GeNlMsgHeader,
    GenericMessageBuilder,
    set_generic_payload_length,
    skip_generic_netlink_header,
)
from nlcraft.ipvs_common import IPVS_GENL_VERSION
from nlcraft.message import NLM_F_REQUEST, NlMsgHeader, iter_messages
from nlcraft.utils import read_exact, skip_n_bytes

IPVS_INFO_ATTR_VERSION = 1
"""IPVS version number."""
IPVS_INFO_ATTR_CONN_TAB_SIZE = 2
"""Size of the connection hash table."""

IPVS_CMD_GET_INFO = 15

_VERSION_SIZE = 4


@contextmanager
def _io_errors():
    try:
        yield
    except (EOFError, OSError, ValueError) as error:
        raise ResponseIoError(error) from error


class GetInfoParseError(Enum):
    """Reasons an information response could not be understood."""

    NO_RESPONSE = "no response"
    NO_VERSION = "no version"
    NO_CONNECTION_TABLE_SIZE = "no connection table size"
    UNPARSABLE_VERSION = "unparsable version"
    UNPARSABLE_CONNECTION_TABLE_SIZE = "unparsable connection table size"


class GetInfoAttributeKind(Enum):
    """Kinds of attribute found in an information response."""

    VERSION = "version"
    CONNECTION_TABLE_SIZE = "connection_table_size"
    OTHER = "other"


@dataclass(frozen=True)
class GetInfoAttribute:
    """A parsed information attribute.

    For VERSION the value is ``(major, minor, patch)``; for OTHER it is the attribute type.
    """

    kind: GetInfoAttributeKind
    value: Any = None


@dataclass
class IpvsInfos:
    """Version of the IPVS module and size of its connection table."""

    version_major: int
    version_minor: int
    version_patch: int
    connection_table_size: int


def read_get_info_attr(reader, attribute):
    """Parse one information attribute whose payload is next in ``reader``."""
    with _io_errors():
        if attribute.attr_type == IPVS_INFO_ATTR_VERSION:
            if attribute.length != _VERSION_SIZE:
                raise ProtocolParseError(GetInfoParseError.UNPARSABLE_VERSION)
            major, minor, patch, _ = read_exact(reader, _VERSION_SIZE)
            return GetInfoAttribute(GetInfoAttributeKind.VERSION, (major, minor, patch))
        if attribute.attr_type == IPVS_INFO_ATTR_CONN_TAB_SIZE:
            size = attr.recover_read(
                reader,
                attribute.length,
                attr.read_u32_attr,
                ProtocolParseError(GetInfoParseError.UNPARSABLE_CONNECTION_TABLE_SIZE),
            )
            return GetInfoAttribute(GetInfoAttributeKind.CONNECTION_TABLE_SIZE, size)
        skip_n_bytes(reader, attribute.length)
        return GetInfoAttribute(GetInfoAttributeKind.OTHER, attribute.attr_type)


def read_get_info_response(reader, length):
    """Parse the payload of an information message into a list of attributes."""
    with _io_errors():
        skip_generic_netlink_header(reader)
        return list(
            attr.iter_attributes(reader, read_get_info_attr, length - GeNlMsgHeader.SIZE)
        )


def get_info_nl_header(header, family):
    """Set message type and flags for an information request."""
    header.msg_type = family
    header.flags = NLM_F_REQUEST


def _take(attributes, kind, missing):
    for index, attribute in enumerate(attributes):
        if attribute.kind is kind:
            return attributes.pop(index).value
    raise ProtocolParseError(missing)


@dataclass
class GetInfoMessageBuilder(GenericMessageBuilder):
    """Request the IPVS module information."""

    nl_msg_header: NlMsgHeader
    ge_nl_msg_header: GeNlMsgHeader

    @classmethod
    def new_with_header(cls, nl_msg_header, family, input):
        header = replace(nl_msg_header)
        get_info_nl_header(header, family)
        return cls(header, GeNlMsgHeader(IPVS_CMD_GET_INFO, IPVS_GENL_VERSION))

    def build(self, writer):
        set_generic_payload_length(self.nl_msg_header, 0)
        written = self.nl_msg_header.write(writer)
        written += self.ge_nl_msg_header.write(writer)
        return written

    @classmethod
    def parse_response(cls, reader):
        attributes = next(iter_messages(reader, read_get_info_response), None)
        if attributes is None:
            raise ProtocolParseError(GetInfoParseError.NO_RESPONSE)
        major, minor, patch = _take(
            attributes, GetInfoAttributeKind.VERSION, GetInfoParseError.NO_VERSION
        )
        table_size = _take(
            attributes,
            GetInfoAttributeKind.CONNECTION_TABLE_SIZE,
            GetInfoParseError.NO_CONNECTION_TABLE_SIZE,
        )
        return IpvsInfos(major, minor, patch, table_size)