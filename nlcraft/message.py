"""Netlink message headers, response iteration and the request builder protocol."""

import struct
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar

from nlcraft.errors import DataLossError, HeaderIoError, HeaderParseError, NetlinkError
from nlcraft.nlsocket import NL_SOCKET_AUTOPID
from nlcraft.utils import read_exact, skip_n_bytes

NLMSG_MIN_TYPE = 0x10
"""First message type that is not reserved for netlink control messages."""

# Message header types.
NLMSG_NOOP = 1
NLMSG_ERROR = 2
NLMSG_DONE = 3
NLMSG_OVERRUN = 4

# Message header flags.
NLM_F_REQUEST = 0x01
NLM_F_MULTI = 0x02
NLM_F_ACK = 0x04
NLM_F_ECHO = 0x08
NLM_F_DUMP_INTR = 0x10
NLM_F_DUMP_FILTERED = 0x20

# Modifiers to GET requests.
NLM_F_ROOT = 0x100
NLM_F_MATCH = 0x200
NLM_F_ATOMIC = 0x400
NLM_F_DUMP = NLM_F_ROOT | NLM_F_MATCH

# Modifiers to NEW requests.
NLM_F_REPLACE = 0x100
NLM_F_EXCL = 0x200
NLM_F_CREATE = 0x400
NLM_F_APPEND = 0x800

# Modifiers to DELETE requests.
NLM_F_NONREC = 0x100
NLM_F_BULK = 0x200

# Flags for ACK messages.
NLM_F_CAPPED = 0x100
NLM_F_ACK_TLVS = 0x200

_HEADER = struct.Struct("=IHHII")
_ERROR_CODE = struct.Struct("<i")


class NlMsgHeaderType(IntEnum):
    """Netlink control message types."""

    NLMSG_NOOP = NLMSG_NOOP
    NLMSG_ERROR = NLMSG_ERROR
    NLMSG_DONE = NLMSG_DONE
    NLMSG_OVERRUN = NLMSG_OVERRUN


@dataclass
class NlMsgHeader:
    """Header of a netlink message: total length, type, flags, sequence number and port id."""

    length: int
    msg_type: int
    flags: int
    seq: int
    pid: int

    SIZE: ClassVar[int] = _HEADER.size

    @classmethod
    def new_with_seq_and_pid(cls, seq, pid):
        """Header with ``seq`` and ``pid`` set, length set to the header size, the rest zero."""
        return cls(cls.SIZE, 0, 0, seq, pid)

    def set_payload_length(self, length):
        """Set the total length from the payload length; return the total length."""
        total = length + self.SIZE
        self.length = total
        return total

    def write(self, writer):
        """Write the header and return the number of bytes written."""
        writer.write(
            _HEADER.pack(self.length, self.msg_type, self.flags, self.seq, self.pid)
        )
        return self.SIZE

    @classmethod
    def read(cls, reader):
        """Read a header from ``reader``."""
        return cls(*_HEADER.unpack(read_exact(reader, cls.SIZE)))

    def parse_type(self):
        """Return the control message type, or the raw type number if it is not one."""
        try:
            return NlMsgHeaderType(self.msg_type)
        except ValueError:
            return self.msg_type

    def is_multi(self):
        """True if the NLM_F_MULTI flag is set."""
        return bool(self.flags & NLM_F_MULTI)

    def is_done(self):
        """True if this header ends a dump."""
        return self.msg_type == NLMSG_DONE


def _read_header(reader):
    try:
        return NlMsgHeader.read(reader)
    except (EOFError, OSError) as error:
        raise HeaderIoError(error) from error


def iter_messages(reader, payload_parser):
    """Yield ``payload_parser(reader, payload_length)`` for each data message in ``reader``.

    Iteration stops at NLMSG_DONE or at an acknowledgement. A kernel error raises
    NetlinkError, an overrun raises DataLossError, a failed read raises HeaderIoError.
    """
    while True:
        header = _read_header(reader)
        payload_length = header.length - NlMsgHeader.SIZE
        if payload_length < 0:
            raise HeaderParseError(
                f"message length {header.length} shorter than its header"
            )
        msg_type = header.parse_type()
        if not isinstance(msg_type, NlMsgHeaderType):
            yield payload_parser(reader, payload_length)
        elif msg_type is NlMsgHeaderType.NLMSG_DONE:
            return
        elif msg_type is NlMsgHeaderType.NLMSG_OVERRUN:
            raise DataLossError()
        elif msg_type is NlMsgHeaderType.NLMSG_ERROR:
            try:
                (code,) = _ERROR_CODE.unpack(read_exact(reader, _ERROR_CODE.size))
                skip_n_bytes(reader, payload_length - _ERROR_CODE.size)
            except (EOFError, OSError) as error:
                raise HeaderIoError(error) from error
            if code != 0:
                raise NetlinkError(-code)
            return
        else:
            raise HeaderParseError("unexpected NLMSG_NOOP message")


def validate_ack(reader):
    """Read one response message and raise if it reports an error."""
    next(iter_messages(reader, lambda _reader, _length: None), None)


def generate_sequence_number():
    """Sequence number taken from the current time in seconds."""
    return int(time.time()) & 0xFFFFFFFF


class MessageBuilder(ABC):
    """A netlink request: built into a writer, its response parsed from a reader."""

    @classmethod
    def new(cls, seq, input):
        """Builder with a fresh header using ``seq``; return the builder and ``seq``."""
        header = NlMsgHeader.new_with_seq_and_pid(seq, NL_SOCKET_AUTOPID)
        return cls.new_with_header(header, input), seq

    @classmethod
    @abstractmethod
    def new_with_header(cls, nl_msg_header, input):
        """Builder using a caller-provided netlink header."""

    @abstractmethod
    def build(self, writer):
        """Write the request to ``writer`` and return the number of bytes written."""

    @classmethod
    @abstractmethod
    def parse_response(cls, reader):
        """Parse the response read from ``reader``."""