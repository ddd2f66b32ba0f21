import errno
import io
import struct
import time

import pytest

from nlcraft.errors import DataLossError, HeaderIoError, HeaderParseError, NetlinkError
from nlcraft.message import (
    NLM_F_ACK,
    NLM_F_DUMP,
    NLM_F_MULTI,
    NLM_F_REQUEST,
    NLMSG_DONE,
    NLMSG_ERROR,
    NLMSG_MIN_TYPE,
    NLMSG_NOOP,
    NLMSG_OVERRUN,
    MessageBuilder,
    NlMsgHeader,
    NlMsgHeaderType,
    generate_sequence_number,
    iter_messages,
    validate_ack,
)


def data_message(payload, seq=1):
    out = io.BytesIO()
    header = NlMsgHeader(0, NLMSG_MIN_TYPE, NLM_F_MULTI, seq, 0)
    header.set_payload_length(len(payload))
    header.write(out)
    out.write(payload)
    return out.getvalue()


def control_message(msg_type, payload=b""):
    out = io.BytesIO()
    header = NlMsgHeader(0, msg_type, 0, 1, 0)
    header.set_payload_length(len(payload))
    header.write(out)
    out.write(payload)
    return out.getvalue()


def error_message(code):
    original = io.BytesIO()
    NlMsgHeader.new_with_seq_and_pid(1, 0).write(original)
    return control_message(NLMSG_ERROR, struct.pack("<i", code) + original.getvalue())


def read_payload(reader, length):
    return reader.read(length)


def test_header_round_trip():
    header = NlMsgHeader(36, NLMSG_MIN_TYPE, NLM_F_REQUEST | NLM_F_ACK, 99, 1234)
    out = io.BytesIO()
    written = header.write(out)
    assert written == NlMsgHeader.SIZE
    assert len(out.getvalue()) == NlMsgHeader.SIZE
    assert NlMsgHeader.read(io.BytesIO(out.getvalue())) == header


def test_header_wire_layout():
    out = io.BytesIO()
    written = NlMsgHeader(16, 0x10, 5, 7, 9).write(out)
    assert written == 16
    assert out.getvalue() == (
        b"\x10\x00\x00\x00\x10\x00\x05\x00\x07\x00\x00\x00\x09\x00\x00\x00"
    )


def test_new_with_seq_and_pid():
    header = NlMsgHeader.new_with_seq_and_pid(7, 42)
    assert header == NlMsgHeader(NlMsgHeader.SIZE, 0, 0, 7, 42)


def test_set_payload_length_adds_header_size():
    header = NlMsgHeader.new_with_seq_and_pid(1, 0)
    total = header.set_payload_length(4)
    assert total == NlMsgHeader.SIZE + 4
    assert header.length == total


def test_parse_type_known_and_unknown():
    assert NlMsgHeader(16, NLMSG_DONE, 0, 0, 0).parse_type() is NlMsgHeaderType.NLMSG_DONE
    assert NlMsgHeader(16, NLMSG_MIN_TYPE, 0, 0, 0).parse_type() == NLMSG_MIN_TYPE
    assert not isinstance(
        NlMsgHeader(16, NLMSG_MIN_TYPE, 0, 0, 0).parse_type(), NlMsgHeaderType
    )


def test_is_multi_and_is_done():
    assert NlMsgHeader(16, NLMSG_DONE, NLM_F_MULTI, 0, 0).is_multi()
    assert not NlMsgHeader(16, NLMSG_MIN_TYPE, NLM_F_REQUEST, 0, 0).is_multi()
    assert NlMsgHeader(16, NLMSG_DONE, 0, 0, 0).is_done()
    assert not NlMsgHeader(16, NLMSG_ERROR, 0, 0, 0).is_done()


def test_dump_request_flags_survive_round_trip():
    out = io.BytesIO()
    NlMsgHeader(16, NLMSG_MIN_TYPE, NLM_F_REQUEST | NLM_F_DUMP, 0, 0).write(out)
    header = NlMsgHeader.read(io.BytesIO(out.getvalue()))
    assert header.flags == 0x301
    assert not header.is_multi()


def test_iter_messages_until_done():
    stream = io.BytesIO(
        data_message(b"abcd", 1) + data_message(b"efgh", 2) + control_message(NLMSG_DONE)
    )
    assert list(iter_messages(stream, read_payload)) == [b"abcd", b"efgh"]


def test_iter_messages_stops_on_ack():
    data = data_message(b"wxyz") + error_message(0)
    stream = io.BytesIO(data)
    assert list(iter_messages(stream, read_payload)) == [b"wxyz"]
    assert stream.tell() == len(data)


def test_iter_messages_raises_netlink_error():
    stream = io.BytesIO(data_message(b"abcd") + error_message(-errno.EPERM))
    messages = iter_messages(stream, read_payload)
    assert next(messages) == b"abcd"
    with pytest.raises(NetlinkError) as info:
        next(messages)
    assert info.value.errno == errno.EPERM


def test_iter_messages_overrun():
    with pytest.raises(DataLossError):
        list(iter_messages(io.BytesIO(control_message(NLMSG_OVERRUN)), read_payload))


def test_iter_messages_noop_is_rejected():
    with pytest.raises(HeaderParseError):
        list(iter_messages(io.BytesIO(control_message(NLMSG_NOOP)), read_payload))


def test_iter_messages_empty_stream():
    with pytest.raises(HeaderIoError):
        list(iter_messages(io.BytesIO(b""), read_payload))


def test_validate_ack_consumes_ack():
    data = error_message(0)
    stream = io.BytesIO(data)
    assert validate_ack(stream) is None
    assert stream.tell() == len(data)


def test_validate_ack_reports_error():
    with pytest.raises(NetlinkError) as info:
        validate_ack(io.BytesIO(error_message(-errno.EEXIST)))
    assert info.value.errno == errno.EEXIST


def test_validate_ack_on_truncated_stream():
    with pytest.raises(HeaderIoError):
        validate_ack(io.BytesIO(b"\x01\x02"))


def test_generate_sequence_number_follows_clock():
    before = int(time.time()) & 0xFFFFFFFF
    seq = generate_sequence_number()
    after = int(time.time()) & 0xFFFFFFFF
    assert before <= seq <= after


class _EchoBuilder(MessageBuilder):
    def __init__(self, header, payload):
        self.header = header
        self.payload = payload

    @classmethod
    def new_with_header(cls, nl_msg_header, input):
        nl_msg_header.msg_type = NLMSG_MIN_TYPE
        nl_msg_header.flags = NLM_F_REQUEST
        return cls(nl_msg_header, input)

    def build(self, writer):
        self.header.set_payload_length(len(self.payload))
        written = self.header.write(writer)
        writer.write(self.payload)
        return written + len(self.payload)

    @classmethod
    def parse_response(cls, reader):
        return list(iter_messages(reader, read_payload))


def test_message_builder_new_sets_sequence():
    builder, seq = _EchoBuilder.new(5, b"ping")
    assert seq == 5
    assert builder.header == NlMsgHeader(
        NlMsgHeader.SIZE, NLMSG_MIN_TYPE, NLM_F_REQUEST, 5, 0
    )
    assert builder.payload == b"ping"


def test_message_builder_build_and_parse():
    builder, _ = _EchoBuilder.new(3, b"ping")
    out = io.BytesIO()
    written = builder.build(out)
    assert written == len(out.getvalue())
    header = NlMsgHeader.read(io.BytesIO(out.getvalue()))
    assert header.length == written
    assert header.flags == NLM_F_REQUEST
    response = io.BytesIO(out.getvalue() + control_message(NLMSG_DONE))
    assert _EchoBuilder.parse_response(response) == [b"ping"]


def test_message_builder_is_abstract():
    with pytest.raises(TypeError):
        MessageBuilder()