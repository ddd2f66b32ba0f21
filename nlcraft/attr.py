"""Netlink attributes: the type-length-value items that make up message payloads."""

import ipaddress
import struct
from dataclasses import dataclass
from typing import ClassVar

from nlcraft.utils import read_exact, skip_n_bytes

NL_ATTR_ALIGN_TO = 4
"""Netlink attributes are aligned on 4 bytes."""

NLA_F_NESTED = 1 << 15
"""Nested flag on an attribute type."""

_HEADER = struct.Struct("=HH")
_CHUNK_SIZE = 1024


@dataclass
class NlAttribute:
    """Attribute header: total length (header included on the wire) and type."""

    length: int
    attr_type: int

    SIZE: ClassVar[int] = _HEADER.size

    def write(self, writer):
        """Write the header and return the number of bytes written."""
        writer.write(_HEADER.pack(self.length, self.attr_type))
        return self.SIZE

    @classmethod
    def read(cls, reader):
        """Read a header from ``reader``."""
        length, attr_type = _HEADER.unpack(read_exact(reader, cls.SIZE))
        return cls(length, attr_type)


def nl_nest(attr_type):
    """Apply the nested flag to an attribute type."""
    return attr_type | NLA_F_NESTED


def nl_attr_align(length):
    """Round ``length`` up to the attribute alignment."""
    return (length + NL_ATTR_ALIGN_TO - 1) & ~(NL_ATTR_ALIGN_TO - 1)


def nl_attr_align_writer(writer, written_bytes):
    """Write the zero padding that follows ``written_bytes`` bytes; return the padding size."""
    padding = nl_attr_align(written_bytes) - written_bytes
    if padding:
        writer.write(bytes(padding))
    return padding


def set_attr_length_aligned(length):
    """Aligned size of an attribute whose payload is ``length`` bytes."""
    return nl_attr_align(NlAttribute.SIZE + length)


def set_string_length_aligned(length):
    """Aligned size of a string attribute of ``length`` bytes plus its terminator."""
    return set_attr_length_aligned(length + 1)


def set_ip_address_attr_length_aligned(ip_address):
    """Aligned size of an attribute holding ``ip_address``."""
    return set_attr_length_aligned(4 if ip_address.version == 4 else 16)


def set_attr_length(length):
    """Unpadded size of an attribute whose payload is ``length`` bytes."""
    return NlAttribute.SIZE + length


def set_string_attr_length(length):
    """Unpadded size of a string attribute of ``length`` bytes plus its terminator."""
    return set_attr_length(length + 1)


def set_ip_address_attr_length(ip_address):
    """Unpadded size of an attribute holding ``ip_address``."""
    return set_attr_length(4 if ip_address.version == 4 else 16)


def _write_attr(writer, attr_type, payload):
    written = NlAttribute(set_attr_length(len(payload)), attr_type).write(writer)
    writer.write(payload)
    written += len(payload)
    return written + nl_attr_align_writer(writer, written)


def write_u8_attr(writer, attr_type, value):
    """Write an unsigned 8-bit attribute; return the bytes written, padding included."""
    return _write_attr(writer, attr_type, struct.pack("<B", value))


def write_u16_attr(writer, attr_type, value):
    """Write a little-endian unsigned 16-bit attribute."""
    return _write_attr(writer, attr_type, struct.pack("<H", value))


def write_be_u16_attr(writer, attr_type, value):
    """Write a big-endian unsigned 16-bit attribute."""
    return _write_attr(writer, attr_type, struct.pack(">H", value))


def write_u32_attr(writer, attr_type, value):
    """Write a little-endian unsigned 32-bit attribute."""
    return _write_attr(writer, attr_type, struct.pack("<I", value))


def write_u64_attr(writer, attr_type, value):
    """Write a little-endian unsigned 64-bit attribute."""
    return _write_attr(writer, attr_type, struct.pack("<Q", value))


def write_u128_attr(writer, attr_type, value):
    """Write a little-endian unsigned 128-bit attribute."""
    if value < 0:
        raise OverflowError("u128 attribute value must not be negative")
    return _write_attr(writer, attr_type, value.to_bytes(16, "little"))


def write_i32_attr(writer, attr_type, value):
    """Write a little-endian signed 32-bit attribute."""
    return _write_attr(writer, attr_type, struct.pack("<i", value))


def write_bytes_attr(writer, attr_type, value):
    """Write an attribute holding raw bytes."""
    return _write_attr(writer, attr_type, bytes(value))


def write_string_attr(writer, attr_type, value):
    """Write a NUL-terminated UTF-8 string attribute."""
    return _write_attr(writer, attr_type, value.encode("utf-8") + b"\0")


def write_ip4_address_attr(writer, attr_type, ip_address):
    """Write an IPv4 address attribute (4 bytes, network order)."""
    return _write_attr(writer, attr_type, ipaddress.IPv4Address(ip_address).packed)


def write_ip6_address_attr(writer, attr_type, ip_address):
    """Write an IPv6 address attribute (16 bytes, network order)."""
    return _write_attr(writer, attr_type, ipaddress.IPv6Address(ip_address).packed)


def write_ip_address_attr(writer, attr_type, ip_address):
    """Write an IPv4 or IPv6 address attribute."""
    address = ipaddress.ip_address(ip_address)
    if address.version == 4:
        return write_ip4_address_attr(writer, attr_type, address)
    return write_ip6_address_attr(writer, attr_type, address)


def recover_read(reader, length, parser, parse_error):
    """Run ``parser``; if it declines the attribute, skip ``length`` bytes and raise ``parse_error``."""
    result = parser(reader, length)
    if result is None:
        skip_n_bytes(reader, length)
        raise parse_error
    return result


def _read_struct(reader, length, fmt):
    size = struct.calcsize(fmt)
    if length != size:
        return None
    return struct.unpack(fmt, read_exact(reader, size))[0]


def read_u8_attr(reader, length):
    """Read an unsigned 8-bit value, or return None without reading if the length differs."""
    return _read_struct(reader, length, "<B")


def read_u16_attr(reader, length):
    """Read a little-endian unsigned 16-bit value, or None if the length differs."""
    return _read_struct(reader, length, "<H")


def read_be_u16_attr(reader, length):
    """Read a big-endian unsigned 16-bit value, or None if the length differs."""
    return _read_struct(reader, length, ">H")


def read_u32_attr(reader, length):
    """Read a little-endian unsigned 32-bit value, or None if the length differs."""
    return _read_struct(reader, length, "<I")


def read_i32_attr(reader, length):
    """Read a little-endian signed 32-bit value, or None if the length differs."""
    return _read_struct(reader, length, "<i")


def read_u64_attr(reader, length):
    """Read a little-endian unsigned 64-bit value, or None if the length differs."""
    return _read_struct(reader, length, "<Q")


def read_u128_attr(reader, length):
    """Read a little-endian unsigned 128-bit value, or None if the length differs."""
    if length != 16:
        return None
    return int.from_bytes(read_exact(reader, 16), "little")


def read_array_attr(reader, length, size):
    """Read exactly ``size`` bytes, or return None without reading if the length differs."""
    if length != size:
        return None
    return read_exact(reader, size)


def read_vec_attr(reader, length):
    """Read the whole ``length``-byte payload."""
    return read_exact(reader, length)


def read_ip4_address_attr(reader, length):
    """Read an IPv4 address, or None if the length is not 4."""
    if length != 4:
        return None
    return ipaddress.IPv4Address(read_exact(reader, 4))


def read_ip6_address_attr(reader, length):
    """Read an IPv6 address, or None if the length is not 16."""
    if length != 16:
        return None
    return ipaddress.IPv6Address(read_exact(reader, 16))


def read_ip_address_attr(reader, length):
    """Read an IPv4 (4 bytes) or IPv6 (16 bytes) address, or None for other lengths."""
    if length == 4:
        return read_ip4_address_attr(reader, length)
    if length == 16:
        return read_ip6_address_attr(reader, length)
    return None


def read_string_attr(reader, length):
    """Read a NUL-terminated UTF-8 string, or None if the stream ends inside the text."""
    if length < 1:
        raise ValueError("string attribute too short for its terminator")
    remaining = length - 1
    chunks = []
    while remaining > 0:
        chunk = reader.read(min(remaining, _CHUNK_SIZE))
        if not chunk:
            return None
        chunks.append(chunk)
        remaining -= len(chunk)
    read_exact(reader, 1)
    return b"".join(chunks).decode("utf-8")


def iter_attributes(reader, parser, remaining_bytes):
    """Yield ``parser(reader, attribute)`` for each attribute in the next ``remaining_bytes`` bytes.

    The attribute handed to the parser carries the payload length, header excluded;
    the alignment padding after each payload is consumed here.
    """
    while remaining_bytes > 0:
        header = NlAttribute.read(reader)
        if header.length < NlAttribute.SIZE:
            raise ValueError(f"attribute length {header.length} shorter than its header")
        aligned = nl_attr_align(header.length)
        if aligned > remaining_bytes:
            raise ValueError(
                f"attribute of {aligned} bytes exceeds the {remaining_bytes} bytes left"
            )
        remaining_bytes -= aligned
        padding = aligned - header.length
        result = parser(
            reader, NlAttribute(header.length - NlAttribute.SIZE, header.attr_type)
        )
        if padding:
            read_exact(reader, padding)
        yield result