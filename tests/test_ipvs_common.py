import io
import ipaddress
import struct

import pytest

from nlcraft import attr
from nlcraft.ipvs_common import (
    ADDRESS_SIZE,
    IPVS_CMD_ATTR_SERVICE,
    IPVS_SVC_ATTR_ADDR,
    IPVS_SVC_ATTR_AF,
    IPVS_SVC_ATTR_PORT,
    IPVS_SVC_ATTR_PROTOCOL,
    SERVICE_SELECTOR_NESTED_LEN,
    IpFamily,
    IpvsService,
    Protocol,
    decode_address,
    encode_address,
    write_service_selector,
)


def test_protocol_and_family_numbers():
    assert Protocol(6) is Protocol.TCP
    assert Protocol(17) is Protocol.UDP
    assert IpFamily(2) is IpFamily.AF_INET
    assert IpFamily(10) is IpFamily.AF_INET6


def test_unknown_protocol_rejected():
    with pytest.raises(ValueError):
        Protocol(1)


def test_service_normalises_fields():
    service = IpvsService("10.0.0.1", 80, 6)
    assert service.address == ipaddress.IPv4Address("10.0.0.1")
    assert service.protocol is Protocol.TCP


def test_service_rejects_bad_port():
    with pytest.raises(ValueError):
        IpvsService("10.0.0.1", 70000, Protocol.TCP)


def test_encode_ipv4_pads_to_field_size():
    family, raw = encode_address("192.0.2.7")
    assert family is IpFamily.AF_INET
    assert len(raw) == ADDRESS_SIZE
    assert raw[:4] == ipaddress.IPv4Address("192.0.2.7").packed
    assert raw[4:] == bytes(ADDRESS_SIZE - 4)


@pytest.mark.parametrize("text", ["192.0.2.7", "2001:db8::1", "::"])
def test_encode_decode_round_trip(text):
    family, raw = encode_address(text)
    assert decode_address(family, raw) == ipaddress.ip_address(text)


def test_decode_unknown_family():
    with pytest.raises(ValueError):
        decode_address(99, bytes(ADDRESS_SIZE))


def test_decode_wrong_size():
    with pytest.raises(ValueError):
        decode_address(IpFamily.AF_INET, bytes(4))


def test_write_service_selector_layout():
    service = IpvsService("192.0.2.7", 8080, Protocol.UDP)
    out = io.BytesIO()
    written = write_service_selector(out, service)
    data = out.getvalue()
    assert written == len(data)
    reader = io.BytesIO(data)
    header = attr.NlAttribute.read(reader)
    assert header.attr_type == attr.nl_nest(IPVS_CMD_ATTR_SERVICE)
    assert header.length == attr.set_attr_length(SERVICE_SELECTOR_NESTED_LEN)
    inner = dict(
        attr.iter_attributes(
            reader,
            lambda r, a: (a.attr_type, attr.read_vec_attr(r, a.length)),
            SERVICE_SELECTOR_NESTED_LEN,
        )
    )
    assert inner[IPVS_SVC_ATTR_AF] == struct.pack("<H", IpFamily.AF_INET)
    assert inner[IPVS_SVC_ATTR_PROTOCOL] == struct.pack("<H", Protocol.UDP)
    assert inner[IPVS_SVC_ATTR_ADDR] == encode_address("192.0.2.7")[1]
    assert inner[IPVS_SVC_ATTR_PORT] == struct.pack(">H", 8080)
    assert reader.read() == b""