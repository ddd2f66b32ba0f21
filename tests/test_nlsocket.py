import errno
from unittest import mock

import pytest

from nlcraft.nlsocket import (
    AF_NETLINK,
    SOCK_RAW,
    SOL_NETLINK,
    NlSocket,
    NlSocketError,
    NlSocketType,
    SocketBindError,
    SocketOpenError,
)


class FakeSocket:
    def __init__(self, bound_pid=4242, bind_error=None):
        self.bound_pid = bound_pid
        self.bind_error = bind_error
        self.address = None
        self.sent = []
        self.incoming = []
        self.options = []
        self.close_calls = 0

    def bind(self, address):
        if self.bind_error is not None:
            raise self.bind_error
        self.address = address

    def getsockname(self):
        return (self.bound_pid, 0)

    def send(self, data):
        self.sent.append(bytes(data))
        return len(data)

    def recv(self, size):
        return self.incoming.pop(0)[:size]

    def setsockopt(self, level, name, value):
        self.options.append((level, name, value))

    def fileno(self):
        return 99

    def close(self):
        self.close_calls += 1


@pytest.mark.parametrize(
    "bus,protocol",
    [(NlSocketType.NETLINK_ROUTE, 0), (NlSocketType.NETLINK_GENERIC, 16)],
)
def test_open_passes_protocol_number(bus, protocol):
    fake = FakeSocket()
    with mock.patch("socket.socket", return_value=fake) as factory:
        nl = NlSocket.open(bus)
    factory.assert_called_once_with(AF_NETLINK, SOCK_RAW, protocol)
    assert nl.fileno() == 99


def test_bind_uses_and_updates_address():
    fake = FakeSocket(bound_pid=4242)
    nl = NlSocket(fake, pid=100)
    nl.bind()
    assert fake.address == (100, 0)
    assert nl.pid == 4242
    assert nl.groups == 0


def test_bind_failure():
    fake = FakeSocket(bind_error=OSError(errno.EADDRINUSE, "in use"))
    nl = NlSocket(fake, pid=1)
    with pytest.raises(SocketBindError) as info:
        nl.bind()
    assert info.value.error.errno == errno.EADDRINUSE
    assert str(info.value).startswith("unable to bind netlink socket: ")
    assert isinstance(info.value, NlSocketError)


def test_open_failure():
    with mock.patch("socket.socket", side_effect=OSError(errno.EPERM, "denied")):
        with pytest.raises(SocketOpenError) as info:
            NlSocket.open(NlSocketType.NETLINK_ROUTE)
    assert info.value.error.errno == errno.EPERM
    assert str(info.value).startswith("unable to open netlink socket: ")


def test_new_opens_and_binds():
    fake = FakeSocket(bound_pid=777)
    with mock.patch("socket.socket", return_value=fake) as factory:
        nl = NlSocket.new(NlSocketType.NETLINK_GENERIC)
    factory.assert_called_once_with(AF_NETLINK, SOCK_RAW, int(NlSocketType.NETLINK_GENERIC))
    assert nl.pid == 777


def test_new_closes_socket_when_bind_fails():
    fake = FakeSocket(bind_error=OSError(errno.EACCES, "denied"))
    with mock.patch("socket.socket", return_value=fake):
        with pytest.raises(SocketBindError):
            NlSocket.new(NlSocketType.NETLINK_ROUTE)
    assert fake.close_calls == 1


def test_set_strict_checking():
    fake = FakeSocket()
    NlSocket(fake).set_strict_checking()
    assert fake.options == [(SOL_NETLINK, 12, 1)]


def test_send_and_recv():
    fake = FakeSocket()
    fake.incoming.append(b"response-bytes")
    nl = NlSocket(fake)
    assert nl.send(b"request") == len(b"request")
    assert fake.sent == [b"request"]
    assert nl.recv(8) == b"response"


def test_context_manager_closes_once():
    fake = FakeSocket()
    with NlSocket(fake) as nl:
        assert nl.fileno() == 99
    nl.close()
    assert fake.close_calls == 1
    assert nl.fileno() == -1