"""Raw netlink sockets."""

import os
import socket
from enum import IntEnum

AF_NETLINK = 16
SOL_NETLINK = 270
NL_SOCKET_AUTOPID = 0
SOCK_RAW = 3
NL_SOCKET_DUMP_SIZE = 32768
"""Receive size large enough for a dump response."""

_NETLINK_GET_STRICT_CHK = 12


class NlSocketType(IntEnum):
    """Netlink protocol (bus) a socket talks to."""

    NETLINK_ROUTE = 0
    NETLINK_UNUSED = 1
    NETLINK_USERSOCK = 2
    NETLINK_FIREWALL = 3
    NETLINK_SOCK_DIAG = 4
    NETLINK_NFLOG = 5
    NETLINK_XFRM = 6
    NETLINK_SELINUX = 7
    NETLINK_ISCSI = 8
    NETLINK_AUDIT = 9
    NETLINK_FIB_LOOKUP = 10
    NETLINK_CONNECTOR = 11
    NETLINK_NETFILTER = 12
    NETLINK_IP6_FW = 13
    NETLINK_DNRTMSG = 14
    NETLINK_KOBJECT_UEVENT = 15
    NETLINK_GENERIC = 16
    NETLINK_SCSITRANSPORT = 18
    NETLINK_ECRYPTFS = 19
    NETLINK_RDMA = 20
    NETLINK_CRYPTO = 21
    NETLINK_SMC = 22


class NlSocketError(Exception):
    """Base class for errors raised while setting up a netlink socket."""

    def __init__(self, error):
        super().__init__(error)
        self.error = error


class SocketOpenError(NlSocketError):
    """The socket could not be opened."""

    def __str__(self):
        return f"unable to open netlink socket: {self.error}"


class SocketBindError(NlSocketError):
    """The socket could not be bound, or its bound address could not be read."""

    def __str__(self):
        return f"unable to bind netlink socket: {self.error}"


class NlSocket:
    """A netlink socket with its local address (port id and multicast groups)."""

    def __init__(self, sock, pid=None, groups=0):
        self._sock = sock
        self.pid = os.getpid() if pid is None else pid
        self.groups = groups

    @classmethod
    def open(cls, bus, flags=0):
        """Open an unbound netlink socket on ``bus``."""
        try:
            sock = socket.socket(AF_NETLINK, SOCK_RAW | flags, int(bus))
        except OSError as error:
            raise SocketOpenError(error) from error
        return cls(sock)

    @classmethod
    def new(cls, bus):
        """Open and bind a netlink socket on ``bus``."""
        nl_socket = cls.open(bus)
        try:
            nl_socket.bind()
        except BaseException:
            nl_socket.close()
            raise
        return nl_socket

    def bind(self):
        """Bind to the current address, then read back the address the kernel assigned."""
        try:
            self._sock.bind((self.pid, self.groups))
            self.pid, self.groups = self._sock.getsockname()
        except OSError as error:
            raise SocketBindError(error) from error

    def set_strict_checking(self):
        """Enable strict input checking (NETLINK_GET_STRICT_CHK)."""
        self._sock.setsockopt(SOL_NETLINK, _NETLINK_GET_STRICT_CHK, 1)

    def send(self, buffer):
        """Send a whole message; return the number of bytes sent."""
        return self._sock.send(buffer)

    def recv(self, size=NL_SOCKET_DUMP_SIZE):
        """Receive one datagram of at most ``size`` bytes; the rest of a larger one is lost."""
        return self._sock.recv(size)

    def fileno(self):
        """File descriptor of the socket, or -1 once closed."""
        if self._sock is None:
            return -1
        return self._sock.fileno()

    def close(self):
        """Close the socket; closing twice is harmless."""
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()