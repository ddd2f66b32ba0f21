"""Errors raised while performing netlink requests and parsing responses."""

import os


class ResponseError(Exception):
    """Base class for every error raised while handling a netlink response."""


class ProtocolParseError(ResponseError):
    """The payload of a response could not be understood by the protocol parser."""

    def __init__(self, reason=None):
        super().__init__(reason)
        self.reason = reason

    def __str__(self):
        return "protocol parsing error"


class ResponseIoError(ResponseError):
    """An I/O error occurred while sending a request or receiving its response."""

    def __init__(self, error):
        super().__init__(error)
        self.error = error

    def __str__(self):
        return f"io error occured while performing request: {self.error}"


class HeaderParseError(ResponseError):
    """Base class for errors found while reading a netlink message header."""


class HeaderIoError(HeaderParseError):
    """An I/O error occurred while reading a netlink message header."""

    def __init__(self, error):
        super().__init__(error)
        self.error = error

    def __str__(self):
        return f"io error occured while parsing netlink message header: {self.error}"


class NetlinkError(HeaderParseError):
    """The kernel answered with an error message carrying an errno value."""

    def __init__(self, errno):
        super().__init__(errno)
        self.errno = errno

    def __str__(self):
        return (
            "netlink socket returned an error: "
            f"{os.strerror(self.errno)} (os error {self.errno})"
        )


class DataLossError(HeaderParseError):
    """The kernel reported that messages were lost (overrun)."""

    def __str__(self):
        return "netlink socket returned a data loss error"


def recover_os_error(error, os_error):
    """Swallow ``error`` if it is a netlink error with errno ``os_error``; re-raise it otherwise."""
    if isinstance(error, NetlinkError) and error.errno == os_error:
        return None
    raise error