"""Craft and parse Linux netlink, generic netlink and IPVS destination messages."""

__version__ = "0.2.1"

__all__ = [
    "attr",
    "errors",
    "genetlink",
    "interfaces",
    "ipvs_common",
    "ipvs_destination",
    "ipvs_destination_edit",
    "ipvs_flush",
    "ipvs_info",
    "message",
    "nlsocket",
    "utils",
]