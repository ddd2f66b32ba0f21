"""Lookups between network interface names and indexes."""

import socket


def interface_name_to_index(ifname):
    """Index of the interface named ``ifname``, or None if there is none."""
    try:
        index = socket.if_nametoindex(ifname)
    except (OSError, ValueError):
        return None
    return index or None


def interface_index_to_name(ifindex):
    """Name of the interface with index ``ifindex``, or None if there is none."""
    try:
        return socket.if_indextoname(ifindex)
    except (OSError, OverflowError, ValueError):
        return None


def list_interfaces():
    """List of ``(name, index)`` pairs for the interfaces of the system."""
    try:
        entries = socket.if_nameindex()
    except OSError:
        return []
    return [(name, index) for index, name in entries if name and index]