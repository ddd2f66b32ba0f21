# nlcraft

Small, dependency-free helpers for building and parsing Linux netlink messages.

Netlink is the kernel's networking API. `nlcraft` gives you the pieces for it:

- `nlcraft.attr`: reading and writing netlink attributes (integers, strings,
  IP addresses, raw bytes, nested attribute headers) with the 4-byte alignment
  netlink requires, and `iter_attributes` to walk a run of attributes.
- `nlcraft.message`: the netlink message header (`NlMsgHeader`), the flag and type
  constants, `iter_messages` to walk a stream of replies, `validate_ack` to check an
  acknowledgement, and the `MessageBuilder` base class.
- `nlcraft.nlsocket`: a raw netlink socket (`NlSocket`) usable as a context manager.
- `nlcraft.genetlink`: the generic netlink header (`GeNlMsgHeader`), the
  `GenericMessageBuilder` base class and the family-id lookup
  (`ResolveFamilyIdMsgBuilder`).
- `nlcraft.ipvs_common`: IPVS constants, `Protocol`, `IpFamily` and `IpvsService`,
  the value that selects a virtual service.
- `nlcraft.ipvs_info`: IPVS module version and connection table size
  (`GetInfoMessageBuilder`).
- `nlcraft.ipvs_flush`: clear the whole IPVS table (`FlushMessageBuilder`).
- `nlcraft.ipvs_destination`: list the destinations of a service
  (`GetDestinationMessageBuilder`, giving `IpvsDestination` values).
- `nlcraft.ipvs_destination_edit`: add, change and remove destinations
  (`NewDestinationMessageBuilder`, `SetDestinationMessageBuilder`,
  `DelDestinationMessageBuilder`).
- `nlcraft.interfaces`: mapping between interface names and indexes.
- `nlcraft.errors`: the exceptions raised while parsing replies.

The package needs Python 3.10 or later on Linux and uses only the standard library.
Sending IPVS requests needs root or `CAP_NET_ADMIN`.

## Installing

```
pip install nlcraft
```

## Building a request

A message builder writes a whole request into any binary writer and returns the
number of bytes written. `new` takes a sequence number and returns the builder
together with that number:

```python
import io

from nlcraft.genetlink import ResolveFamilyIdMsgBuilder
from nlcraft.message import generate_sequence_number

builder, seq = ResolveFamilyIdMsgBuilder.new(generate_sequence_number(), "IPVS")
buffer = io.BytesIO()
written = builder.build(buffer)
```

Replies are parsed with the builder's `parse_response` classmethod, which reads
from any binary reader.

## Talking to the kernel

```python
import io

from nlcraft.genetlink import ResolveFamilyIdMsgBuilder
from nlcraft.ipvs_info import GetInfoMessageBuilder
from nlcraft.message import generate_sequence_number
from nlcraft.nlsocket import NlSocket, NlSocketType

with NlSocket.new(NlSocketType.NETLINK_GENERIC) as sock:
    request = io.BytesIO()
    builder, _ = ResolveFamilyIdMsgBuilder.new(generate_sequence_number(), "IPVS")
    builder.build(request)
    sock.send(request.getvalue())
    family = ResolveFamilyIdMsgBuilder.parse_response(io.BytesIO(sock.recv()))

    request = io.BytesIO()
    builder, _ = GetInfoMessageBuilder.new(family.family_id, generate_sequence_number(), None)
    builder.build(request)
    sock.send(request.getvalue())
    infos = GetInfoMessageBuilder.parse_response(io.BytesIO(sock.recv()))
    print(
        f"IP Virtual Server version {infos.version_major}."
        f"{infos.version_minor}.{infos.version_patch} "
        f"(size={infos.connection_table_size})"
    )
```

`NlSocket.recv()` reads at most `NL_SOCKET_DUMP_SIZE` bytes (32768) by default;
whatever part of a datagram does not fit is lost.

## Destinations

Destination requests take the virtual service they belong to and the
destination's `(address, port)`:

```python
import io

from nlcraft.ipvs_common import IpvsService, Protocol
from nlcraft.ipvs_destination import IpvsForwardMethod
from nlcraft.ipvs_destination_edit import NewDestinationMessageBuilder

service = IpvsService("192.0.2.10", 80, Protocol.TCP)
builder, seq = NewDestinationMessageBuilder.new(
    family_id, seq, (service, ("198.51.100.7", 8080))
)
builder.weight = 3
builder.forward_method = IpvsForwardMethod.MASQUERADE
request = io.BytesIO()
builder.build(request)
```

New and changed destinations default to direct routing with a weight of 1.
`GetDestinationMessageBuilder` takes an `IpvsService` and its `parse_response`
returns a list of `IpvsDestination` with `address`, `port`, `weight`,
`forward_method` and the remaining attributes.

## Errors

Failures while parsing a reply are raised as subclasses of
`nlcraft.errors.ResponseError`:

- `ProtocolParseError`: the payload could not be understood; `reason` holds the
  module's parse-error enum member.
- `ResponseIoError`: reading the reply failed.
- `HeaderParseError` and its subclasses `HeaderIoError`, `NetlinkError` (the
  kernel answered with an error; `errno` holds its value) and `DataLossError`.

`recover_os_error(error, os_error)` returns quietly when `error` is a
`NetlinkError` carrying `os_error` and re-raises it otherwise, so one errno can be
treated as success:

```python
import errno

from nlcraft.errors import ResponseError, recover_os_error

try:
    NewDestinationMessageBuilder.parse_response(reply)
except ResponseError as error:
    recover_os_error(error, errno.EEXIST)
```

Setting up a socket raises `SocketOpenError` or `SocketBindError`, both
subclasses of `nlcraft.nlsocket.NlSocketError`.

## What this package does not do

- There are no builders for IPVS virtual services themselves: creating,
  listing and deleting services is not provided. `IpvsService` only selects an
  existing service in destination requests.
- There is no rtnetlink support (links, addresses, routes), no WireGuard support
  and no network namespace helpers.
- There is no request/response helper over a socket: you write a request into a
  buffer, send it, and parse what `recv` returns yourself.
- There is no command-line tool.

## Running the tests

```
pip install -e ".[test]"
pytest
```