"""IPVS flush request: remove every service and destination."""

from dataclasses import dataclass, replace

from nlcraft.genetlink import GeNlMsgHeader, GenericMessageBuilder, set_generic_payload_length
from nlcraft.ipvs_common import IPVS_GENL_VERSION
from nlcraft.message import NLM_F_ACK, NLM_F_REQUEST, NlMsgHeader, validate_ack

IPVS_CMD_FLUSH = 17


def flush_nl_header(header, family):
    """Set message type and flags for a flush request."""
    header.msg_type = family
    header.flags = NLM_F_REQUEST | NLM_F_ACK


@dataclass
class FlushMessageBuilder(GenericMessageBuilder):
    """Request flushing the whole IPVS table."""

    nl_msg_header: NlMsgHeader
    ge_nl_msg_header: GeNlMsgHeader

    @classmethod
    def new_with_header(cls, nl_msg_header, family, input):
        header = replace(nl_msg_header)
        flush_nl_header(header, family)
        return cls(header, GeNlMsgHeader(IPVS_CMD_FLUSH, IPVS_GENL_VERSION))

    def build(self, writer):
        set_generic_payload_length(self.nl_msg_header, 0)
        written = self.nl_msg_header.write(writer)
        written += self.ge_nl_msg_header.write(writer)
        return written

    @classmethod
    def parse_response(cls, reader):
        validate_ack(reader)