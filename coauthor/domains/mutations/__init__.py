from coauthor.domains.mutations.entities import Proposal, ProposalStatus, ToolContext
from coauthor.domains.mutations.events import DataStreamWriter, StreamEventType

__all__ = ["Proposal", "ProposalStatus", "ToolContext", "DataStreamWriter", "StreamEventType"]
