"""
Service layer for the directory feature.
"""

from .catalog import DirectoryCatalog, build_listings, escape_text, order_by_votes
from .context import DirectoryContext
from .session_gate import GateState, SessionGate
from .vote_ledger import VoteLedger

__all__ = [
    "DirectoryCatalog",
    "DirectoryContext",
    "GateState",
    "SessionGate",
    "VoteLedger",
    "build_listings",
    "escape_text",
    "order_by_votes",
]
