"""
Configuration Transaction Module - NETCONF session operations and the Client

Applies batches of set/delete lines to the candidate configuration of a Junos
device, commits them (optionally confirmed) and always clears and unlocks the
candidate afterwards.

SECURITY WARNING: This module modifies device configurations. SSH host keys
are only verified when a known_hosts file is configured.
"""

from .client import Client
from .gate import TransactionGate, get_transaction_gate
from .session import Session, SessionPolicy, classify_commit_reply

__all__ = [
    # Transaction engine
    "Client",
    "Session",
    "SessionPolicy",
    "classify_commit_reply",
    # Process gate
    "TransactionGate",
    "get_transaction_gate",
]
