"""
Junos NETCONF - transactional configuration client for Junos devices.

Provides:
- NETCONF over SSH sessions with bounded connection retry
- Candidate configuration lock, set, commit (plain or confirmed) and unlock
- Process-wide serialization of configuration transactions
- Fake mode writing set lines to a local file instead of a device
- Typed decoding of common operational replies
"""

__version__ = "0.1.0"

from junos_netconf.appliers import Client, Session, SessionPolicy, TransactionGate
from junos_netconf.utils.cancellation import CancelToken
from junos_netconf.utils.config import JunosConfig

__all__ = [
    "Client",
    "Session",
    "SessionPolicy",
    "TransactionGate",
    "CancelToken",
    "JunosConfig",
]
