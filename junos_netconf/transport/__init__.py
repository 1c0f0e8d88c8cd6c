"""
SSH transport, authentication and NETCONF framing
"""

from .auth import SSHClientConfig, build_ssh_config
from .connect import Connection, ConnectionEstablisher
from .host_keys import KnownHostsVerifier
from .netconf import NetconfSession, RPCDiagnostic, RPCReply

__all__ = [
    "SSHClientConfig",
    "build_ssh_config",
    "Connection",
    "ConnectionEstablisher",
    "KnownHostsVerifier",
    "NetconfSession",
    "RPCDiagnostic",
    "RPCReply",
]
