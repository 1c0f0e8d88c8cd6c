#!/usr/bin/env python3
"""
Opt-in SSH host key verification against an OpenSSH known_hosts file.

Without a known_hosts file the handshake accepts any server host key.
With one, unknown hosts and mismatched keys are rejected; hosts are never
added automatically.
"""

import logging
from pathlib import Path
from typing import List, Optional

import paramiko

from junos_netconf.utils.error_handling import ConfigurationError

SSH_DEFAULT_PORT = 22


class KnownHostsVerifier:
    """Strict host key check against a pre-deployed known_hosts file"""

    def __init__(self, known_hosts_path: str, logger: Optional[logging.Logger] = None):
        """
        Args:
            known_hosts_path: OpenSSH known_hosts file
            logger: Optional logger instance

        Raises:
            ConfigurationError: file missing or unreadable
        """
        self.logger = logger or logging.getLogger(__name__)
        self.known_hosts_path = Path(known_hosts_path)
        self.host_keys = paramiko.HostKeys()

        if not self.known_hosts_path.exists():
            raise ConfigurationError(
                f"known_hosts file missing: {self.known_hosts_path}",
                guidance="Collect the device host keys (ssh-keyscan -p 830 <host>) before connecting",
            )
        try:
            self.host_keys.load(str(self.known_hosts_path))
        except Exception as e:
            raise ConfigurationError(f"Cannot load known_hosts file {self.known_hosts_path}: {e}")
        self.logger.debug(f"Loaded {len(self.host_keys)} host keys from {self.known_hosts_path}")

    @staticmethod
    def lookup_names(host: str, port: int) -> List[str]:
        """known_hosts names for host:port, most specific first"""
        if port == SSH_DEFAULT_PORT:
            return [host]
        return [f"[{host}]:{port}", host]

    @staticmethod
    def fingerprint(key: paramiko.PKey) -> str:
        return f"{key.get_name()} {key.get_fingerprint().hex()}"

    def verify(self, host: str, port: int, key: paramiko.PKey) -> None:
        """
        Check the key presented by host:port

        Raises:
            paramiko.SSHException: host not in known_hosts
            paramiko.BadHostKeyException: host known with a different key
        """
        entry = None
        for name in self.lookup_names(host, port):
            entry = self.host_keys.lookup(name)
            if entry:
                break

        if not entry:
            self.logger.error(
                f"UNKNOWN HOST rejected: {host}:{port} with key {self.fingerprint(key)}. "
                f"Add it to {self.known_hosts_path} before connecting."
            )
            raise paramiko.SSHException(f"Host {host}:{port} not in known_hosts {self.known_hosts_path}")

        known_key = entry.get(key.get_name())
        if known_key is None or known_key.get_fingerprint() != key.get_fingerprint():
            expected = known_key or next(iter(entry.values()))
            self.logger.error(
                f"HOST KEY MISMATCH for {host}:{port}! "
                f"Expected {self.fingerprint(expected)}, received {self.fingerprint(key)}"
            )
            raise paramiko.BadHostKeyException(host, key, expected)

        self.logger.debug(f"Host {host}:{port} key verified: {self.fingerprint(key)}")
