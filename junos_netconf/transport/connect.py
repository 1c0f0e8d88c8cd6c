#!/usr/bin/env python3
"""
Connection establisher: TCP dial plus SSH / NETCONF handshake with bounded
retry and linear backoff (1s, 2s, ... between attempts).
"""

import logging
import socket
import time
from dataclasses import dataclass
from typing import Callable, Optional

import paramiko

from junos_netconf.transport.auth import SSHClientConfig, authenticate
from junos_netconf.transport.netconf import NetconfSession
from junos_netconf.utils.cancellation import CancelToken
from junos_netconf.utils.config import ConnectionParameters, clamp_retry
from junos_netconf.utils.error_handling import ProtocolError, TransportError

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """Result of a successful connect and handshake"""

    netconf: NetconfSession
    local_address: str = ""
    remote_address: str = ""


def _format_address(sockname) -> str:
    try:
        return f"{sockname[0]}:{sockname[1]}"
    except (TypeError, IndexError):
        return str(sockname)


def dial(params: ConnectionParameters) -> socket.socket:
    """Open the TCP connection"""
    return socket.create_connection((params.host, params.port), timeout=params.timeout)


def handshake(sock: socket.socket, ssh_config: SSHClientConfig) -> NetconfSession:
    """
    Run the SSH handshake and authentication, then open the netconf subsystem.

    The server host key is checked by ssh_config.host_key_verifier when set,
    otherwise it is accepted without verification.

    Raises:
        TransportError: no allowed cipher is supported locally
        paramiko.SSHException: handshake, host key, auth or channel failure
        ProtocolError: invalid NETCONF hello
    """
    transport = paramiko.Transport(sock)
    try:
        security = transport.get_security_options()
        supported = [c for c in ssh_config.ciphers if c in security.ciphers]
        unsupported = [c for c in ssh_config.ciphers if c not in security.ciphers]
        if unsupported:
            logger.debug(f"Ignoring ciphers not supported by paramiko: {unsupported}")
        if not supported:
            raise TransportError(f"none of the ssh ciphers {list(ssh_config.ciphers)} is supported")
        security.ciphers = supported

        transport.start_client(timeout=ssh_config.timeout)
        if ssh_config.host_key_verifier is not None:
            ssh_config.host_key_verifier(transport.get_remote_server_key())
        authenticate(transport, ssh_config)
        return NetconfSession.open(transport)
    except Exception:
        transport.close()
        raise


class ConnectionEstablisher:
    """
    Dial and handshake with retry.

    Both phases share one policy: up to `retry` attempts (clamped to 1..10),
    sleeping `attempt` seconds after each failed attempt that still leaves
    budget. A fired cancellation token stops retrying immediately.
    """

    def __init__(
        self,
        params: ConnectionParameters,
        ssh_config: SSHClientConfig,
        dialer: Callable[[ConnectionParameters], socket.socket] = dial,
        handshaker: Callable[[socket.socket, SSHClientConfig], NetconfSession] = handshake,
        logger: Optional[logging.Logger] = None,
    ):
        self.params = params
        self.ssh_config = ssh_config
        self.retry = clamp_retry(params.retry)
        self.dialer = dialer
        self.handshaker = handshaker
        self.logger = logger or logging.getLogger(__name__)

    def _backoff(self, attempt: int, error: TransportError, cancel: Optional[CancelToken]) -> None:
        """Sleep before the next attempt, or raise `error` when no attempt is left"""
        if cancel is not None and cancel.cancelled:
            raise error
        if attempt >= self.retry:
            raise error
        self.logger.warning(f"{error.message}, retry in {attempt}s ({attempt}/{self.retry})")
        if cancel is None:
            time.sleep(attempt)
        elif cancel.wait(attempt):
            raise error

    def establish(self, cancel: Optional[CancelToken] = None) -> Connection:
        """
        Connect to the device

        Args:
            cancel: Optional cancellation token or deadline

        Returns:
            Connection holding the live NETCONF session

        Raises:
            TransportError: every attempt failed, or cancelled
        """
        address = self.params.address
        for attempt in range(1, self.retry + 1):
            self.logger.debug(f"Connecting to {address} (attempt {attempt}/{self.retry})")
            try:
                sock = self.dialer(self.params)
            except OSError as e:
                error = TransportError(f"failed to connect to {address}: {e}", host=self.params.host)
                self._backoff(attempt, error, cancel)
                continue

            try:
                netconf = self.handshaker(sock, self.ssh_config)
            except (paramiko.SSHException, OSError, ProtocolError, TransportError) as e:
                sock.close()
                error = TransportError(
                    f"failed to initialize netconf over ssh with {address}: {e}",
                    host=self.params.host,
                    technical_details=getattr(e, "payload", None),
                )
                self._backoff(attempt, error, cancel)
                continue

            try:
                local_address = _format_address(sock.getsockname())
                remote_address = _format_address(sock.getpeername())
            except OSError:
                local_address = remote_address = ""
            self.logger.info(f"NETCONF session established with {address}")
            return Connection(netconf, local_address, remote_address)

        raise TransportError(f"failed to connect to {address}", host=self.params.host)
