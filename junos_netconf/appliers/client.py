#!/usr/bin/env python3
"""
Junos NETCONF Client

Owns the configuration of one device connection and drives the transaction
protocol:

    config_lock -> config_set (one or more) -> commit_conf -> config_clear -> close

config_clear runs on every exit from a locked transaction, success or failure.
The process-wide TransactionGate is held from lock through clear so that
independently constructed clients never race on the candidate configuration.

Fake mode: with fake_create_set_file configured and no live session,
config_set appends the lines to that file instead of contacting a device.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

from junos_netconf.appliers.gate import TransactionGate, get_transaction_gate
from junos_netconf.appliers.session import Session, SessionPolicy
from junos_netconf.transport.auth import build_ssh_config
from junos_netconf.transport.connect import ConnectionEstablisher
from junos_netconf.utils.cancellation import CancelToken
from junos_netconf.utils.config import JunosConfig
from junos_netconf.utils.error_handling import (
    ConfigurationError,
    DeviceRPCError,
    IncompatibleDeviceError,
    InternalError,
    JunosError,
)
from junos_netconf.utils.logging import NetconfDebugLog, append_lines


class Client:
    """Transaction engine for one Junos device"""

    def __init__(
        self,
        config: JunosConfig,
        gate: Optional[TransactionGate] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            config: Settings; copied, later changes to it have no effect
            gate: Transaction gate, the process-wide gate when None
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger(__name__)

        try:
            self.file_permission = config.file_mode
        except ValueError as e:
            raise ConfigurationError(f"invalid file permission {config.file_permission!r}: {e}")

        self.params = config.connection_parameters()
        self.policy = SessionPolicy(
            sleep_short=config.sleep_short,
            sleep_lock=config.sleep_lock,
            sleep_ssh_closed=config.sleep_ssh_closed,
            commit_confirmed=config.commit_confirmed,
            commit_confirmed_wait_percent=config.commit_confirmed_wait_percent,
        )
        self.group_interface_delete = config.group_interface_delete
        self.fake_create_set_file = config.fake_create_set_file
        self.fake_update_also = config.fake_update_also
        self.fake_delete_also = config.fake_delete_also
        self.debug_log = NetconfDebugLog(config.debug_netconf_log_path, self.file_permission)
        self.gate = gate or get_transaction_gate()

    @classmethod
    def from_env(cls, config_path: Optional[Path] = None, **kwargs) -> "Client":
        """
        Build a Client from JUNOS_* environment variables (and an optional JSON file)

        Raises:
            ConfigurationError: settings failed validation
        """
        config = JunosConfig.from_file(config_path) if config_path else JunosConfig()
        errors = config.validate(require_host=not config.fake_create_set_file)
        if errors:
            raise ConfigurationError(
                "invalid junos configuration: " + "; ".join(errors),
                guidance="Check the JUNOS_* environment variables",
            )
        return cls(config, **kwargs)

    # Fake mode

    def fake_create_enabled(self) -> bool:
        return bool(self.fake_create_set_file)

    def fake_update_enabled(self) -> bool:
        return self.fake_create_enabled() and self.fake_update_also

    def fake_delete_enabled(self) -> bool:
        return self.fake_create_enabled() and self.fake_delete_also

    def _write_fake_set_file(self, lines: List[str]) -> None:
        try:
            append_lines(self.fake_create_set_file, lines, self.file_permission)
        except OSError as e:
            raise JunosError(f"writing fake set file {self.fake_create_set_file}: {e}")
        self.logger.debug(f"Appended {len(lines)} line(s) to {self.fake_create_set_file}")

    # Sessions

    def start_new_session(self, cancel: Optional[CancelToken] = None) -> Session:
        """
        Connect to the device and gather its facts

        Raises:
            AuthenticationError: no usable credential
            TransportError: connection failed after every retry
            IncompatibleDeviceError: device did not report a model (session closed)
        """
        ssh_config = build_ssh_config(self.params)
        establisher = ConnectionEstablisher(self.params, ssh_config)
        self.logger.info(f"Opening NETCONF session to {self.params.address}")
        try:
            return Session.connect(establisher, self.policy, self.debug_log, cancel)
        except IncompatibleDeviceError as e:
            if e.session is not None:
                e.session.close_quietly()
            raise

    def new_session_without_netconf(self) -> Session:
        """Offline session for fake mode"""
        return Session(None, self.policy, self.debug_log)

    def close_session(self, session: Optional[Session]) -> None:
        if session is None:
            return
        session.close_quietly()

    # Gate

    def mutex_lock(self, cancel: Optional[CancelToken] = None) -> None:
        self.gate.acquire(cancel)

    def mutex_unlock(self) -> None:
        self.gate.release()

    # Operations

    def command(self, cmd: str, session: Session) -> str:
        return session.command(cmd)

    def command_xml(self, rpc: str, session: Session) -> str:
        return session.command_xml(rpc)

    def config_set(self, lines: List[str], session: Optional[Session]) -> None:
        """
        Apply set/delete lines to the candidate, or to the fake set file

        Raises:
            DeviceRPCError: device rejected one or more lines
            InternalError: neither a live session nor a fake set file
        """
        if session is not None and session.connected:
            message = session.config_set(lines)
            if message:
                raise DeviceRPCError(f"load-configuration set: {message.rstrip()}", "load-configuration set")
            return
        if self.fake_create_set_file:
            self._write_fake_set_file(lines)
            return
        raise InternalError("config_set called without netconf session and without fake set file")

    def config_lock(self, session: Session, cancel: Optional[CancelToken] = None) -> None:
        session.config_lock(cancel)

    def config_clear(self, session: Session) -> List[JunosError]:
        return session.config_clear()

    def commit_conf(self, log_message: str, session: Session, cancel: Optional[CancelToken] = None) -> List[str]:
        """
        Returns:
            Commit warnings, each also logged at warning level
        """
        warnings = session.commit_conf(log_message, cancel)
        for warning in warnings:
            self.logger.warning(f"Commit warning on {self.params.host}: {warning}")
        return warnings

    @contextmanager
    def transaction(self, session: Session, cancel: Optional[CancelToken] = None):
        """
        Hold the gate and the candidate lock for a with-block.

        Clear and unlock always run on exit; their failures are logged.

            with client.transaction(session) as sess:
                client.config_set(lines, sess)
                client.commit_conf("message", sess)
        """
        with self.gate.hold(cancel):
            session.config_lock(cancel)
            try:
                yield session
            finally:
                for error in session.config_clear():
                    self.logger.warning(f"Candidate clear/unlock on {self.params.host}: {error}")

    def apply(
        self,
        lines: List[str],
        log_message: str,
        cancel: Optional[CancelToken] = None,
        session: Optional[Session] = None,
    ) -> List[str]:
        """
        Full transaction: lock, set, commit, clear/unlock

        In fake mode without a session the lines go to the fake set file.
        A session opened here is closed before returning.

        Returns:
            Commit warnings
        """
        if session is None and self.fake_create_enabled():
            self.config_set(lines, None)
            return []

        own_session = session is None
        if own_session:
            session = self.start_new_session(cancel)
        try:
            with self.transaction(session, cancel):
                self.config_set(lines, session)
                return self.commit_conf(log_message, session, cancel)
        finally:
            if own_session:
                self.close_session(session)
