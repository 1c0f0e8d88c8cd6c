#!/usr/bin/env python3
"""
Junos NETCONF Session

One Session owns one NETCONF transport and the device facts read right after
the handshake. It exposes the candidate-configuration operations:

- command / command_xml: operational RPCs
- config_set / config_load / config_get: candidate edits and reads
- config_lock / config_unlock / config_clear: candidate lock protocol
- commit_conf: plain or confirmed commit
- close: close-session RPC then transport teardown

A Session is not safe for concurrent use; callers serialize transactions
with the process gate (see gate.py).
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional
from xml.sax.saxutils import escape

from junos_netconf.models.decoder import decode_reply, find_root, parse_xml
from junos_netconf.models.facts import RPC_SYSTEM_INFORMATION, SystemInformation
from junos_netconf.transport.connect import ConnectionEstablisher
from junos_netconf.transport.netconf import NetconfSession, RPCDiagnostic, RPCReply, inner_xml, read_diagnostics
from junos_netconf.utils.cancellation import CancelToken
from junos_netconf.utils.error_handling import (
    CommitConfirmAbortedError,
    CommitError,
    DeviceRPCError,
    EmptyOutputError,
    IncompatibleDeviceError,
    InternalError,
    JunosError,
    LockAbortedError,
    ProtocolError,
    TransportError,
    ValidationError,
)

RPC_COMMAND_TEXT = '<command format="text">{}</command>'
RPC_LOAD_CONFIG_SET = '<load-configuration action="set" format="text"><configuration-set>{}</configuration-set></load-configuration>'
RPC_LOAD_CONFIG_TEXT = '<load-configuration action="{}" format="text"><configuration-text>{}</configuration-text></load-configuration>'
RPC_LOAD_CONFIG_JSON = '<load-configuration action="{}" format="json"><configuration-json>{}</configuration-json></load-configuration>'
RPC_LOAD_CONFIG_XML = '<load-configuration action="{}" format="xml">{}</load-configuration>'
RPC_GET_CONFIGURATION = '<get-configuration database="committed" format="{}">{}</get-configuration>'
RPC_COMMIT = "<commit-configuration><log>{}</log></commit-configuration>"
RPC_COMMIT_CONFIRMED = (
    "<commit-configuration><confirmed/><confirm-timeout>{}</confirm-timeout>"
    "<log>{}</log></commit-configuration>"
)
RPC_LOCK_CANDIDATE = "<lock><target><candidate/></target></lock>"
RPC_UNLOCK_CANDIDATE = "<unlock><target><candidate/></target></unlock>"
RPC_DELETE_CANDIDATE = "<delete-config><target><candidate/></target></delete-config>"
RPC_CLOSE_SESSION = "<close-session/>"

LOAD_ACTION_SET = "set"

CONFIG_FORMAT_TEXT = "text"
CONFIG_FORMAT_SET = "set"
CONFIG_FORMAT_XML = "xml"
CONFIG_FORMAT_XML_MINIFIED = "xml-minified"
CONFIG_FORMAT_JSON = "json"
CONFIG_FORMAT_JSON_MINIFIED = "json-minified"
CONFIG_FORMATS = (
    CONFIG_FORMAT_TEXT,
    CONFIG_FORMAT_SET,
    CONFIG_FORMAT_XML,
    CONFIG_FORMAT_XML_MINIFIED,
    CONFIG_FORMAT_JSON,
    CONFIG_FORMAT_JSON_MINIFIED,
)


@dataclass(frozen=True)
class SessionPolicy:
    """Timing and commit policy copied from the Client when a Session starts"""

    sleep_short: int = 100  # milliseconds, settle time after a successful lock
    sleep_lock: int = 10  # seconds between lock attempts
    sleep_ssh_closed: int = 0  # seconds after close
    commit_confirmed: int = 0  # seconds, 0 disables confirmed commit
    commit_confirmed_wait_percent: int = 90

    @property
    def commit_confirmed_wait(self) -> float:
        """Seconds to wait between the confirmed commit and the finalizing commit"""
        return self.commit_confirmed * self.commit_confirmed_wait_percent / 100


def _join(diagnostics: List[RPCDiagnostic]) -> str:
    return "\n".join(str(d) for d in diagnostics)


def classify_commit_reply(reply: RPCReply, commit_type: str) -> List[str]:
    """
    Split commit diagnostics into fatal errors and advisory warnings.

    Diagnostics of severity "error" abort; anything else is returned as a
    warning. Nested <commit-results> rpc-errors are scanned the same way.

    Returns:
        Warning messages

    Raises:
        CommitError: at least one "error" diagnostic, with the warnings attached
        ProtocolError: unparsable commit-results
    """
    warnings = []

    def scan(diagnostics: List[RPCDiagnostic]):
        errors = []
        for diagnostic in diagnostics:
            if diagnostic.is_error:
                errors.append(diagnostic)
            else:
                warnings.append(str(diagnostic))
        if errors:
            raise CommitError(f"{commit_type}: {_join(errors)}", commit_type, errors, warnings)

    scan(reply.errors)

    if "<commit-results" in reply.data:
        results = find_root(parse_xml(reply.data), "commit-results")
        if results is None:
            raise ProtocolError(f"unreadable commit-results in reply of {commit_type}", reply.data)
        scan(read_diagnostics(results))

    return warnings


def load_reply_diagnostics(reply: RPCReply) -> List[RPCDiagnostic]:
    """
    Diagnostics of a load-configuration reply, including those nested in
    <load-configuration-results>

    Raises:
        ProtocolError: unparsable load-configuration-results
    """
    diagnostics = list(reply.errors)
    if "<load-configuration-results" in reply.data:
        results = find_root(parse_xml(reply.data), "load-configuration-results")
        if results is None:
            raise ProtocolError("unreadable load-configuration-results in reply", reply.data)
        diagnostics.extend(read_diagnostics(results))
    return diagnostics


def _unwrap_command_output(data: str) -> str:
    root = parse_xml(data)
    output = find_root(root, "configuration-output")
    if output is None:
        output = find_root(root, "output")
    if output is not None:
        return output.text or ""
    first = next(iter(root), None)
    if first is None:
        return (root.text or "").strip()
    return inner_xml(first)


class Session:
    """Live (or offline) session with one Junos device"""

    def __init__(
        self,
        netconf: Optional[NetconfSession],
        policy: Optional[SessionPolicy] = None,
        debug_log: Optional[Callable[[str], None]] = None,
        local_address: str = "",
        remote_address: str = "",
        logger: Optional[logging.Logger] = None,
    ):
        self.netconf = netconf
        self.policy = policy or SessionPolicy()
        self.debug_log = debug_log or (lambda message: None)
        self.local_address = local_address
        self.remote_address = remote_address
        self.system_information = SystemInformation()
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def connect(
        cls,
        establisher: ConnectionEstablisher,
        policy: Optional[SessionPolicy] = None,
        debug_log: Optional[Callable[[str], None]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> "Session":
        """
        Establish the connection and gather device facts

        Raises:
            TransportError: connection failed after every retry
            JunosError: facts could not be read (session already closed)
            IncompatibleDeviceError: empty hardware model; the still-open
                session is attached as `error.session`
        """
        connection = establisher.establish(cancel)
        session = cls(
            connection.netconf,
            policy,
            debug_log,
            connection.local_address,
            connection.remote_address,
        )
        session.debug_log(
            f"[connect] {session.local_address} -> {session.remote_address} "
            f"({establisher.params.address})"
        )
        try:
            session.gather_facts()
        except JunosError:
            session.close_quietly()
            raise

        if not session.system_information.hardware_model:
            raise IncompatibleDeviceError(
                "can't read model of device with <get-system-information/> netconf command",
                session=session,
            )
        return session

    @property
    def connected(self) -> bool:
        return self.netconf is not None

    def _require_netconf(self, operation: str) -> NetconfSession:
        if self.netconf is None:
            raise InternalError(f"{operation} called on a session without netconf transport")
        return self.netconf

    def _exec(self, rpc: str, operation: str) -> RPCReply:
        netconf = self._require_netconf(operation)
        try:
            return netconf.exec(rpc)
        except TransportError as e:
            raise TransportError(
                f"executing netconf {operation}: {e.message}",
                host=self.remote_address,
                technical_details=rpc,
            ) from e

    def _check(self, reply: RPCReply, rpc: str, operation: str) -> RPCReply:
        if reply.has_errors:
            raise DeviceRPCError(f"executing netconf {operation}: {_join(reply.errors)}", rpc, reply.errors)
        return reply

    def gather_facts(self) -> SystemInformation:
        """Read <get-system-information/> into system_information"""
        reply = self._check(
            self._exec(RPC_SYSTEM_INFORMATION, "get-system-information"),
            RPC_SYSTEM_INFORMATION,
            "get-system-information",
        )
        self.system_information = decode_reply(reply.data, SystemInformation)
        self.logger.debug(
            f"Device facts: model={self.system_information.hardware_model} "
            f"version={self.system_information.os_version}"
        )
        return self.system_information

    def command(self, cmd: str) -> str:
        """
        Run an operational command (show / execute) in text format

        Returns:
            Command output

        Raises:
            DeviceRPCError: device rejected the command
            EmptyOutputError: no usable output; `error.output` is "empty"
        """
        rpc = RPC_COMMAND_TEXT.format(escape(cmd))
        self.debug_log(f"[command] {cmd}")
        reply = self._check(self._exec(rpc, "command"), rpc, "command")
        if len(reply.data) <= 1 or not reply.data.strip():
            raise EmptyOutputError(cmd)
        output = _unwrap_command_output(reply.data)
        self.debug_log(f"[command] output: {output!r}")
        return output

    def command_xml(self, rpc: str) -> str:
        """Send a raw XML RPC and return the reply data unmodified"""
        self.debug_log(f"[command_xml] {rpc}")
        reply = self._check(self._exec(rpc, "xml command"), rpc, "xml command")
        return reply.data

    def _load(self, rpc: str, operation: str) -> str:
        reply = self._exec(rpc, operation)
        diagnostics = load_reply_diagnostics(reply)
        if diagnostics:
            message = "".join(d.message + "\n" for d in diagnostics)
            self.debug_log(f"[{operation}] device message: {message!r}")
            return message
        return ""

    def config_set(self, lines: List[str]) -> str:
        """
        Load set/delete lines into the candidate configuration with one RPC

        Device rejections of individual lines are not fatal.

        Returns:
            Device messages joined by newlines, "" when every line loaded
        """
        payload = "\n".join(lines)
        rpc = RPC_LOAD_CONFIG_SET.format(escape(payload))
        self.debug_log(f"[config_set] {lines}")
        return self._load(rpc, "load-configuration set")

    def config_load(self, config: str, action: str = "merge", config_format: str = CONFIG_FORMAT_XML) -> str:
        """
        Load a configuration document; same message semantics as config_set

        Args:
            config: Configuration in `config_format`; XML is sent as-is
                (a <configuration> element), text and json are escaped
            action: merge, replace, override, update or set
            config_format: text, json or xml; ignored with action "set"

        Raises:
            ValidationError: unknown config_format
        """
        if action == LOAD_ACTION_SET:
            rpc = RPC_LOAD_CONFIG_SET.format(escape(config))
        elif config_format == CONFIG_FORMAT_JSON:
            rpc = RPC_LOAD_CONFIG_JSON.format(action, escape(config))
        elif config_format == CONFIG_FORMAT_TEXT:
            rpc = RPC_LOAD_CONFIG_TEXT.format(action, escape(config))
        elif config_format == CONFIG_FORMAT_XML:
            rpc = RPC_LOAD_CONFIG_XML.format(action, config)
        else:
            raise ValidationError(f"unsupported load format {config_format!r}", parameter="config_format")
        self.debug_log(f"[config_load] action={action} format={config_format}")
        return self._load(rpc, f"load-configuration {action} {config_format}")

    def config_get(self, configuration_filter: str = "", config_format: str = CONFIG_FORMAT_TEXT) -> str:
        """
        Read the committed configuration

        Args:
            configuration_filter: Optional <configuration> subtree filter
            config_format: text, set, xml, xml-minified, json or json-minified

        Returns:
            Configuration without its leading newline; xml and json formats
            return the reply data as received

        Raises:
            ValidationError: unknown config_format
            ProtocolError: device answered in xml to a json or minified request
        """
        if config_format not in CONFIG_FORMATS:
            raise ValidationError(f"unsupported configuration format {config_format!r}", parameter="config_format")
        rpc = RPC_GET_CONFIGURATION.format(config_format, configuration_filter)
        reply = self._check(self._exec(rpc, "get-configuration"), rpc, "get-configuration")
        data = reply.data.lstrip("\n")

        if config_format == CONFIG_FORMAT_JSON_MINIFIED and data.startswith("<configuration"):
            raise ProtocolError(f"format {config_format} appears unsupported, device responds in xml", reply.data)
        if config_format == CONFIG_FORMAT_XML_MINIFIED and data.startswith("<configuration") and ">\n" in data:
            raise ProtocolError(
                f"format {config_format} appears unsupported, device responds in xml but not minified",
                reply.data,
            )
        if config_format in (
            CONFIG_FORMAT_JSON, CONFIG_FORMAT_JSON_MINIFIED, CONFIG_FORMAT_XML, CONFIG_FORMAT_XML_MINIFIED,
        ):
            return data

        tag = "configuration-set" if config_format == CONFIG_FORMAT_SET else "configuration-text"
        root = parse_xml(reply.data)
        text = find_root(root, tag)
        if text is None:
            text = find_root(root, "configuration-output")
        if text is None:
            raise ProtocolError(f"<{tag}> not found in reply", reply.data)
        return (text.text or "").lstrip("\n")

    def _try_lock(self) -> bool:
        try:
            reply = self._exec(RPC_LOCK_CANDIDATE, "lock")
        except (TransportError, ProtocolError) as e:
            self.logger.debug(f"Candidate lock attempt failed: {e}")
            return False
        return not reply.has_errors

    def config_lock(self, cancel: Optional[CancelToken] = None) -> None:
        """
        Lock the candidate configuration, polling until success or cancellation

        Raises:
            LockAbortedError: cancel fired before the lock was obtained
        """
        self._require_netconf("lock")
        cancel = cancel or CancelToken(operation_name="candidate lock")
        while True:
            if cancel.cancelled:
                raise LockAbortedError()
            if self._try_lock():
                self.debug_log("[config_lock] candidate locked")
                time.sleep(self.policy.sleep_short / 1000)
                return
            self.debug_log(f"[config_lock] candidate already locked, retry in {self.policy.sleep_lock}s")
            self.logger.info(
                f"Candidate configuration of {self.remote_address} is locked, "
                f"retry in {self.policy.sleep_lock}s"
            )
            if cancel.wait(self.policy.sleep_lock):
                raise LockAbortedError()

    def _collect(self, rpc: str, operation: str) -> List[JunosError]:
        try:
            reply = self._exec(rpc, operation)
        except (TransportError, ProtocolError, InternalError) as e:
            return [e]
        return [DeviceRPCError(f"config {operation}: {d.message}", rpc, [d]) for d in reply.errors]

    def config_unlock(self) -> List[JunosError]:
        """Unlock the candidate configuration, returning every failure"""
        return self._collect(RPC_UNLOCK_CANDIDATE, "unlock")

    def config_clear(self) -> List[JunosError]:
        """
        Discard candidate changes and unlock.

        Both RPCs are always sent, even when the first one fails.

        Returns:
            Every failure of both RPCs
        """
        errors = self._collect(RPC_DELETE_CANDIDATE, "clear")
        errors.extend(self.config_unlock())
        self.debug_log(f"[config_clear] {len(errors)} error(s)")
        return errors

    def commit_conf(self, log_message: str, cancel: Optional[CancelToken] = None) -> List[str]:
        """
        Commit the candidate configuration

        With a commit_confirmed timeout the commit is sent with <confirmed/>,
        then after commit_confirmed_wait seconds a plain commit finalizes it.
        If the finalizing commit never reaches the device, the device itself
        reverts when its confirm timer expires.

        Returns:
            Warning messages from every commit RPC sent

        Raises:
            CommitError: device reported an "error" diagnostic
            CommitConfirmAbortedError: cancelled during the confirm wait
        """
        if self.policy.commit_confirmed > 0:
            return self._commit_confirmed(log_message, cancel)

        rpc = RPC_COMMIT.format(escape(log_message))
        self.debug_log(f"[commit] {log_message}")
        return classify_commit_reply(self._exec(rpc, "commit"), "commit-configuration")

    def _commit_confirmed(self, log_message: str, cancel: Optional[CancelToken]) -> List[str]:
        timeout = self.policy.commit_confirmed
        rpc = RPC_COMMIT_CONFIRMED.format(timeout, escape(log_message))
        self.debug_log(f"[commit] confirmed {timeout}: {log_message}")
        warnings = classify_commit_reply(
            self._exec(rpc, f"commit (confirmed {timeout})"),
            "commit-configuration(confirmed)",
        )

        wait = self.policy.commit_confirmed_wait
        self.logger.info(f"Waiting {wait:.1f}s before confirming commit on {self.remote_address}")
        cancel = cancel or CancelToken(operation_name="commit confirmation")
        if cancel.wait(wait):
            raise CommitConfirmAbortedError(warnings=warnings)

        confirm = RPC_COMMIT.format(escape(log_message))
        self.debug_log("[commit] confirm")
        try:
            warnings.extend(
                classify_commit_reply(
                    self._exec(confirm, "commit (to confirm)"),
                    "commit-configuration(confirm)",
                )
            )
        except CommitError as e:
            e.warnings = warnings + e.warnings
            raise
        return warnings

    def close(self) -> None:
        """
        Send <close-session/> then tear the transport down whatever the reply

        Raises:
            TransportError: close-session failed (transport is closed anyway)
        """
        if self.netconf is None:
            return
        netconf, self.netconf = self.netconf, None
        error = None
        try:
            netconf.exec(RPC_CLOSE_SESSION)
        except (TransportError, ProtocolError) as e:
            error = e
        finally:
            netconf.close()
            self.debug_log("[close] session closed")
            if self.policy.sleep_ssh_closed > 0:
                time.sleep(self.policy.sleep_ssh_closed)
        if error is not None:
            raise TransportError(f"closing netconf session: {error}", host=self.remote_address) from error

    def close_quietly(self) -> None:
        """close(), logging instead of raising"""
        try:
            self.close()
        except JunosError as e:
            self.logger.warning(f"Error closing session with {self.remote_address}: {e}")
