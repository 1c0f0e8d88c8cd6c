#!/usr/bin/env python3
"""
Configuration Management for the Junos NETCONF client

Provides configuration handling with:
- Environment variable support (JUNOS_* variables)
- JSON configuration file support
- Default values and validation
- The immutable connection parameters handed to the establisher
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional, Tuple

from junos_netconf.utils.error_handling import ConfigurationError

DEFAULT_PORT = 830
DEFAULT_USERNAME = "netconf"
DEFAULT_SSH_CIPHERS = [
    "aes128-gcm@openssh.com",
    "chacha20-poly1305@openssh.com",
    "aes128-ctr",
    "aes192-ctr",
    "aes256-ctr",
    "aes128-cbc",
]
MAX_SSH_RETRY = 10

_TRUE_VALUES = ("1", "true", "yes")


def _env_int(name: str, current: int) -> int:
    value = os.getenv(name)
    if value:
        try:
            return int(value)
        except ValueError:
            pass
    return current


def _env_bool(name: str, current: bool) -> bool:
    value = os.getenv(name)
    if value:
        return value.lower() in _TRUE_VALUES
    return current


def parse_file_permission(value: str) -> int:
    """Parse an octal mode string such as "644" or "0644" """
    mode = int(str(value), 8)
    if mode < 0 or mode > 0o777:
        raise ValueError(f"file permission out of range: {value}")
    return mode


def _matches_type(value, expected) -> bool:
    """JSON value check against a JunosConfig field type"""
    if expected is bool:
        return isinstance(value, bool)
    if expected is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if expected is str:
        return isinstance(value, str)
    if getattr(expected, "__origin__", None) is list:
        (item_type,) = expected.__args__
        return isinstance(value, list) and all(_matches_type(item, item_type) for item in value)
    return True


def _type_name(expected) -> str:
    return getattr(expected, "__name__", None) or str(expected).replace("typing.", "")


def clamp_retry(retry: int) -> int:
    """Clamp a connection retry budget to [1, MAX_SSH_RETRY]"""
    return max(1, min(MAX_SSH_RETRY, retry))


@dataclass(frozen=True)
class ConnectionParameters:
    """Immutable connection parameters owned by a Client"""

    host: str
    port: int = DEFAULT_PORT
    username: str = DEFAULT_USERNAME
    password: str = field(default="", repr=False)
    key_pem: str = field(default="", repr=False)
    key_file: str = ""
    key_pass: str = field(default="", repr=False)
    ciphers: Tuple[str, ...] = tuple(DEFAULT_SSH_CIPHERS)
    timeout: Optional[float] = None
    retry: int = 1
    known_hosts_file: str = ""

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class JunosConfig:
    """Connection, timing, commit and fake-mode settings"""

    host: str = ""
    port: int = DEFAULT_PORT
    username: str = DEFAULT_USERNAME
    password: str = ""
    key_pem: str = ""
    key_file: str = ""
    key_pass: str = ""
    group_interface_delete: str = ""
    sleep_short: int = 100  # milliseconds
    sleep_lock: int = 10  # seconds
    sleep_ssh_closed: int = 0  # seconds
    commit_confirmed: int = 0  # seconds, 0 disables confirmed commit
    commit_confirmed_wait_percent: int = 90
    ssh_ciphers: List[str] = field(default_factory=lambda: list(DEFAULT_SSH_CIPHERS))
    ssh_timeout_to_establish: int = 0  # seconds, 0 means no timeout
    ssh_retry_to_establish: int = 1
    ssh_known_hosts_file: str = ""  # empty disables host key verification
    file_permission: str = "0644"
    debug_netconf_log_path: str = ""
    fake_create_set_file: str = ""
    fake_update_also: bool = False
    fake_delete_also: bool = False

    def __post_init__(self):
        """Apply environment variable overrides"""
        for attr, name in (
            ("host", "JUNOS_HOST"),
            ("username", "JUNOS_USERNAME"),
            ("password", "JUNOS_PASSWORD"),
            ("key_pem", "JUNOS_KEYPEM"),
            ("key_file", "JUNOS_KEYFILE"),
            ("key_pass", "JUNOS_KEYPASS"),
            ("group_interface_delete", "JUNOS_GROUP_INTERFACE_DELETE"),
            ("file_permission", "JUNOS_FILE_PERMISSION"),
            ("debug_netconf_log_path", "JUNOS_LOG_PATH"),
            ("fake_create_set_file", "JUNOS_FAKECREATE_SETFILE"),
            ("ssh_known_hosts_file", "JUNOS_SSH_KNOWN_HOSTS"),
        ):
            if os.getenv(name):
                setattr(self, attr, os.getenv(name))

        self.port = _env_int("JUNOS_PORT", self.port)
        self.sleep_short = _env_int("JUNOS_SLEEP_SHORT", self.sleep_short)
        self.sleep_lock = _env_int("JUNOS_SLEEP_LOCK", self.sleep_lock)
        self.sleep_ssh_closed = _env_int("JUNOS_SLEEP_SSH_CLOSED", self.sleep_ssh_closed)
        self.commit_confirmed = _env_int("JUNOS_COMMIT_CONFIRMED", self.commit_confirmed)
        self.commit_confirmed_wait_percent = _env_int(
            "JUNOS_COMMIT_CONFIRMED_WAIT_PERCENT", self.commit_confirmed_wait_percent
        )
        self.ssh_timeout_to_establish = _env_int(
            "JUNOS_SSH_TIMEOUT_TO_ESTABLISH", self.ssh_timeout_to_establish
        )
        self.ssh_retry_to_establish = _env_int(
            "JUNOS_SSH_RETRY_TO_ESTABLISH", self.ssh_retry_to_establish
        )
        self.fake_update_also = _env_bool("JUNOS_FAKEUPDATE_ALSO", self.fake_update_also)
        self.fake_delete_also = _env_bool("JUNOS_FAKEDELETE_ALSO", self.fake_delete_also)

    @classmethod
    def from_file(cls, config_path: Path) -> "JunosConfig":
        """
        Load configuration from a JSON object of field names.

        Environment variables still take precedence over file values.

        Raises:
            ConfigurationError: unreadable file, unknown keys or wrong value types
        """
        try:
            with open(config_path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Failed to load config file {config_path}: {e}")

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a JSON object")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown keys in {config_path}: {', '.join(unknown)}",
                guidance=f"Valid keys: {', '.join(sorted(known))}",
            )

        types = {f.name: f.type for f in fields(cls)}
        wrong = [key for key, value in data.items() if not _matches_type(value, types[key])]
        if wrong:
            raise ConfigurationError(
                f"Wrong value types in {config_path}: "
                + ", ".join(f"{key} (expected {_type_name(types[key])}, got {data[key]!r})" for key in wrong)
            )

        logging.getLogger(__name__).info(f"Loaded configuration from {config_path}")
        return cls(**data)

    @property
    def file_mode(self) -> int:
        return parse_file_permission(self.file_permission)

    def validate(self, require_host: bool = True) -> List[str]:
        """
        Validate settings

        Returns:
            List of validation problems, empty when valid
        """
        errors = []

        if require_host and not self.host:
            errors.append("host is required (JUNOS_HOST)")
        if not 1 <= self.port <= 65535:
            errors.append(f"port must be between 1 and 65535, got {self.port}")
        if self.commit_confirmed != 0 and not 1 <= self.commit_confirmed <= 65535:
            errors.append(
                f"commit_confirmed must be 0 or between 1 and 65535, got {self.commit_confirmed}"
            )
        if not 0 <= self.commit_confirmed_wait_percent <= 99:
            errors.append(
                "commit_confirmed_wait_percent must be between 0 and 99, "
                f"got {self.commit_confirmed_wait_percent}"
            )
        if not 1 <= self.ssh_retry_to_establish <= MAX_SSH_RETRY:
            errors.append(
                f"ssh_retry_to_establish must be between 1 and {MAX_SSH_RETRY}, "
                f"got {self.ssh_retry_to_establish}"
            )
        for name in ("sleep_short", "sleep_lock", "sleep_ssh_closed", "ssh_timeout_to_establish"):
            if getattr(self, name) < 0:
                errors.append(f"{name} must not be negative")
        try:
            parse_file_permission(self.file_permission)
        except ValueError:
            errors.append(f"file_permission must be an octal mode, got {self.file_permission!r}")
        if self.ssh_known_hosts_file and not Path(self.ssh_known_hosts_file).is_file():
            errors.append(f"ssh_known_hosts_file not found: {self.ssh_known_hosts_file}")
        if not self.fake_create_set_file:
            if self.fake_update_also:
                errors.append("fake_update_also requires fake_create_set_file")
            if self.fake_delete_also:
                errors.append("fake_delete_also requires fake_create_set_file")

        return errors

    def connection_parameters(self) -> ConnectionParameters:
        """Snapshot the connection settings; the retry budget is clamped"""
        return ConnectionParameters(
            host=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            key_pem=self.key_pem,
            key_file=self.key_file,
            key_pass=self.key_pass,
            ciphers=tuple(self.ssh_ciphers),
            timeout=float(self.ssh_timeout_to_establish) if self.ssh_timeout_to_establish > 0 else None,
            retry=clamp_retry(self.ssh_retry_to_establish),
            known_hosts_file=self.ssh_known_hosts_file,
        )
