#!/usr/bin/env python3
"""
SSH authentication configuration.

Every configured credential source is an ordered provider that yields zero or
one auth candidate. The SSH client configuration offers the union of all
candidates to the server; which one the server accepts is its decision.

Host keys are verified only when a known_hosts file is configured (see
host_keys.py); otherwise any host key presented by the device is trusted.
"""

import io
import logging
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import paramiko

from junos_netconf.transport.host_keys import KnownHostsVerifier
from junos_netconf.utils.config import ConnectionParameters
from junos_netconf.utils.error_handling import AuthenticationError

logger = logging.getLogger(__name__)

# DSS keys are not supported by current paramiko releases
KEY_CLASSES = (paramiko.RSAKey, paramiko.ECDSAKey, paramiko.Ed25519Key)


@dataclass
class AuthCandidate:
    """One auth method offered to the server"""

    method: str  # "publickey" or "password"
    source: str
    keys: List[paramiko.PKey] = field(default_factory=list)
    password: str = field(default="", repr=False)


@dataclass
class SSHClientConfig:
    """Transport-level client configuration"""

    username: str
    candidates: List[AuthCandidate]
    ciphers: Tuple[str, ...]
    timeout: Optional[float] = None
    host_key_verifier: Optional[Callable[[paramiko.PKey], None]] = None

    @property
    def methods(self) -> List[str]:
        return [c.source for c in self.candidates]


def _load_private_key(loader, source: str, passphrase: str) -> paramiko.PKey:
    last_error = None
    for key_class in KEY_CLASSES:
        try:
            return loader(key_class, passphrase or None)
        except paramiko.PasswordRequiredException as e:
            raise AuthenticationError(f"{source} is encrypted and no passphrase was given: {e}")
        except (paramiko.SSHException, ValueError) as e:
            last_error = e
    raise AuthenticationError(f"failed to parse {source}: {last_error}")


class CredentialProvider:
    """Base class: yields at most one AuthCandidate"""

    name = "credential"

    def candidate(self) -> Optional[AuthCandidate]:
        raise NotImplementedError


class PemKeyProvider(CredentialProvider):
    name = "pem key"

    def __init__(self, pem: str, passphrase: str = ""):
        self.pem = pem
        self.passphrase = passphrase

    def candidate(self) -> Optional[AuthCandidate]:
        if not self.pem:
            return None
        key = _load_private_key(
            lambda cls, pw: cls.from_private_key(io.StringIO(self.pem), password=pw),
            "PEM key",
            self.passphrase,
        )
        return AuthCandidate(method="publickey", source=self.name, keys=[key])


class KeyFileProvider(CredentialProvider):
    name = "key file"

    def __init__(self, path: str, passphrase: str = ""):
        self.path = path
        self.passphrase = passphrase

    def candidate(self) -> Optional[AuthCandidate]:
        if not self.path:
            return None
        key_path = Path(self.path).expanduser()
        if not key_path.exists():
            raise AuthenticationError(f"Key file not found: {key_path}")
        try:
            key = _load_private_key(
                lambda cls, pw: cls.from_private_key_file(str(key_path), password=pw),
                f"key file {key_path}",
                self.passphrase,
            )
        except OSError as e:
            raise AuthenticationError(f"failed to read key file {key_path}: {e}")
        return AuthCandidate(method="publickey", source=self.name, keys=[key])


class AgentProvider(CredentialProvider):
    """SSH agent keys; an unreachable agent is logged and skipped"""

    name = "ssh agent"

    def __init__(self, agent_factory=paramiko.Agent):
        self.agent_factory = agent_factory

    def candidate(self) -> Optional[AuthCandidate]:
        try:
            keys = list(self.agent_factory().get_keys())
        except (paramiko.SSHException, OSError) as e:
            logger.warning(f"SSH agent unavailable, skipping agent auth: {e}")
            return None
        if not keys:
            logger.debug("SSH agent has no keys")
            return None
        return AuthCandidate(method="publickey", source=self.name, keys=keys)


class PasswordProvider(CredentialProvider):
    name = "password"

    def __init__(self, password: str):
        self.password = password

    def candidate(self) -> Optional[AuthCandidate]:
        if not self.password:
            return None
        return AuthCandidate(method="password", source=self.name, password=self.password)


def default_providers(params: ConnectionParameters) -> List[CredentialProvider]:
    """PEM key, key file, agent, then password"""
    return [
        PemKeyProvider(params.key_pem, params.key_pass),
        KeyFileProvider(params.key_file, params.key_pass),
        AgentProvider(),
        PasswordProvider(params.password),
    ]


def build_ssh_config(
    params: ConnectionParameters,
    providers: Optional[List[CredentialProvider]] = None,
) -> SSHClientConfig:
    """
    Build the SSH client configuration from every usable credential source

    Args:
        params: Connection parameters
        providers: Credential providers, default_providers(params) when None

    Returns:
        SSHClientConfig with at least one auth candidate

    Raises:
        AuthenticationError: a configured key could not be loaded, or no
            credential source produced a candidate
        ConfigurationError: the configured known_hosts file cannot be loaded
    """
    if providers is None:
        providers = default_providers(params)

    candidates = []
    for provider in providers:
        candidate = provider.candidate()
        if candidate is not None:
            candidates.append(candidate)

    if not candidates:
        raise AuthenticationError(
            "no credential available for ssh connection",
            host=params.host,
            guidance="Set a password, a PEM key, a key file or start an SSH agent",
        )

    logger.debug(f"SSH auth methods for {params.address}: {[c.source for c in candidates]}")

    host_key_verifier = None
    if params.known_hosts_file:
        verifier = KnownHostsVerifier(params.known_hosts_file)
        host_key_verifier = partial(verifier.verify, params.host, params.port)

    return SSHClientConfig(
        username=params.username,
        candidates=candidates,
        ciphers=tuple(params.ciphers),
        timeout=params.timeout,
        host_key_verifier=host_key_verifier,
    )


def authenticate(transport: paramiko.Transport, config: SSHClientConfig) -> None:
    """
    Offer every candidate to the server until one is accepted

    Raises:
        paramiko.AuthenticationException: every candidate was rejected
    """
    last_error = None
    for candidate in config.candidates:
        try:
            if candidate.method == "password":
                transport.auth_password(config.username, candidate.password)
                return
            for key in candidate.keys:
                try:
                    transport.auth_publickey(config.username, key)
                    return
                except paramiko.AuthenticationException as e:
                    last_error = e
        except paramiko.AuthenticationException as e:
            last_error = e
        logger.debug(f"SSH auth with {candidate.source} rejected")
    raise last_error or paramiko.AuthenticationException("no auth method accepted")
