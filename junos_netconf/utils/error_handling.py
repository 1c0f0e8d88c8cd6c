#!/usr/bin/env python3
"""
Junos NETCONF Error Handling Utilities

Provides the exception taxonomy shared by the transport, session and client
layers so callers can tell a flaky network apart from a device that refused
an RPC.

Error classes:
- Transport errors:   dial / SSH / NETCONF handshake failures (retryable)
- Device RPC errors:  rpc-error with severity "error" (fatal to the RPC)
- Protocol errors:    malformed or unexpected XML replies
- Internal errors:    programming-contract violations
"""

from typing import Any, List, Optional


class ErrorSeverity:
    """Error severity levels for consistent classification"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


class JunosError(Exception):
    """Base exception class for the Junos NETCONF client"""

    def __init__(self, message: str, severity: str = ErrorSeverity.ERROR,
                 guidance: Optional[str] = None, technical_details: Optional[str] = None):
        self.message = message
        self.severity = severity
        self.guidance = guidance
        self.technical_details = technical_details
        super().__init__(message)


class ValidationError(JunosError):
    """Raised when parameter validation fails"""

    def __init__(self, message: str, parameter: str = None, guidance: str = None):
        self.parameter = parameter
        super().__init__(message, ErrorSeverity.ERROR, guidance)


class ConfigurationError(JunosError):
    """Raised when configuration is invalid or missing"""
    pass


class TransportError(JunosError):
    """Raised when the TCP dial or the SSH/NETCONF handshake fails"""

    def __init__(self, message: str, host: str = None, guidance: str = None,
                 technical_details: str = None):
        self.host = host
        super().__init__(message, ErrorSeverity.ERROR, guidance, technical_details)


class AuthenticationError(TransportError):
    """Raised when no credential source produced a usable auth method"""
    pass


class ProtocolError(JunosError):
    """Raised when a reply cannot be parsed or lacks expected content"""

    def __init__(self, message: str, payload: str = ""):
        self.payload = payload
        super().__init__(message, ErrorSeverity.ERROR, technical_details=payload or None)


class DeviceRPCError(JunosError):
    """Raised when the device answers an RPC with severity "error" diagnostics"""

    def __init__(self, message: str, rpc: str = "", diagnostics: Optional[List[Any]] = None):
        self.rpc = rpc
        self.diagnostics = diagnostics or []
        super().__init__(message, ErrorSeverity.ERROR, technical_details=rpc or None)


class CommitError(DeviceRPCError):
    """Commit rejected by the device; advisory diagnostics are kept in warnings"""

    def __init__(self, message: str, rpc: str = "", diagnostics: Optional[List[Any]] = None,
                 warnings: Optional[List[str]] = None):
        self.warnings = warnings or []
        super().__init__(message, rpc, diagnostics)


class EmptyOutputError(JunosError):
    """Operational command returned no usable output"""

    EMPTY = "empty"

    def __init__(self, command: str):
        self.command = command
        self.output = self.EMPTY
        super().__init__(
            "no output available - please check the syntax of your command",
            ErrorSeverity.ERROR,
            guidance=f"command: {command}",
        )


class LockAbortedError(JunosError):
    """Candidate lock poll abandoned because the cancellation token fired"""

    def __init__(self, message: str = "candidate configuration lock attempt aborted"):
        super().__init__(message, ErrorSeverity.ERROR)


class CommitConfirmAbortedError(JunosError):
    """Wait before the finalizing commit was cancelled; the device will revert"""

    def __init__(self, message: str = "confirmation of commit with 'confirmed' option aborted before done",
                 warnings: Optional[List[str]] = None):
        self.warnings = warnings or []
        super().__init__(
            message,
            ErrorSeverity.ERROR,
            guidance="the device rolls back the change when its confirm timer expires",
        )


class IncompatibleDeviceError(JunosError):
    """Device answered but did not report a hardware model"""

    def __init__(self, message: str, session: Any = None):
        self.session = session
        super().__init__(message, ErrorSeverity.FATAL)


class InternalError(JunosError):
    """Programming-contract violation"""

    def __init__(self, message: str):
        super().__init__(f"internal error: {message}", ErrorSeverity.FATAL)


__all__ = [
    'ErrorSeverity',
    'JunosError',
    'ValidationError',
    'ConfigurationError',
    'TransportError',
    'AuthenticationError',
    'ProtocolError',
    'DeviceRPCError',
    'CommitError',
    'EmptyOutputError',
    'LockAbortedError',
    'CommitConfirmAbortedError',
    'IncompatibleDeviceError',
    'InternalError',
]
