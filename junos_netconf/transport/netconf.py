#!/usr/bin/env python3
"""
NETCONF 1.0 RPC session over an SSH "netconf" subsystem channel.

Messages use the ]]>]]> end-of-message framing. The client advertises
base:1.0 only, so the server never switches to chunked framing.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

import paramiko
from lxml import etree

from junos_netconf.models.decoder import strip_namespaces
from junos_netconf.utils.error_handling import ProtocolError, TransportError

logger = logging.getLogger(__name__)

NETCONF_BASE_NS = "urn:ietf:params:xml:ns:netconf:base:1.0"
NETCONF_BASE_CAPABILITY = "urn:ietf:params:xml:ns:netconf:base:1.0"
EOM = b"]]>]]>"
RECV_SIZE = 8192

CLIENT_HELLO = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    f'<hello xmlns="{NETCONF_BASE_NS}">'
    f"<capabilities><capability>{NETCONF_BASE_CAPABILITY}</capability></capabilities>"
    "</hello>"
)

SEVERITY_ERROR = "error"


@dataclass
class RPCDiagnostic:
    """One <rpc-error> element of a reply"""

    severity: str = ""
    message: str = ""
    error_type: str = ""
    tag: str = ""
    path: str = ""
    bad_element: str = ""

    @property
    def is_error(self) -> bool:
        return self.severity == SEVERITY_ERROR

    @classmethod
    def from_element(cls, element: etree._Element) -> "RPCDiagnostic":
        def text(tag):
            return (element.findtext(tag) or "").strip()

        return cls(
            severity=text("error-severity"),
            message=text("error-message"),
            error_type=text("error-type"),
            tag=text("error-tag"),
            path=text("error-path"),
            bad_element=text("error-info/bad-element"),
        )

    def __str__(self) -> str:
        return f"netconf rpc [{self.severity}] '{self.message}'"


def read_diagnostics(element: etree._Element) -> List[RPCDiagnostic]:
    """Diagnostics that are direct children of `element`"""
    return [RPCDiagnostic.from_element(e) for e in element.findall("rpc-error")]


@dataclass
class RPCReply:
    """Parsed <rpc-reply>"""

    raw_reply: str
    data: str = ""
    errors: List[RPCDiagnostic] = field(default_factory=list)
    ok: bool = False

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


def inner_xml(element: etree._Element) -> str:
    """Text and serialized children of `element`, without its own tags"""
    parts = [element.text or ""]
    for child in element:
        parts.append(etree.tostring(child, encoding="unicode", with_tail=True))
    return "".join(parts)


_ATTRS = r"""(?:[^>"']|"[^"]*"|'[^']*')*"""
_RPC_REPLY_RE = re.compile(
    r"^\s*(?:<\?xml" + _ATTRS + r"\?>)?\s*"
    r"<(?:[\w.-]+:)?rpc-reply\b" + _ATTRS + r"(?<!/)>(?P<data>.*)</(?:[\w.-]+:)?rpc-reply>\s*$",
    re.DOTALL,
)


def raw_reply_data(raw: str) -> Optional[str]:
    """Text between the rpc-reply tags exactly as received, None if not found"""
    match = _RPC_REPLY_RE.match(raw)
    if match is None:
        return None
    return match.group("data")


def parse_rpc_reply(raw: str) -> RPCReply:
    """
    Parse one framed message as an rpc-reply

    Raises:
        ProtocolError: not XML, or not an rpc-reply
    """
    parser = etree.XMLParser(resolve_entities=False, huge_tree=True)
    try:
        root = etree.fromstring(raw.strip().encode("utf-8"), parser)
    except etree.XMLSyntaxError as e:
        raise ProtocolError(f"malformed rpc-reply: {e}", raw)

    data = raw_reply_data(raw)
    if data is None:
        data = inner_xml(root)
    root = strip_namespaces(root)
    if root.tag != "rpc-reply":
        raise ProtocolError(f"expected <rpc-reply>, got <{root.tag}>", raw)

    return RPCReply(
        raw_reply=raw,
        data=data,
        errors=read_diagnostics(root),
        ok=root.find("ok") is not None,
    )


class NetconfSession:
    """
    NETCONF session over an open channel.

    Not safe for concurrent use: one RPC is in flight at a time.
    """

    def __init__(self, channel, transport: Optional[paramiko.Transport] = None):
        self.channel = channel
        self.transport = transport
        self.session_id: Optional[str] = None
        self.server_capabilities: List[str] = []
        self._buffer = b""
        self._closed = False

    @classmethod
    def open(cls, transport: paramiko.Transport) -> "NetconfSession":
        """
        Open the netconf subsystem on an authenticated transport and exchange hellos

        Raises:
            paramiko.SSHException: channel or subsystem request failed
            ProtocolError: invalid server hello
        """
        channel = transport.open_session()
        channel.invoke_subsystem("netconf")
        session = cls(channel, transport)
        session.hello()
        return session

    def _send(self, message: str) -> None:
        try:
            self.channel.sendall(message.encode("utf-8") + EOM)
        except (OSError, paramiko.SSHException) as e:
            raise TransportError(f"failed to send netconf message: {e}")

    def _receive(self) -> str:
        while EOM not in self._buffer:
            try:
                chunk = self.channel.recv(RECV_SIZE)
            except (OSError, paramiko.SSHException) as e:
                raise TransportError(f"failed to read netconf message: {e}")
            if not chunk:
                raise TransportError("netconf channel closed by peer")
            self._buffer += chunk
        message, self._buffer = self._buffer.split(EOM, 1)
        return message.decode("utf-8", errors="replace")

    def hello(self) -> None:
        """Send the client hello and read the server hello"""
        self._send(CLIENT_HELLO)
        raw = self._receive()
        try:
            root = strip_namespaces(etree.fromstring(raw.strip().encode("utf-8")))
        except etree.XMLSyntaxError as e:
            raise ProtocolError(f"malformed netconf hello: {e}", raw)
        if root.tag != "hello":
            raise ProtocolError(f"expected <hello>, got <{root.tag}>", raw)

        self.server_capabilities = [
            (c.text or "").strip() for c in root.iter("capability")
        ]
        self.session_id = (root.findtext("session-id") or "").strip() or None
        if NETCONF_BASE_CAPABILITY not in self.server_capabilities:
            raise ProtocolError("server does not support netconf base:1.0", raw)
        logger.debug(f"NETCONF hello exchanged, session-id={self.session_id}")

    def exec(self, rpc: str) -> RPCReply:
        """
        Send one raw RPC and wait for its reply

        Args:
            rpc: XML of the RPC operation, without the <rpc> envelope

        Returns:
            RPCReply, possibly carrying device rpc-error diagnostics

        Raises:
            TransportError: channel failure
            ProtocolError: unparsable reply
        """
        if self._closed:
            raise TransportError("netconf session already closed")
        message_id = str(uuid.uuid4())
        self._send(f'<rpc message-id="{message_id}" xmlns="{NETCONF_BASE_NS}">{rpc}</rpc>')
        return parse_rpc_reply(self._receive())

    def close(self) -> None:
        """Close the channel and the SSH transport"""
        if self._closed:
            return
        self._closed = True
        try:
            self.channel.close()
        finally:
            if self.transport is not None:
                self.transport.close()
