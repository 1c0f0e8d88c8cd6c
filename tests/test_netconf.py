#!/usr/bin/env python3
"""
Tests for NETCONF framing and rpc-reply parsing
"""

import unittest
from unittest.mock import MagicMock

from junos_netconf.transport.netconf import (
    CLIENT_HELLO,
    EOM,
    NetconfSession,
    parse_rpc_reply,
)
from junos_netconf.utils.error_handling import ProtocolError, TransportError

from tests.fakes import SERVER_HELLO, FakeChannel, reply_xml, rpc_error


def channel_with(*messages, chunk_size=None):
    return FakeChannel(messages, chunk_size=chunk_size)


class TestHello(unittest.TestCase):
    """Test the hello exchange"""

    def test_hello_reads_session_id_and_capabilities(self):
        channel = channel_with(SERVER_HELLO)
        session = NetconfSession(channel)

        session.hello()

        self.assertEqual(session.session_id, "4242")
        self.assertIn("urn:ietf:params:xml:ns:netconf:capability:candidate:1.0", session.server_capabilities)
        self.assertEqual(channel.sent[0], CLIENT_HELLO + EOM.decode())

    def test_client_hello_advertises_base_1_0_only(self):
        self.assertIn("urn:ietf:params:xml:ns:netconf:base:1.0", CLIENT_HELLO)
        self.assertNotIn("base:1.1", CLIENT_HELLO)

    def test_hello_rejects_non_hello_message(self):
        session = NetconfSession(channel_with(reply_xml("<ok/>")))
        with self.assertRaises(ProtocolError):
            session.hello()

    def test_hello_requires_base_capability(self):
        hello = "<hello><capabilities><capability>urn:other</capability></capabilities></hello>"
        session = NetconfSession(channel_with(hello))
        with self.assertRaises(ProtocolError):
            session.hello()

    def test_open_invokes_netconf_subsystem(self):
        channel = channel_with(SERVER_HELLO)
        transport = MagicMock()
        transport.open_session.return_value = channel
        channel.invoke_subsystem = MagicMock()

        session = NetconfSession.open(transport)

        channel.invoke_subsystem.assert_called_once_with("netconf")
        self.assertIs(session.transport, transport)


class TestExec(unittest.TestCase):
    """Test RPC round trips"""

    def test_exec_wraps_rpc_and_returns_data(self):
        channel = channel_with(
            reply_xml("<system-information><host-name>r1</host-name></system-information>")
        )
        session = NetconfSession(channel)

        reply = session.exec("<get-system-information/>")

        self.assertIn('<rpc message-id="', channel.sent[0])
        self.assertIn("<get-system-information/></rpc>", channel.sent[0])
        self.assertTrue(channel.sent[0].endswith("]]>]]>"))
        self.assertIn("<host-name>r1</host-name>", reply.data)
        self.assertFalse(reply.has_errors)

    def test_exec_reassembles_split_messages(self):
        channel = channel_with(reply_xml("<ok/>"), reply_xml("<ok/>"), chunk_size=7)
        session = NetconfSession(channel)

        self.assertTrue(session.exec("<lock/>").ok)
        self.assertTrue(session.exec("<unlock/>").ok)

    def test_exec_on_closed_channel_raises_transport_error(self):
        session = NetconfSession(channel_with())
        with self.assertRaises(TransportError):
            session.exec("<get-system-information/>")

    def test_exec_after_close_raises_transport_error(self):
        channel = channel_with()
        transport = MagicMock()
        session = NetconfSession(channel, transport)

        session.close()

        self.assertTrue(channel.closed)
        transport.close.assert_called_once()
        with self.assertRaises(TransportError):
            session.exec("<lock/>")


class TestParseReply(unittest.TestCase):
    """Test rpc-reply parsing"""

    def test_rpc_errors_are_collected_with_severity(self):
        reply = parse_rpc_reply(
            reply_xml(rpc_error("statement not found", "warning") + rpc_error("syntax error"))
        )

        self.assertEqual(len(reply.errors), 2)
        self.assertEqual(reply.errors[0].severity, "warning")
        self.assertFalse(reply.errors[0].is_error)
        self.assertTrue(reply.errors[1].is_error)
        self.assertEqual(reply.errors[1].message, "syntax error")
        self.assertEqual(str(reply.errors[1]), "netconf rpc [error] 'syntax error'")

    def test_malformed_reply_keeps_payload(self):
        with self.assertRaises(ProtocolError) as ctx:
            parse_rpc_reply("<rpc-reply><unclosed></rpc-reply>")
        self.assertIn("<unclosed>", ctx.exception.payload)

    def test_non_reply_root_is_protocol_error(self):
        with self.assertRaises(ProtocolError):
            parse_rpc_reply("<notification/>")


if __name__ == "__main__":
    unittest.main()
