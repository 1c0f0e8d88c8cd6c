#!/usr/bin/env python3
"""
Tests for Session operations: lock protocol, commit classification,
commands and close
"""

import math
import unittest
from unittest.mock import Mock, patch

from junos_netconf.appliers.session import (
    RPC_CLOSE_SESSION,
    Session,
    SessionPolicy,
    classify_commit_reply,
)
from junos_netconf.transport.connect import Connection
from junos_netconf.utils.cancellation import CancelToken
from junos_netconf.utils.error_handling import (
    CommitConfirmAbortedError,
    CommitError,
    DeviceRPCError,
    EmptyOutputError,
    IncompatibleDeviceError,
    InternalError,
    LockAbortedError,
    ProtocolError,
    TransportError,
    ValidationError,
)

from tests.fakes import OK, SYSTEM_INFORMATION, FakeNetconf, make_reply, rpc_error


def never_cancelled():
    cancel = Mock()
    cancel.cancelled = False
    cancel.wait.return_value = False
    return cancel


@patch("junos_netconf.appliers.session.time.sleep")
class TestConfigLock(unittest.TestCase):
    """Test the candidate lock poll loop"""

    def test_lock_success_on_attempt_k_sleeps_k_minus_1_times(self, mock_sleep):
        for k in range(1, 6):
            with self.subTest(k=k):
                responses = [rpc_error("configuration database locked by user root")] * (k - 1) + [OK]
                netconf = FakeNetconf({"<lock>": responses})
                session = Session(netconf, SessionPolicy(sleep_lock=3, sleep_short=250))
                cancel = never_cancelled()

                session.config_lock(cancel)

                self.assertEqual(netconf.count("<lock>"), k)
                self.assertEqual(cancel.wait.call_count, k - 1)
                for call in cancel.wait.call_args_list:
                    self.assertEqual(call.args[0], 3)
                mock_sleep.assert_called_with(0.25)

    def test_cancel_before_success_aborts_without_lock_rpc(self, mock_sleep):
        netconf = FakeNetconf({"<lock>": [OK]})
        session = Session(netconf)
        cancel = CancelToken()
        cancel.cancel()

        with self.assertRaises(LockAbortedError) as ctx:
            session.config_lock(cancel)

        self.assertEqual(str(ctx.exception), "candidate configuration lock attempt aborted")
        self.assertEqual(netconf.count("<lock>"), 0)

    def test_cancel_during_poll_issues_no_further_lock_rpc(self, mock_sleep):
        netconf = FakeNetconf({"<lock>": [rpc_error("locked")]})
        session = Session(netconf)
        cancel = Mock()
        cancel.cancelled = False
        cancel.wait.return_value = True

        with self.assertRaises(LockAbortedError):
            session.config_lock(cancel)

        self.assertEqual(netconf.count("<lock>"), 1)

    def test_transport_failure_counts_as_contention(self, mock_sleep):
        netconf = FakeNetconf({"<lock>": [TransportError("reset by peer"), OK]})
        session = Session(netconf)
        cancel = never_cancelled()

        session.config_lock(cancel)

        self.assertEqual(netconf.count("<lock>"), 2)

    def test_lock_without_netconf_is_internal_error(self, mock_sleep):
        with self.assertRaises(InternalError):
            Session(None).config_lock(never_cancelled())


class TestConfigClear(unittest.TestCase):
    """Test clear and unlock"""

    def test_both_rpcs_sent_when_delete_fails(self):
        netconf = FakeNetconf({
            "<delete-config>": rpc_error("delete failed"),
            "<unlock>": rpc_error("not locked"),
        })
        session = Session(netconf)

        errors = session.config_clear()

        self.assertEqual(netconf.count("<delete-config>"), 1)
        self.assertEqual(netconf.count("<unlock>"), 1)
        self.assertEqual(len(errors), 2)
        self.assertEqual(str(errors[1]), "config unlock: not locked")

    def test_transport_error_on_delete_still_unlocks(self):
        netconf = FakeNetconf({"<delete-config>": TransportError("broken pipe")})
        session = Session(netconf)

        errors = session.config_clear()

        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], TransportError)
        self.assertEqual(netconf.count("<unlock>"), 1)

    def test_clean_clear_returns_no_errors(self):
        netconf = FakeNetconf()
        self.assertEqual(Session(netconf).config_clear(), [])
        self.assertIn("<delete-config>", netconf.calls[0])
        self.assertIn("<unlock>", netconf.calls[1])


class TestCommit(unittest.TestCase):
    """Test commit classification and confirmed commit"""

    def test_error_and_warning_diagnostics(self):
        reply = make_reply(rpc_error("mgd: statement has no contents", "warning") + rpc_error("commit failed"))

        with self.assertRaises(CommitError) as ctx:
            classify_commit_reply(reply, "commit-configuration")

        self.assertEqual(len(ctx.exception.warnings), 1)
        self.assertIn("statement has no contents", ctx.exception.warnings[0])
        self.assertTrue(str(ctx.exception).startswith("commit-configuration: "))
        self.assertIn("commit failed", str(ctx.exception))
        self.assertNotIn("commit failed", ctx.exception.warnings[0])

    def test_warnings_only_succeed(self):
        netconf = FakeNetconf({"<commit-configuration>": rpc_error("deprecated statement", "warning")})
        warnings = Session(netconf).commit_conf("create resource x")

        self.assertEqual(warnings, ["netconf rpc [warning] 'deprecated statement'"])
        self.assertIn("<log>create resource x</log>", netconf.calls[0])

    def test_nested_commit_results_errors(self):
        nested = (
            "<commit-results>"
            + rpc_error("uncommitted changes will be discarded", "warning")
            + rpc_error("configuration check-out failed")
            + "</commit-results>"
        )
        with self.assertRaises(CommitError) as ctx:
            classify_commit_reply(make_reply(nested), "commit-configuration")

        self.assertEqual(len(ctx.exception.warnings), 1)
        self.assertIn("check-out failed", str(ctx.exception))

    def test_commit_log_is_escaped(self):
        netconf = FakeNetconf()
        Session(netconf).commit_conf("a < b & c")
        self.assertIn("<log>a &lt; b &amp; c</log>", netconf.calls[0])

    def test_confirmed_commit_waits_before_finalizing(self):
        for timeout, percent in ((60, 90), (7, 33), (1, 0), (65535, 99)):
            with self.subTest(timeout=timeout, percent=percent):
                netconf = FakeNetconf()
                session = Session(
                    netconf,
                    SessionPolicy(commit_confirmed=timeout, commit_confirmed_wait_percent=percent),
                )
                cancel = never_cancelled()

                session.commit_conf("msg", cancel)

                self.assertEqual(len(netconf.calls), 2)
                self.assertIn("<confirmed/>", netconf.calls[0])
                self.assertIn(f"<confirm-timeout>{timeout}</confirm-timeout>", netconf.calls[0])
                self.assertNotIn("<confirmed/>", netconf.calls[1])
                waited = cancel.wait.call_args.args[0]
                self.assertGreaterEqual(waited, math.floor(timeout * percent / 100))
                self.assertLess(waited, timeout)

    def test_confirmed_commit_error_skips_wait(self):
        netconf = FakeNetconf({"<confirmed/>": rpc_error("commit failed")})
        session = Session(netconf, SessionPolicy(commit_confirmed=30))
        cancel = never_cancelled()

        with self.assertRaises(CommitError):
            session.commit_conf("msg", cancel)

        cancel.wait.assert_not_called()
        self.assertEqual(len(netconf.calls), 1)

    def test_cancel_during_confirm_wait(self):
        netconf = FakeNetconf({"<confirmed/>": rpc_error("deprecated", "warning")})
        session = Session(netconf, SessionPolicy(commit_confirmed=30))
        cancel = Mock()
        cancel.wait.return_value = True

        with self.assertRaises(CommitConfirmAbortedError) as ctx:
            session.commit_conf("msg", cancel)

        self.assertEqual(len(netconf.calls), 1)
        self.assertEqual(len(ctx.exception.warnings), 1)
        self.assertEqual(
            str(ctx.exception), "confirmation of commit with 'confirmed' option aborted before done"
        )

    def test_finalize_error_keeps_earlier_warnings(self):
        netconf = FakeNetconf({
            "<confirmed/>": rpc_error("first warning", "warning"),
            "<commit-configuration><log>": rpc_error("finalize failed"),
        })
        session = Session(netconf, SessionPolicy(commit_confirmed=10))

        with self.assertRaises(CommitError) as ctx:
            session.commit_conf("msg", never_cancelled())

        self.assertEqual(len(ctx.exception.warnings), 1)
        self.assertIn("finalize failed", str(ctx.exception))


class TestCommands(unittest.TestCase):
    """Test operational commands and configuration loads"""

    def test_command_unwraps_configuration_output(self):
        netconf = FakeNetconf({
            "<command": "<configuration-information><configuration-output>"
                        "set system host-name r1\n</configuration-output></configuration-information>",
        })

        output = Session(netconf).command("show configuration system | display set")

        self.assertEqual(output, "set system host-name r1\n")
        self.assertIn('<command format="text">show configuration system | display set</command>', netconf.calls[0])

    def test_empty_command_output(self):
        netconf = FakeNetconf({"<command": "\n"})

        with self.assertRaises(EmptyOutputError) as ctx:
            Session(netconf).command("show bogus")

        self.assertEqual(ctx.exception.output, "empty")
        self.assertEqual(
            str(ctx.exception), "no output available - please check the syntax of your command"
        )

    def test_command_device_error(self):
        netconf = FakeNetconf({"<command": rpc_error("syntax error, expecting &lt;command&gt;")})
        with self.assertRaises(DeviceRPCError) as ctx:
            Session(netconf).command("show bogus")
        self.assertIn("syntax error", str(ctx.exception))

    def test_command_xml_returns_raw_data(self):
        netconf = FakeNetconf({"<get-route-information>": "<route-information/>"})
        data = Session(netconf).command_xml("<get-route-information><all/></get-route-information>")
        self.assertEqual(data, "<route-information/>")

    def test_config_set_joins_lines_in_one_rpc(self):
        netconf = FakeNetconf()

        message = Session(netconf).config_set(["set a", "delete b", 'set c description "x & y"'])

        self.assertEqual(message, "")
        self.assertEqual(len(netconf.calls), 1)
        self.assertIn(
            '<configuration-set>set a\ndelete b\nset c description "x &amp; y"</configuration-set>',
            netconf.calls[0],
        )

    def test_config_set_device_error_is_a_message(self):
        netconf = FakeNetconf({"<load-configuration": rpc_error("syntax error") + rpc_error("missing argument")})

        message = Session(netconf).config_set(["set foo"])

        self.assertEqual(message, "syntax error\nmissing argument\n")

    def test_config_load_xml(self):
        netconf = FakeNetconf({"<load-configuration": rpc_error("warning: statement not found", "warning")})

        message = Session(netconf).config_load("<configuration><system><host-name>r1</host-name></system></configuration>", "replace")

        self.assertEqual(message, "warning: statement not found\n")
        self.assertIn('<load-configuration action="replace" format="xml"><configuration>', netconf.calls[0])

    def test_transport_error_names_operation(self):
        netconf = FakeNetconf({"<command": TransportError("channel closed")})
        with self.assertRaises(TransportError) as ctx:
            Session(netconf, remote_address="192.0.2.1:830").command("show version")
        self.assertIn("executing netconf command", str(ctx.exception))

    def test_config_get_returns_configuration_text(self):
        netconf = FakeNetconf({
            "<get-configuration": "<configuration-text>\nsystem {\n    host-name r1;\n}\n</configuration-text>",
        })
        self.assertEqual(Session(netconf).config_get(), "system {\n    host-name r1;\n}\n")


class TestConfigLoadResults(unittest.TestCase):
    """Test diagnostics nested in <load-configuration-results>"""

    def test_config_set_reads_nested_errors(self):
        netconf = FakeNetconf({
            "<load-configuration": (
                "<load-configuration-results>" + rpc_error("syntax error") + "<ok/></load-configuration-results>"
            ),
        })

        message = Session(netconf).config_set(["set foo bar"])

        self.assertEqual(message, "syntax error\n")

    def test_top_level_and_nested_errors_each_reported_once(self):
        netconf = FakeNetconf({
            "<load-configuration": (
                rpc_error("missing argument")
                + "<load-configuration-results>" + rpc_error("syntax error") + "</load-configuration-results>"
            ),
        })

        message = Session(netconf).config_set(["set foo", "set bar"])

        self.assertEqual(message, "missing argument\nsyntax error\n")

    def test_clean_load_results(self):
        netconf = FakeNetconf({"<load-configuration": "<load-configuration-results><ok/></load-configuration-results>"})
        self.assertEqual(Session(netconf).config_load("<configuration/>"), "")

    def test_config_load_reads_nested_errors(self):
        netconf = FakeNetconf({
            "<load-configuration": (
                "<load-configuration-results>" + rpc_error("unknown statement") + "</load-configuration-results>"
            ),
        })

        message = Session(netconf).config_load("system { foo; }", "merge", "text")

        self.assertEqual(message, "unknown statement\n")


class TestConfigFormats(unittest.TestCase):
    """Test config_load and config_get formats"""

    def test_config_load_text(self):
        netconf = FakeNetconf()
        Session(netconf).config_load("system { host-name r1; }", "replace", "text")
        self.assertEqual(
            netconf.calls[0],
            '<load-configuration action="replace" format="text">'
            "<configuration-text>system { host-name r1; }</configuration-text></load-configuration>",
        )

    def test_config_load_json_is_escaped(self):
        netconf = FakeNetconf()
        Session(netconf).config_load('{"configuration": {"system": {"host-name": "a&b"}}}', "merge", "json")
        self.assertEqual(
            netconf.calls[0],
            '<load-configuration action="merge" format="json"><configuration-json>'
            '{"configuration": {"system": {"host-name": "a&amp;b"}}}</configuration-json></load-configuration>',
        )

    def test_config_load_set_action_ignores_format(self):
        netconf = FakeNetconf()
        Session(netconf).config_load("set system host-name r1", "set", "json")
        self.assertIn(
            '<load-configuration action="set" format="text"><configuration-set>set system host-name r1',
            netconf.calls[0],
        )

    def test_config_load_unknown_format(self):
        netconf = FakeNetconf()
        with self.assertRaises(ValidationError):
            Session(netconf).config_load("x", "merge", "yaml")
        self.assertEqual(netconf.calls, [])

    def test_config_get_set(self):
        netconf = FakeNetconf({
            '<get-configuration database="committed" format="set">':
                "<configuration-set>\nset system host-name r1\n</configuration-set>",
        })
        self.assertEqual(Session(netconf).config_get(config_format="set"), "set system host-name r1\n")

    def test_config_get_json(self):
        netconf = FakeNetconf({'format="json"': '\n{"configuration": {"system": {"host-name": "r1"}}}\n'})
        self.assertEqual(
            Session(netconf).config_get(config_format="json"),
            '{"configuration": {"system": {"host-name": "r1"}}}\n',
        )

    def test_config_get_xml(self):
        netconf = FakeNetconf({'format="xml"': "\n<configuration>\n<system><host-name>r1</host-name></system>\n</configuration>\n"})
        self.assertEqual(
            Session(netconf).config_get(config_format="xml"),
            "<configuration>\n<system><host-name>r1</host-name></system>\n</configuration>\n",
        )

    def test_config_get_xml_minified(self):
        netconf = FakeNetconf({'format="xml-minified"': "<configuration><system/></configuration>"})
        self.assertEqual(Session(netconf).config_get(config_format="xml-minified"), "<configuration><system/></configuration>")

    def test_config_get_json_minified_answered_in_xml(self):
        netconf = FakeNetconf({'format="json-minified"': "\n<configuration><system/></configuration>"})
        with self.assertRaises(ProtocolError) as ctx:
            Session(netconf).config_get(config_format="json-minified")
        self.assertIn("device responds in xml", str(ctx.exception))

    def test_config_get_xml_minified_answered_unminified(self):
        netconf = FakeNetconf({'format="xml-minified"': "<configuration>\n<system/>\n</configuration>"})
        with self.assertRaises(ProtocolError) as ctx:
            Session(netconf).config_get(config_format="xml-minified")
        self.assertIn("not minified", str(ctx.exception))

    def test_config_get_unknown_format(self):
        netconf = FakeNetconf()
        with self.assertRaises(ValidationError):
            Session(netconf).config_get(config_format="yaml")
        self.assertEqual(netconf.calls, [])


class TestSessionLifecycle(unittest.TestCase):
    """Test connect and close"""

    def make_establisher(self, netconf):
        establisher = Mock()
        establisher.params.address = "192.0.2.1:830"
        establisher.establish.return_value = Connection(netconf, "198.51.100.10:50000", "192.0.2.1:830")
        return establisher

    def test_connect_gathers_facts(self):
        netconf = FakeNetconf({"<get-system-information/>": SYSTEM_INFORMATION})

        session = Session.connect(self.make_establisher(netconf))

        self.assertEqual(session.system_information.hardware_model, "srx340")
        self.assertTrue(session.system_information.is_security_family())
        self.assertEqual(session.remote_address, "192.0.2.1:830")

    def test_connect_with_empty_model_returns_session_in_error(self):
        netconf = FakeNetconf({"<get-system-information/>": "<system-information><host-name>x</host-name></system-information>"})

        with self.assertRaises(IncompatibleDeviceError) as ctx:
            Session.connect(self.make_establisher(netconf))

        self.assertIsNotNone(ctx.exception.session)
        self.assertFalse(netconf.closed)

    def test_connect_closes_session_when_facts_fail(self):
        netconf = FakeNetconf({"<get-system-information/>": rpc_error("permission denied")})

        with self.assertRaises(DeviceRPCError):
            Session.connect(self.make_establisher(netconf))

        self.assertTrue(netconf.closed)

    @patch("junos_netconf.appliers.session.time.sleep")
    def test_close_sends_close_session_then_tears_down(self, mock_sleep):
        netconf = FakeNetconf()
        session = Session(netconf, SessionPolicy(sleep_ssh_closed=2))

        session.close()

        self.assertEqual(netconf.calls, [RPC_CLOSE_SESSION])
        self.assertTrue(netconf.closed)
        self.assertFalse(session.connected)
        mock_sleep.assert_called_once_with(2)

    def test_close_tears_down_even_when_rpc_fails(self):
        netconf = FakeNetconf({"<close-session/>": TransportError("eof")})
        session = Session(netconf)

        with self.assertRaises(TransportError):
            session.close()

        self.assertTrue(netconf.closed)

    def test_debug_log_receives_rpc_trace(self):
        lines = []
        netconf = FakeNetconf()
        Session(netconf, debug_log=lines.append).config_set(["set foo"])
        self.assertEqual(lines, ["[config_set] ['set foo']"])


if __name__ == "__main__":
    unittest.main()
