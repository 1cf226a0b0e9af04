"""
Tests for the AT protocol handler (transport engine).
"""

import logging
import threading
import time

import pytest

from atgsm.driver import DriverKeys
from atgsm.exceptions import ATCommandError, ATTimeoutError, GsmError


class TestSend:
    """Test single transactions through the reader thread."""

    def test_atz_ok(self, modem_core, mock_transport):
        """Test ATZ succeeds on OK."""
        mock_transport.add_response(["OK"])

        tx = modem_core.protocol.send("ATZ")

        assert tx.okay is True
        assert tx.responses == []
        assert mock_transport.commands == ["ATZ"]

    def test_timeout(self, modem_core, mock_transport):
        """Test a command with no conclusive reply times out."""
        start = time.monotonic()
        with pytest.raises(ATTimeoutError) as exc_info:
            modem_core.protocol.send("ATZ", timeout=0.2)

        assert time.monotonic() - start >= 0.2
        assert exc_info.value.transaction.timed_out is True
        assert modem_core.protocol.timeouts == 1
        assert modem_core.protocol.busy is False

    def test_timeout_threshold_warning(self, modem_core, mock_transport, caplog):
        """Test repeated timeouts are reported while commands keep working."""
        modem_core.protocol.timeout_threshold = 2
        for _ in range(2):
            with pytest.raises(ATTimeoutError):
                modem_core.protocol.send("AT", timeout=0.1)
        mock_transport.add_response(["OK"])

        with caplog.at_level(logging.WARNING, logger="atgsm.core.protocol"):
            tx = modem_core.protocol.send("AT")

        assert tx.okay is True
        assert "Timeout threshold reached (2)" in caplog.text
        assert mock_transport.commands == ["AT", "AT", "AT"]

    def test_rolling_timeout(self, modem_core, mock_transport):
        """Test each received chunk re-arms the timeout."""
        mock_transport.add_raw_response([])

        def trickle():
            for chunk in [b"+CSQ:", b" 24,", b"99\r\n", b"OK\r\n"]:
                time.sleep(0.15)
                mock_transport.feed(chunk)

        threading.Thread(target=trickle, daemon=True).start()
        tx = modem_core.protocol.send("AT+CSQ", timeout=0.3)

        assert tx.responses == ["+CSQ: 24,99"]

    def test_error_raises(self, modem_core, mock_transport):
        """Test an error reply raises ATCommandError."""
        mock_transport.add_response(["ERROR"])

        with pytest.raises(ATCommandError):
            modem_core.protocol.send("AT+FOO")
        assert modem_core.protocol.busy is False

    def test_cms_error_code(self, modem_core, mock_transport):
        """Test the structured error detail is available to the caller."""
        mock_transport.add_response(["+CMS ERROR: 500"])

        with pytest.raises(ATCommandError) as exc_info:
            modem_core.protocol.send("AT+CMGS=23")

        assert exc_info.value.code == "500"
        assert exc_info.value.transaction.responses == ["+CMS ERROR: 500"]

    def test_prompt_without_terminator(self, modem_core, mock_transport):
        """Test the SMS prompt concludes a send with expect."""
        mock_transport.add_raw_response([b"\r\n> "])

        tx = modem_core.protocol.send("AT+CMGS=23", expect="> ")

        assert tx.okay is True

    def test_empty_data(self, modem_core):
        """Test sending nothing is rejected."""
        with pytest.raises(GsmError):
            modem_core.protocol.send("")

    def test_write_failure_releases_busy(self, modem_core, mock_transport):
        """Test a failing write clears busy."""
        def failing_write(data):
            raise GsmError("write failed")

        mock_transport.write = failing_write

        with pytest.raises(GsmError):
            modem_core.protocol.send("AT")
        assert modem_core.protocol.busy is False

    def test_busy_flag_edges(self, modem_core, mock_transport, wait):
        """Test busy is set during the transaction and cleared exactly once."""
        edges = []
        modem_core.state.add_listener(lambda active: edges.append(list(active)))
        mock_transport.add_response(["OK"])

        modem_core.protocol.send("AT")

        assert wait(lambda: len(edges) == 2)
        assert edges == [["busy"], []]

    def test_extras_go_to_notifications(self, modem_core, mock_transport, wait):
        """Test lines after OK are processed as notifications."""
        updates = []
        modem_core.events.on("prop", updates.append)
        mock_transport.add_response(["OK", "+CSQ: 10,99"])

        modem_core.protocol.send("AT")

        assert wait(lambda: any("rssi" in u for u in updates))
        assert modem_core.prop("rssi").rssi == 10


class TestSequencing:
    """Test transactions run one at a time."""

    def test_back_to_back_sends_are_sequential(self, modem_core, mock_transport, wait):
        """Test the second transmit waits for the first transaction."""
        mock_transport.add_raw_response([])     # first command: no reply yet
        mock_transport.add_response(["OK"])

        first = threading.Thread(target=lambda: modem_core.protocol.send("AT+ONE"))
        first.start()
        assert wait(lambda: mock_transport.commands == ["AT+ONE"])

        second_done = threading.Event()

        def second():
            modem_core.protocol.send("AT+TWO")
            second_done.set()

        threading.Thread(target=second).start()
        time.sleep(0.1)
        assert mock_transport.commands == ["AT+ONE"]

        mock_transport.feed(b"OK\r\n")
        first.join(timeout=1.0)
        assert second_done.wait(1.0)
        assert mock_transport.commands == ["AT+ONE", "AT+TWO"]

    def test_queued_queries_are_sequential(self, modem_core, mock_transport, wait):
        """Test queued operations start only after the previous one resolves."""
        mock_transport.add_raw_response([])
        mock_transport.add_response(["OK"])

        f1 = modem_core.submit(lambda: modem_core.do_query("AT+ONE"))
        f2 = modem_core.submit(lambda: modem_core.do_query("AT+TWO"))

        assert wait(lambda: mock_transport.commands == ["AT+ONE"])
        time.sleep(0.1)
        assert mock_transport.commands == ["AT+ONE"]

        mock_transport.feed(b"OK\r\n")
        assert f1.result(timeout=1.0).okay is True
        assert f2.result(timeout=1.0).okay is True
        assert mock_transport.commands == ["AT+ONE", "AT+TWO"]


class TestBatch:
    """Test batch sending."""

    def test_batch_tolerates_failures(self, modem_core, mock_transport):
        """Test each command runs even when an earlier one fails."""
        mock_transport.add_response(["ERROR"])
        mock_transport.add_response(["Manufacturer", "OK"])

        results = modem_core.protocol.send_batch([
            DriverKeys.CMD_QUERY_IMEI,
            DriverKeys.CMD_QUERY_MANUFACTURER,
        ])

        assert results[DriverKeys.CMD_QUERY_IMEI].error is True
        assert results[DriverKeys.CMD_QUERY_MANUFACTURER].res() == "Manufacturer"

    def test_batch_skips_undefined(self, modem_core, mock_transport):
        """Test keys without a command are skipped."""
        mock_transport.add_response(["OK"])
        mock_transport.add_response(["OK"])

        results = modem_core.protocol.send_batch([DriverKeys.init(n) for n in range(10)])

        # Generic driver defines CMD_INIT and CMD_INIT1 only
        assert list(results) == [DriverKeys.init(0), DriverKeys.init(1)]
        assert mock_transport.commands == ["ATZ", "ATE0"]

    def test_batch_with_variables(self, modem_core, mock_transport):
        """Test (key, variables) items are substituted."""
        mock_transport.add_response(["OK"])

        modem_core.protocol.send_batch([(DriverKeys.CMD_SMS_MODE_SET, {"SMS_MODE": 0})])

        assert mock_transport.commands == ["AT+CMGF=0"]
