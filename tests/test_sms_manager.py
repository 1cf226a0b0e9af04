"""
Tests for SMS manager.
"""

import json

import pytest

from atgsm import ATCommandError, Driver, DriverKeys, GsmModem, SMSError, SmsMode
from atgsm.features.sms import MessageReferenceCounter

PROMPT = [b"\r\n> "]


class TestSmsMode:
    """Test message mode operations."""

    def test_get_sms_mode_pdu(self, modem, mock_transport):
        """Test getting PDU message mode."""
        mock_transport.add_response(["+CMGF: 0", "OK"])

        assert modem.sms.get_sms_mode() == SmsMode.PDU
        assert mock_transport.commands == ["AT+CMGF?"]

    def test_get_sms_mode_not_reported(self, modem, mock_transport):
        mock_transport.add_response(["OK"])

        assert modem.sms.get_sms_mode() is None

    def test_set_sms_mode(self, modem, mock_transport):
        """Test selecting text mode updates the properties."""
        mock_transport.add_response(["OK"])

        modem.sms.set_sms_mode(SmsMode.TEXT)

        assert mock_transport.commands == ["AT+CMGF=1"]
        assert modem.props["sms_mode"] == 1

    def test_set_sms_mode_default(self, modem, mock_transport):
        """Test the driver's mode is used when none is given."""
        mock_transport.add_response(["OK"])

        modem.sms.set_sms_mode()

        assert mock_transport.commands == ["AT+CMGF=0"]


class TestSendMessage:
    """Test sending messages in PDU mode."""

    def test_send_single_part(self, modem, mock_transport):
        """Test the length command, prompt and commit sequence."""
        mock_transport.add_response(["OK"])                   # AT+CMGF=0
        mock_transport.add_raw_response(PROMPT)               # AT+CMGS=17
        mock_transport.add_response(["+CMGS: 5", "OK"])       # PDU commit

        parts = modem.sms.send_message("+1234567890", "Hello")

        assert len(parts) == 1
        assert parts[0].tpdu_length == 17
        assert parts[0].message_reference == 5
        assert parts[0].reference is None
        assert mock_transport.commands == ["AT+CMGF=0", "AT+CMGS=17", parts[0].pdu + "\x1a"]

    def test_send_requests_status_report(self, modem, mock_transport):
        mock_transport.add_response(["OK"])
        mock_transport.add_raw_response(PROMPT)
        mock_transport.add_response(["+CMGS: 5", "OK"])

        parts = modem.sms.send_message("+1234567890", "Hello")

        assert parts[0].pdu.startswith("0021")

    def test_send_multipart(self, modem, mock_transport):
        """Test a long message is sent as concatenated parts."""
        mock_transport.add_response(["OK"])
        for reference in (1, 2):
            mock_transport.add_raw_response(PROMPT)
            mock_transport.add_response([f"+CMGS: {reference}", "OK"])

        parts = modem.sms.send_message("+1234567890", "A" * 161)

        assert [p.part for p in parts] == [1, 2]
        assert parts[0].hash is not None
        assert {p.hash for p in parts} == {parts[0].hash}
        assert {p.time for p in parts} == {parts[0].time}
        assert {p.total for p in parts} == {2}
        assert {p.reference for p in parts} == {0}
        assert [p.message_reference for p in parts] == [1, 2]
        assert mock_transport.commands == [
            "AT+CMGF=0",
            f"AT+CMGS={parts[0].tpdu_length}",
            parts[0].pdu + "\x1a",
            f"AT+CMGS={parts[1].tpdu_length}",
            parts[1].pdu + "\x1a",
        ]

    def test_send_unicode(self, modem, mock_transport):
        mock_transport.add_response(["OK"])
        mock_transport.add_raw_response(PROMPT)
        mock_transport.add_response(["+CMGS: 6", "OK"])

        parts = modem.sms.send_message("+1234567890", "Hello 世界")

        assert parts[0].encoding == "ucs2"

    def test_pdu_event(self, modem, mock_transport):
        """Test the "pdu" event reports the sent parts."""
        events = []
        modem.on("pdu", lambda success, messages: events.append((success, messages)))
        mock_transport.add_response(["OK"])
        mock_transport.add_raw_response(PROMPT)
        mock_transport.add_response(["+CMGS: 5", "OK"])

        parts = modem.sms.send_message("+1234567890", "Hello")

        assert events == [(True, parts)]

    def test_caller_hash_on_every_part(self, modem, mock_transport):
        """Test a caller supplied hash is stamped on all parts."""
        mock_transport.add_response(["OK"])
        for reference in (1, 2):
            mock_transport.add_raw_response(PROMPT)
            mock_transport.add_response([f"+CMGS: {reference}", "OK"])

        parts = modem.send_message("+1234567890", "A" * 161, hash="order-7")

        assert [p.hash for p in parts] == ["order-7", "order-7"]

    def test_rejected_part_aborts(self, modem, mock_transport, wait):
        """Test a rejected commit raises and reports the failure."""
        events = []
        modem.on("pdu", lambda success, messages: events.append(success))
        mock_transport.add_response(["OK"])
        mock_transport.add_raw_response(PROMPT)
        mock_transport.add_response(["+CMS ERROR: 500"])

        with pytest.raises(ATCommandError) as exc_info:
            modem.sms.send_message("+1234567890", "A" * 161)

        assert exc_info.value.code == "500"
        assert events == [False]
        assert len(mock_transport.commands) == 3
        assert wait(lambda: modem.state == [])

    def test_send_without_prompt(self, mock_transport, config):
        """Test drivers that take the PDU right after the length command."""
        driver = Driver("NoPrompt", parent=Driver(), commands={DriverKeys.PARAM_SMS_WAIT_PROMPT: "0"})
        modem = GsmModem(transport=mock_transport, driver=driver, config=config)
        modem.start()
        try:
            mock_transport.add_response(["OK"])
            mock_transport.add_response(["+CMGS: 9", "OK"])

            parts = modem.sms.send_message("+1234567890", "Hello")

            assert parts[0].message_reference == 9
            assert mock_transport.commands == ["AT+CMGF=0", "AT+CMGS=17\r" + parts[0].pdu + "\x1a"]
        finally:
            modem.close()

    def test_text_mode_rejected(self, mock_transport, config):
        """Test text mode drivers cannot send."""
        driver = Driver("Text", parent=Driver(), commands={DriverKeys.PARAM_SMS_MODE: "1"})
        modem = GsmModem(transport=mock_transport, driver=driver, config=config)
        modem.start()
        try:
            with pytest.raises(SMSError):
                modem.sms.send_message("+1234567890", "Hello")
            assert mock_transport.commands == []
        finally:
            modem.close()

    def test_send_message_shortcut(self, modem, mock_transport):
        mock_transport.add_response(["OK"])
        mock_transport.add_raw_response(PROMPT)
        mock_transport.add_response(["+CMGS: 7", "OK"])

        parts = modem.send_message("+1234567890", "Hi")

        assert parts[0].message_reference == 7


class TestMessageReferenceCounter:
    """Test concatenation reference allocation."""

    def test_in_memory(self):
        counter = MessageReferenceCounter()

        assert [counter.next() for _ in range(3)] == [0, 1, 2]

    def test_persisted(self, tmp_path):
        """Test references continue across counters sharing a file."""
        path = tmp_path / "msgref.json"

        first = MessageReferenceCounter(str(path))
        assert first.next() == 0
        assert first.next() == 1

        second = MessageReferenceCounter(str(path))
        assert second.next() == 2
        assert json.loads(path.read_text()) == {"msgref": 2}

    def test_wraps(self, tmp_path):
        path = tmp_path / "msgref.json"
        path.write_text(json.dumps({"msgref": 255}))

        assert MessageReferenceCounter(str(path)).next() == 0

    def test_unreadable_file(self, tmp_path):
        """Test a corrupt file restarts from the in-process value."""
        path = tmp_path / "msgref.json"
        path.write_text("not json")

        assert MessageReferenceCounter(str(path)).next() == 0
        assert json.loads(path.read_text()) == {"msgref": 0}
