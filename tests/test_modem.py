"""
Integration tests for the GsmModem facade.

Notifications are fed through the mock transport and followed through the
reader thread, the operation queue and the event channel.
"""

from datetime import datetime, timezone

import pytest

from atgsm import Driver, DriverKeys, GsmModem, ModemConfig, ModemNotStartedError
from atgsm.core import MockTransport
from atgsm.parsers.pdu import concat_udh, encode_sms_deliver, split_message, tpdu_length

SENT = datetime(2024, 5, 1, 8, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def received(modem):
    """Messages dispatched by the modem, as (event, message, envelopes)."""
    events = []
    modem.on("message", lambda message, envelopes: events.append(("message", message, envelopes)))
    modem.on("multipart-message",
             lambda message, envelopes: events.append(("multipart-message", message, envelopes)))
    return events


def started(transport, config, **kwargs):
    modem = GsmModem(transport=transport, config=config, **kwargs)
    modem.start()
    return modem


class TestLifecycle:
    """Test construction and lifecycle."""

    def test_requires_port_or_transport(self):
        with pytest.raises(ValueError):
            GsmModem()

    def test_not_started(self):
        modem = GsmModem(transport=MockTransport())

        with pytest.raises(ModemNotStartedError):
            modem.query("AT")

    def test_context_manager(self, config):
        transport = MockTransport()

        with GsmModem(transport=transport, config=config) as modem:
            assert modem.is_running() is True

        assert modem.is_running() is False
        assert transport.is_open() is False

    def test_options_override_config(self, config):
        modem = GsmModem(transport=MockTransport(), config=config, send_timeout=90)

        assert modem.config.send_timeout == 90
        assert modem.config.timeout == config.timeout

    def test_raw_query(self, modem, mock_transport):
        mock_transport.add_response(["+CSQ: 24,99", "OK"])

        tx = modem.query("AT+CSQ")

        assert tx.responses == ["+CSQ: 24,99"]
        assert tx.result["rssi"].rssi == 24
        assert modem.state == []


class TestIncomingMessages:
    """Test notifications leading to message events."""

    def test_new_message_notification(self, modem, mock_transport, received, deliver_pdu, wait):
        """Test +CMTI queues a read whose message is dispatched."""
        mock_transport.add_response(["+CPMS: 1,40,1,40,1,40", "OK"])
        mock_transport.add_response(["+CMGR: 0,,28", deliver_pdu, "OK"])

        mock_transport.feed(b'\r\n+CMTI: "SM",5\r\n')

        assert wait(lambda: len(received) == 1)
        event, message, envelopes = received[0]
        assert event == "message"
        assert message.text == "hellohello"
        assert message.hash is not None
        assert (envelopes[0].storage, envelopes[0].index) == ("SM", 5)
        assert mock_transport.commands == ['AT+CPMS="SM"', "AT+CMGR=5"]

    def test_delete_on_read(self, mock_transport, config, deliver_pdu, wait):
        """Test dispatched messages are deleted when configured."""
        modem = started(mock_transport, config, delete_message_on_read=True)
        try:
            mock_transport.add_response(["+CPMS: 1,40,1,40,1,40", "OK"])
            mock_transport.add_response(["+CMGR: 0,,28", deliver_pdu, "OK"])
            mock_transport.add_response(["OK"])

            mock_transport.feed(b'\r\n+CMTI: "SM",5\r\n')

            assert wait(lambda: "AT+CMGD=5" in mock_transport.commands)
            assert mock_transport.commands == ['AT+CPMS="SM"', "AT+CMGR=5", "AT+CMGD=5"]
        finally:
            modem.close()

    def test_direct_message_not_deleted(self, mock_transport, config, deliver_pdu, wait):
        """Test messages delivered inline have no storage slot to delete."""
        modem = started(mock_transport, config, delete_message_on_read=True)
        try:
            texts = []
            modem.on("message", lambda message, envelopes: texts.append(message.text))

            mock_transport.feed(f"\r\n+CMT: ,28\r\n{deliver_pdu}\r\n".encode())

            assert wait(lambda: texts == ["hellohello"])
            assert mock_transport.commands == []
        finally:
            modem.close()

    def test_header_and_pdu_in_separate_reads(self, modem, mock_transport, received, deliver_pdu, wait):
        """Test a +CMT header read before its PDU line is kept until the PDU arrives."""
        mock_transport.feed(b"\r\n+CMT: ,28\r\n")
        assert wait(lambda: modem.core.backlog.lines == ["+CMT: ,28"])

        mock_transport.feed(f"{deliver_pdu}\r\n".encode())

        assert wait(lambda: len(received) == 1)
        assert received[0][1].text == "hellohello"
        assert len(modem.core.backlog) == 0

    def test_multipart_message(self, modem, mock_transport, received, wait):
        """Test concatenated parts arriving out of order are joined."""
        text = "Part of a long message that spans two SMS. " * 5
        parts = split_message(text)
        assert len(parts) == 2
        pdus = [
            encode_sms_deliver("+15550100", part, time=SENT, udh=concat_udh(9, 2, number))
            for number, part in enumerate(parts, start=1)
        ]

        for pdu in reversed(pdus):
            mock_transport.feed(f"\r\n+CMT: ,{tpdu_length(pdu)}\r\n{pdu}\r\n".encode())

        assert wait(lambda: len(received) == 1)
        event, message, envelopes = received[0]
        assert event == "multipart-message"
        assert message.text == text
        assert len(envelopes) == 2

    def test_status_report(self, modem, mock_transport, status_report_pdu, wait):
        """Test +CDSI reads the report, dispatches it and deletes it."""
        reports = []
        modem.on("status-report", lambda report, envelope: reports.append(report))
        mock_transport.add_response(["+CPMS: 1,10,1,10,1,10", "OK"])
        mock_transport.add_response(["+CMGR: 0,,25", status_report_pdu, "OK"])
        mock_transport.add_response(["OK"])

        mock_transport.feed(b'\r\n+CDSI: "SR",2\r\n')

        assert wait(lambda: len(mock_transport.commands) == 3)
        assert mock_transport.commands == ['AT+CPMS="SR"', "AT+CMGR=2", "AT+CMGD=2"]
        assert [r.message_reference for r in reports] == [42]


class TestMaintenance:
    """Test storage maintenance once the modem is idle."""

    def test_empty_full_storage(self, mock_transport, config, wait):
        """Test a full storage is emptied when configured."""
        modem = started(mock_transport, config, empty_when_full=True)
        try:
            full = ['+CPMS: "SM",2,2,"SR",0,10,"SM",2,2', "OK"]
            mock_transport.add_response(full)          # AT+CPMS? by the caller
            mock_transport.add_response(full)          # AT+CPMS? by the maintenance
            mock_transport.add_response(["OK"])
            mock_transport.add_response(["OK"])

            modem.storage.get_storage()

            assert wait(lambda: len(mock_transport.commands) == 4)
            assert mock_transport.commands == ["AT+CPMS?", "AT+CPMS?", "AT+CMGD=1", "AT+CMGD=2"]
            assert wait(lambda: modem.state == [])
        finally:
            modem.close()

    def test_full_storage_kept(self, modem, mock_transport, wait):
        """Test nothing is deleted unless emptying is enabled."""
        mock_transport.add_response(['+CPMS: "SM",2,2,"SR",0,10,"SM",2,2', "OK"])

        modem.storage.get_storage()

        assert wait(lambda: modem.state == [])
        assert mock_transport.commands == ["AT+CPMS?"]

    def test_report_storage_cleared(self, mock_transport, config, status_report_pdu, wait):
        """Test pending delivery reports are listed, dispatched and deleted."""
        driver = Driver("Reports", parent=Driver(), commands={DriverKeys.PARAM_REPORT_STORAGE: "SR"})
        modem = started(mock_transport, config, driver=driver)
        try:
            reports = []
            modem.on("status-report", lambda report, envelope: reports.append(envelope.index))
            mock_transport.add_response(['+CPMS: "SM",0,40,"SR",1,10,"SM",0,40', "OK"])
            mock_transport.add_response(["+CPMS: 1,10,1,10,1,10", "OK"])
            mock_transport.add_response(["+CMGL: 1,0,,25", status_report_pdu, "OK"])
            mock_transport.add_response(["OK"])

            modem.storage.get_storage()

            assert wait(lambda: len(mock_transport.commands) == 4)
            assert mock_transport.commands == ["AT+CPMS?", 'AT+CPMS="SR"', "AT+CMGL=4", "AT+CMGD=1"]
            assert reports == [1]
        finally:
            modem.close()


class TestInitialize:
    """Test bringing the modem into a known state."""

    def test_initialize(self, modem, mock_transport, mock_operator_response, mock_storage_response):
        for _ in range(12):                       # initialization batch and identity
            mock_transport.add_response(["OK"])
        mock_transport.add_response(['+CSCS: "GSM"', "OK"])
        mock_transport.add_response(["OK"])
        mock_transport.add_response(['+CSCA: "+27381000015",145', "OK"])
        mock_transport.add_response(mock_operator_response)
        mock_transport.add_response(mock_storage_response)

        info = modem.initialize(monitors=False)

        assert info.has_sms is True
        assert mock_transport.commands[-5:] == ["AT+CSCS?", "AT+CMGF=0", "AT+CSCA?", "AT+COPS?", "AT+CPMS?"]
        props = modem.props
        assert props["charset"] == "GSM"
        assert props["sms_mode"] == 0
        assert props["smsc"] == "+27381000015"
        assert props["network"].code == "AT&T"
        assert props["storage"] == "SM"

    def test_failing_step_skipped(self, modem, mock_transport, mock_storage_response):
        """Test an optional step failing does not stop initialization."""
        for _ in range(12):
            mock_transport.add_response(["OK"])
        mock_transport.add_response(["ERROR"])                   # AT+CSCS?
        mock_transport.add_response(["OK"])
        mock_transport.add_response(["ERROR"])                   # AT+CSCA?
        mock_transport.add_response(["OK"])
        mock_transport.add_response(mock_storage_response)

        modem.initialize(monitors=False)

        assert mock_transport.commands[-1] == "AT+CPMS?"
        assert modem.props["storage"] == "SM"
