"""
Tests for USSD sessions.
"""

import pytest

from atgsm import GsmError, UssdCode, UssdResponse, USSDError
from atgsm.utils import get_hash


class TestDial:
    """Test USSD sessions."""

    def test_dial(self, modem, mock_transport):
        """Test a service code returns the network's response."""
        mock_transport.add_response(["OK", '+CUSD: 0,"Balance 10.00",15'])

        responses = modem.ussd.dial("*100#")

        assert responses == [UssdResponse(UssdCode.NO_ACTION, "Balance 10.00", 15)]
        assert mock_transport.commands == ['AT+CUSD=1,"*100#",15']

    def test_response_inside_transaction(self, modem, mock_transport):
        mock_transport.add_response(['+CUSD: 0,"Balance 10.00",15', "OK"])

        responses = modem.ussd.dial("*100#")

        assert responses[0].message == "Balance 10.00"

    def test_menu_steps(self, modem, mock_transport):
        """Test comma separated replies are sent one by one."""
        mock_transport.add_response(["OK", '+CUSD: 1,"1. Balance 2. Bundles",15'])
        mock_transport.add_response(["OK", '+CUSD: 0,"Balance 10.00",15'])

        responses = modem.ussd.dial("*123#, 1")

        assert [r.code for r in responses] == [UssdCode.ACTION_REQUIRED, UssdCode.NO_ACTION]
        assert mock_transport.commands == ['AT+CUSD=1,"*123#",15', 'AT+CUSD=1,"1",15']

    def test_dial_event(self, modem, mock_transport):
        events = []
        modem.on("ussd-dial", lambda success, info: events.append((success, info)))
        mock_transport.add_response(["OK", '+CUSD: 0,"Done",15'])

        responses = modem.ussd.dial("*100#")

        assert events == [(True, {"code": "*100#", "hash": get_hash("*100#"), "responses": responses})]

    def test_dial_with_caller_hash(self, modem, mock_transport):
        """Test a caller supplied hash is reported in the event info."""
        events = []
        modem.on("ussd-dial", lambda success, info: events.append(info["hash"]))
        mock_transport.add_response(["OK", '+CUSD: 0,"Done",15'])

        modem.ussd.dial("*100#", hash="balance-check")

        assert events == ["balance-check"]

    def test_no_response(self, modem, mock_transport, wait):
        """Test a missing response fails the session and clears the wait flag."""
        events = []
        modem.on("ussd-dial", lambda success, info: events.append(success))
        mock_transport.add_response(["OK"])

        with pytest.raises(USSDError):
            modem.ussd.dial("*100#", timeout=0.2)

        assert events == [False]
        assert modem.ussd.waiting is False
        assert wait(lambda: modem.state == [])

    def test_rejected_code(self, modem, mock_transport):
        mock_transport.add_response(["+CME ERROR: 4"])

        with pytest.raises(GsmError):
            modem.ussd.dial("*100#")

        assert modem.ussd.waiting is False


class TestUnsolicited:
    """Test USSD responses outside a session."""

    def test_ussd_event(self, modem, mock_transport, wait):
        received = []
        modem.on("ussd", received.append)

        mock_transport.feed(b'\r\n+CUSD: 0,"Promo: 1GB for 1.00",15\r\n')

        assert wait(lambda: len(received) == 1)
        assert received[0].message == "Promo: 1GB for 1.00"

    def test_cancel(self, modem, mock_transport):
        mock_transport.add_response(["OK"])

        modem.ussd.cancel()

        assert mock_transport.commands == ["AT+CUSD=2"]
