"""
Pytest configuration and fixtures.

Provides shared test fixtures for atgsm tests.
"""

import time
from datetime import datetime, timezone

import pytest
import logging

from atgsm.core import MockTransport, ModemCore
from atgsm.config import ModemConfig
from atgsm.driver import Driver
from atgsm.parsers.pdu import encode_phone_number, encode_timestamp
from atgsm import GsmModem


# Enable logging for tests
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


class HandlerContext:
    """Minimal stand-in for the modem core as seen by response handlers."""

    def __init__(self, driver=None, props=None, current=None):
        self.driver = driver or Driver()
        self.props = props if props is not None else {}
        self.current = current

    def get_cmd(self, key, **variables):
        return self.driver.get(key, **variables)


def wait_for(predicate, timeout=2.0, interval=0.01):
    """Poll until predicate() is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def mock_transport():
    """
    Create a MockTransport instance for testing.

    Example:
        def test_something(mock_transport):
            mock_transport.add_response(["OK"])
            # ... test code ...
    """
    transport = MockTransport()
    yield transport
    transport.close()


@pytest.fixture
def config():
    """Configuration with short timeouts."""
    return ModemConfig(timeout=0.5, send_timeout=1.0, ussd_timeout=1.0)


@pytest.fixture
def wait():
    """The wait_for helper, for tests that need to poll background threads."""
    return wait_for


@pytest.fixture
def context():
    """Handler context with the generic driver."""
    return HandlerContext()


@pytest.fixture
def modem_core(mock_transport, config):
    """
    Create a started ModemCore instance with MockTransport.

    Example:
        def test_at_command(modem_core, mock_transport):
            mock_transport.add_response(["+CSQ: 24,99", "OK"])
            tx = modem_core.query("AT+CSQ")
            assert tx.result["rssi"].rssi == 24
    """
    core = ModemCore(transport=mock_transport, config=config)
    core.start()
    yield core
    core.close()


@pytest.fixture
def modem(mock_transport, config):
    """
    Create a started GsmModem instance with MockTransport.

    Example:
        def test_signal(modem, mock_transport):
            mock_transport.add_response(["+CSQ: 24,99", "OK"])
            assert modem.network.get_signal_quality().rssi == 24
    """
    modem_instance = GsmModem(transport=mock_transport, config=config)
    modem_instance.start()
    yield modem_instance
    modem_instance.close()


@pytest.fixture
def mock_signal_response():
    """Mock response for AT+CSQ command."""
    return ["+CSQ: 24,99", "OK"]


@pytest.fixture
def mock_storage_response():
    """Mock response for AT+CPMS? command."""
    return ['+CPMS: "SM",6,40,"SR",6,40,"SM",6,40', "OK"]


@pytest.fixture
def mock_operator_response():
    """Mock response for AT+COPS? command."""
    return ['+COPS: 0,0,"AT&T",7', "OK"]


@pytest.fixture
def deliver_pdu():
    """
    SMS-DELIVER from 27838890001 via +27381000015, text "hellohello".

    TPDU length 28.
    """
    return "07917283010010F5040BC87238880900F10000993092516195800AE8329BFD4697D9EC37"


@pytest.fixture
def status_report_pdu():
    """SMS-STATUS-REPORT for message reference 42 to +12345678901, delivered. TPDU length 25."""
    sent = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)
    done = datetime(2024, 1, 15, 10, 30, 5, tzinfo=timezone.utc)
    number, toa = encode_phone_number("+12345678901")
    return (
        "00" + "06" + "2A" + "0B" + f"{toa:02X}" + number.hex().upper()
        + encode_timestamp(sent).hex().upper()
        + encode_timestamp(done).hex().upper()
        + "00"
    )
