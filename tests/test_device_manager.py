"""
Tests for device manager.
"""

import pytest

from atgsm import ATTimeoutError, DriverKeys, DriverRegistry, GsmModem

IDENTITY = [
    ["OK"],                                         # ATZ
    ["OK"],                                         # ATE0
    ["Quectel EC25", "OK"],                         # ATI
    ["Quectel", "OK"],                              # AT+CGMI
    ["EC25", "OK"],                                 # AT+CGMM
    ["Revision: EC25EFAR06A06M4G", "OK"],           # AT+CGMR
    ["867584030000000", "OK"],                      # AT+CGSN
    ["510101234567890", "OK"],                      # AT+CIMI
    ["OK"],                                         # AT+CLIP=1
    ["ERROR"],                                      # AT+CNMI=2,1,,2
    ["OK"],                                         # AT+CUSD=1
    ['+CSCS: ("IRA","GSM","UCS2")', "OK"],          # AT+CSCS=?
]


def script(transport, responses):
    for response in responses:
        transport.add_response(response)


class TestDetect:
    """Test modem detection."""

    def test_detect_generic(self, modem, mock_transport):
        script(mock_transport, [["OK"], ["SIMCOM SIM800", "OK"]])

        assert modem.detect() == "Generic"
        assert mock_transport.commands == ["AT", "ATI"]
        assert modem.device.info.friendly_name == "SIMCOM SIM800"

    def test_detect_selects_driver(self, mock_transport, config):
        """Test the best matching registered driver is used."""
        registry = DriverRegistry()
        registry.create("Huawei", parent="Generic", commands={DriverKeys.RESPONSE_RSSI: "^RSSI:"})
        modem = GsmModem(transport=mock_transport, registry=registry, config=config)
        modem.start()
        try:
            script(mock_transport, [["OK"], ["Huawei E173", "OK"]])

            assert modem.detect() == "Huawei"
            assert modem.driver.name == "Huawei"
            assert modem.core.processor.driver is modem.driver
        finally:
            modem.close()

    def test_detect_no_answer(self, modem, mock_transport):
        with pytest.raises(ATTimeoutError):
            modem.detect()


class TestInitialize:
    """Test the initialization batch."""

    def test_initialize(self, modem, mock_transport):
        """Test identity and capabilities are gathered."""
        script(mock_transport, IDENTITY)

        info = modem.device.initialize()

        assert mock_transport.commands[:2] == ["ATZ", "ATE0"]
        assert len(mock_transport.commands) == len(IDENTITY)
        assert info.friendly_name == "Quectel EC25"
        assert info.manufacturer == "Quectel"
        assert info.model == "EC25"
        assert info.version == "Revision: EC25EFAR06A06M4G"
        assert info.serial == "867584030000000"
        assert info.imsi == "510101234567890"
        assert info.has_call is True
        assert info.has_sms is False
        assert info.has_ussd is True
        assert info.extra["charsets"] == ["IRA", "GSM", "UCS2"]
        assert modem.props["info"] is info

    def test_device_name_fallback(self, modem, mock_transport):
        """Test the name is built from manufacturer and model when ATI fails."""
        responses = [list(r) for r in IDENTITY]
        responses[2] = ["ERROR"]
        script(mock_transport, responses)

        info = modem.device.initialize()

        assert info.friendly_name == "Quectel EC25"
