"""
Tests for response decode functions.
"""

import pytest

from conftest import HandlerContext
from atgsm.core import NotificationProcessor
from atgsm.driver import Driver, DriverKeys
from atgsm.parsers.handlers import SIGNATURES
from atgsm.types import SmsMessage, SmsStatusReport


def decode(lines, context):
    """Run one processing pass and return the merged result."""
    processor = NotificationProcessor(context.driver, SIGNATURES)
    return processor.process(lines, context).result


class TestNetworkResponses:
    """Test network related responses."""

    def test_signal_quality(self, context):
        """Test AT+CSQ response."""
        rssi = decode(["+CSQ: 24,99"], context)["rssi"]

        assert rssi.rssi == 24
        assert rssi.ber == 99
        assert rssi.rssi_dbm == -65

    def test_current_operator(self, context, mock_operator_response):
        """Test AT+COPS? response."""
        network = decode(mock_operator_response[:1], context)["network"]

        assert network.mode == 0
        assert network.format == 0
        assert network.code == "AT&T"
        assert network.act == 7

    def test_network_scan(self, context):
        """Test AT+COPS=? response."""
        line = '+COPS: (2,"Operator A","OpA","51010",7),(1,"Operator B","OpB","51011",2),,(0-4),(0-2)'

        networks = decode([line], context)["networks"]

        assert len(networks) == 2
        assert networks[0].status == 2
        assert networks[0].long_name == "Operator A"
        assert networks[0].short_name == "OpA"
        assert networks[0].numeric == "51010"
        assert networks[1].act == 2

    def test_charsets(self, context):
        """Test AT+CSCS=? and AT+CSCS? responses."""
        assert decode(['+CSCS: ("GSM","UCS2","IRA")'], context)["charsets"] == ["GSM", "UCS2", "IRA"]
        assert decode(['+CSCS: "GSM"'], context)["charset"] == "GSM"

    def test_keylock(self, context):
        """Test AT+CLCK response."""
        assert decode(["+CLCK: 1"], context)["keylock"] is True
        assert decode(["+CLCK: 0"], context)["keylock"] is False

    def test_smsc(self, context):
        """Test AT+CSCA? response."""
        assert decode(['+CSCA: "+27381000015",145'], context)["smsc"] == "+27381000015"

    def test_structured_errors(self, context):
        """Test CME/CMS error lines."""
        assert decode(["+CME ERROR: 10"], context) == {"cme_error": "10"}
        assert decode(["+CMS ERROR: 500"], context) == {"cms_error": "500"}


class TestCallResponses:
    """Test call related notifications."""

    def test_ring_and_caller(self, context):
        result = decode(["RING", '+CLIP: "+15550100",145,,,,0'], context)

        assert result == {"ringing": True, "caller": "+15550100"}

    def test_call_end(self):
        """Test a driver specific call end notification."""
        context = HandlerContext(Driver("Huawei", commands={DriverKeys.RESPONSE_CALL_END: "^CEND:"}))

        assert decode(["^CEND: 1,0,104,16"], context) == {"ringing": False}


class TestStorageResponses:
    """Test storage related responses."""

    def test_storage_query(self, context, mock_storage_response):
        result = decode(mock_storage_response[:1], context)

        assert result["storage"] == "SM"
        assert result["storages"]["SR"].used == 6
        assert result["storages"]["SR"].total == 40

    def test_storage_set(self, context):
        """Test the AT+CPMS="SM" answer only reports usage."""
        result = decode(["+CPMS: 6,40,6,40,6,40"], context)

        assert result == {"storage_used": 6, "storage_total": 40}

    def test_full_storage(self, context):
        result = decode(['+CPMS: "SM",40,40,"SR",2,40,"SM",40,40'], context)

        assert result["storages"]["SM"].is_full is True
        assert result["storages"]["SR"].is_full is False

    def test_new_message_indication(self, context):
        result = decode(['+CMTI: "ME",12'], context)

        assert result == {"queues": [{"op": "read", "storage": "ME", "index": 12}]}

    def test_delivery_report_indication(self, context):
        result = decode(['+CDSI: "SR",3'], context)

        assert result == {"queues": [{"op": "read", "storage": "SR", "index": 3}]}

    def test_memory_full(self):
        context = HandlerContext(Driver("Huawei", commands={DriverKeys.RESPONSE_MEM_FULL: "^SMMEMFULL:"}))

        assert decode(['^SMMEMFULL: "SM"'], context) == {"memfull": "SM"}


class TestMessageResponses:
    """Test message listing and reading."""

    def test_read_uses_running_operation(self, deliver_pdu):
        """Test AT+CMGR takes storage and index from the running operation."""
        context = HandlerContext(current={"op": "read", "storage": "SM", "index": 3})

        envelope = decode(["+CMGR: 1,,28", deliver_pdu], context)["messages"][0]

        assert envelope.storage == "SM"
        assert envelope.index == 3
        assert envelope.status == "1"
        assert isinstance(envelope.message, SmsMessage)
        assert envelope.message.address == "27838890001"
        assert envelope.message.text == "hellohello"

    def test_read_falls_back_to_props(self, deliver_pdu):
        """Test AT+CMGR uses the tracked storage index without an operation."""
        context = HandlerContext(props={"storage": "ME", "storage_index": 7})

        envelope = decode(["+CMGR: 0,,28", deliver_pdu], context)["messages"][0]

        assert envelope.storage == "ME"
        assert envelope.index == 7

    def test_list(self, deliver_pdu):
        """Test AT+CMGL with several entries."""
        context = HandlerContext(props={"storage": "SM"})
        lines = ["+CMGL: 1,1,,28", deliver_pdu, "+CMGL: 4,0,,28", deliver_pdu]

        messages = decode(lines, context)["messages"]

        assert [m.index for m in messages] == [1, 4]
        assert [m.status for m in messages] == ["1", "0"]
        assert all(m.storage == "SM" for m in messages)

    def test_length_mismatch_skipped(self, deliver_pdu):
        """Test a PDU whose length differs from the header is skipped."""
        processor = NotificationProcessor(Driver(), SIGNATURES)

        result = processor.process(["+CMGR: 1,,27", deliver_pdu], HandlerContext())

        assert result.updates == []
        assert result.unprocessed == []

    def test_undecodable_pdu_skipped(self, context):
        """Test a broken PDU is skipped without raising."""
        assert decode(["+CMGR: 1,,3", "00FFFF"], context) == {}

    def test_direct_delivery(self, context, deliver_pdu):
        """Test +CMT carries the PDU inline."""
        envelope = decode(["+CMT: ,28", deliver_pdu], context)["messages"][0]

        assert envelope.index is None
        assert envelope.message.text == "hellohello"

    def test_direct_status_report(self, context, status_report_pdu):
        """Test +CDS carries a status report inline."""
        envelope = decode(["+CDS: 25", status_report_pdu], context)["messages"][0]

        report = envelope.message
        assert isinstance(report, SmsStatusReport)
        assert report.message_reference == 42
        assert report.address == "+12345678901"
        assert report.delivered is True

    def test_sms_mode(self, context):
        assert decode(["+CMGF: 0"], context) == {"sms_mode": 0}

    def test_send_reference(self, context):
        assert decode(["+CMGS: 42"], context) == {"message_reference": 42}


class TestUssdResponses:
    """Test +CUSD decoding."""

    def test_plain_text(self, context):
        ussd = decode(['+CUSD: 0,"Balance 10.00",15'], context)["ussd"]

        assert ussd.code == 0
        assert ussd.message == "Balance 10.00"
        assert ussd.dcs == 15

    def test_code_only(self, context):
        ussd = decode(["+CUSD: 2"], context)["ussd"]

        assert ussd.code == 2
        assert ussd.message is None

    def test_encoded_response(self):
        """Test packed GSM 7-bit responses are decoded when the driver says so."""
        driver = Driver("Encoded", commands={DriverKeys.PARAM_USSD_RESPONSE_ENCODED: "1"})
        context = HandlerContext(driver)

        ussd = decode(['+CUSD: 0,"AA180C3602",15'], context)["ussd"]

        assert ussd.message == "*100#"

    def test_other_coding_scheme_decoded(self, context):
        """Test a coding scheme other than the one sent is decoded."""
        ussd = decode(['+CUSD: 1,"00480069",72'], context)["ussd"]

        assert ussd.message == "Hi"
        assert ussd.code == 1

    @pytest.mark.parametrize("line", ['+CUSD: 0,"not hex",72', '+CUSD: 0,"ZZ",15'])
    def test_undecodable_left_as_is(self, line):
        driver = Driver("Encoded", commands={DriverKeys.PARAM_USSD_RESPONSE_ENCODED: "1"})

        ussd = decode([line], HandlerContext(driver))["ussd"]

        assert ussd.message in ("not hex", "ZZ")
