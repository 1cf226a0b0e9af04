"""
Tests for the interactive CLI helpers.
"""

import pytest

from atgsm.cli import GsmCLI


@pytest.fixture
def cli(modem):
    terminal = GsmCLI(port="/dev/null")
    terminal.modem = modem
    return terminal


class TestCommands:
    """Test REPL command handling."""

    def test_send_command(self, cli, mock_transport, capsys):
        mock_transport.add_response(["+CSQ: 24,99", "OK"])

        cli._send_command("AT+CSQ")

        assert capsys.readouterr().out.splitlines() == ["+CSQ: 24,99", "OK"]

    def test_send_command_error(self, cli, mock_transport, capsys):
        mock_transport.add_response(["ERROR"])

        cli._send_command("AT+BOGUS")

        assert capsys.readouterr().out.startswith("Error:")

    def test_send_message_usage(self, cli, mock_transport, capsys):
        cli._send_message("+15550100")

        assert "Usage: send" in capsys.readouterr().out
        assert mock_transport.commands == []

    def test_send_message(self, cli, mock_transport, capsys):
        mock_transport.add_response(["OK"])
        mock_transport.add_raw_response([b"\r\n> "])
        mock_transport.add_response(["+CMGS: 12", "OK"])

        cli._send_message("+15550100 Hello there")

        assert "reference(s): 12" in capsys.readouterr().out

    def test_dial_ussd(self, cli, mock_transport, capsys):
        mock_transport.add_response(["OK", '+CUSD: 0,"Balance 10.00",15'])

        cli._dial_ussd("*100#")

        assert capsys.readouterr().out.strip() == "[0] Balance 10.00"

    def test_event_display(self, cli, mock_transport, capsys, wait):
        """Test events are printed as they arrive."""
        cli._setup_event_display()

        mock_transport.feed(b'\r\n+CUSD: 0,"Promo",15\r\n')

        assert wait(lambda: cli.event_count == 1)
        assert "USSD [0]: Promo" in capsys.readouterr().out
