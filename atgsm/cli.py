"""
Interactive terminal for a GSM modem.

Lines starting with ``AT`` go to the modem as they are; a few words
(``send``, ``ussd``, ``info``) drive the higher level managers.
"""

import argparse
import logging
import sys
from typing import Callable, Optional

from .exceptions import GsmError
from .modem import GsmModem
from .version import __version__

HELP = """
  AT...                 raw command, e.g. AT+CSQ or AT+COPS?
  send <number> <text>  send an SMS
  ussd <code>[,reply]   run a USSD session, e.g. ussd *123#,1
  info                  identity, signal, operator and storage
  clear                 clear the screen
  help                  this text
  quit                  leave (also exit, q, Ctrl-D)
"""


class GsmCLI:
    """REPL bound to one modem."""

    def __init__(self, port: str, baudrate: int = 115200, show_events: bool = True):
        """
        Args:
            port: Serial port path
            baudrate: Line speed
            show_events: Print incoming messages, rings and USSD as they arrive
        """
        self.port = port
        self.baudrate = baudrate
        self.show_events = show_events
        self.modem: Optional[GsmModem] = None
        self.event_count = 0
        self._words: dict[str, Callable[[str], None]] = {
            "send": self._send_message,
            "ussd": self._dial_ussd,
            "info": lambda _: self._show_modem_info(),
            "help": lambda _: print(HELP),
            "clear": lambda _: print("\033[2J\033[H", end=""),
        }

    def _notify(self, text: str) -> None:
        self.event_count += 1
        print(f"\n[EVENT {self.event_count}] {text}")
        print("> ", end="", flush=True)

    def _setup_event_display(self):
        if not self.show_events:
            return
        on, say = self.modem.on, self._notify
        on("message", lambda msg, envelopes: say(f"Message from {msg.address}: {msg.text}"))
        on("multipart-message", lambda msg, envelopes: say(
            f"Message from {msg.address} ({len(envelopes)} parts): {msg.text}"))
        on("status-report", lambda report, envelope: say(
            f"Delivery report for {report.address} (ref {report.message_reference}): {report.status}"))
        on("ring", lambda caller, count: say(f"Ring from {caller} ({count})"))
        on("ussd", lambda response: say(f"USSD [{response.code}]: {response.message}"))

    def _connect(self) -> None:
        self.modem = GsmModem(port=self.port, baudrate=self.baudrate)
        self.modem.start()
        driver = self.modem.detect()
        self.modem.initialize(monitors=False)
        self._setup_event_display()
        print(f"Connected ({driver} driver).\n")

    def _dispatch(self, line: str) -> None:
        word, _, rest = line.partition(" ")
        handler = self._words.get(word.lower())
        if handler is None:
            self._send_command(line)
        else:
            handler(rest.strip())

    def run(self) -> int:
        """Connect, then read commands until the user quits."""
        print(f"atgsm CLI v{__version__} on {self.port} @ {self.baudrate}")
        print("'help' lists commands\n")

        try:
            self._connect()
            while True:
                try:
                    line = input("> ").strip()
                except KeyboardInterrupt:
                    print("\n'quit' leaves the terminal")
                    continue
                except EOFError:
                    break
                if line.lower() in ("quit", "exit", "q"):
                    break
                if line:
                    self._dispatch(line)
        except GsmError as e:
            print(f"\nError: {e}")
            return 1
        finally:
            if self.modem:
                self.modem.close()
                print("\nDisconnected.")
        return 0

    def _send_command(self, cmd: str):
        try:
            tx = self.modem.query(cmd)
        except GsmError as e:
            print(f"Error: {e}")
            return
        print("\n".join(tx.responses + ["OK"]))

    def _send_message(self, args: str):
        """send <number> <text>"""
        number, _, text = args.partition(" ")
        if not (number and text):
            print("Usage: send <number> <text>")
            return
        try:
            parts = self.modem.send_message(number, text)
        except GsmError as e:
            print(f"Error: {e}")
            return
        refs = ", ".join(str(p.message_reference) for p in parts)
        print(f"Sent in {len(parts)} part(s), reference(s): {refs}")

    def _dial_ussd(self, code: str):
        """ussd <code>[,<reply>...]"""
        if not code:
            print("Usage: ussd <code>")
            return
        try:
            for response in self.modem.ussd.dial(code):
                print(f"[{response.code}] {response.message or ''}")
        except GsmError as e:
            print(f"Error: {e}")

    def _show_modem_info(self):
        info = self.modem.device.info
        rows = [
            ("Modem", info.friendly_name),
            ("Manufacturer", info.manufacturer),
            ("Model", info.model),
            ("Version", info.version),
            ("IMEI", info.serial),
            ("IMSI", info.imsi),
            ("Driver", self.modem.driver.name),
        ]
        try:
            signal = self.modem.network.get_signal_quality()
            rows.append(("Signal", f"{signal.rssi_dbm} dBm, BER {signal.ber}"
                         if signal.is_valid else "none"))
            network = self.modem.network.get_network()
            rows.append(("Operator", network.code if network else "not registered"))
            for name, storage in self.modem.storage.get_storage().items():
                rows.append((f"Storage {name}", f"{storage.used}/{storage.total}"))
        except GsmError as e:
            rows.append(("Error", str(e)))
        for label, value in rows:
            print(f"{label + ':':14} {value}")


def main():
    """Entry point of ``atgsm-cli``."""
    parser = argparse.ArgumentParser(
        description="Interactive AT terminal for GSM modems",
        epilog="example: atgsm-cli /dev/ttyUSB0 -b 9600",
    )
    parser.add_argument("port", help="serial port, e.g. /dev/ttyUSB0 or COM3")
    parser.add_argument("-b", "--baudrate", type=int, default=115200,
                        help="line speed (default: 115200)")
    parser.add_argument("--no-events", action="store_true",
                        help="do not print incoming events")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="debug logging, including raw traffic")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    return GsmCLI(args.port, args.baudrate, show_events=not args.no_events).run()


if __name__ == "__main__":
    sys.exit(main())
