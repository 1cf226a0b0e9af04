"""
Incoming events example.

Demonstrates receiving messages (single and multi-part), incoming calls and
network-initiated USSD through event callbacks.
"""

import logging
import time
from atgsm import GsmModem

# Replace with your serial port
PORT = "/dev/ttyUSB0"


def on_message(message, envelopes):
    """Handle a received message."""
    print(f"\n[MESSAGE] {message.address} at {message.time}: {message.text}")


def on_multipart_message(message, envelopes):
    """Handle a reassembled long message."""
    print(f"\n[MESSAGE] {message.address} ({len(envelopes)} parts): {message.text}")


def on_ring(caller, count):
    print(f"\n[RING] {caller} (ring {count})")


def on_ussd(response):
    print(f"\n[USSD] {response.message}")


def main():
    """Main function."""
    logging.basicConfig(level=logging.INFO)
    print("atgsm - Incoming Events Example\n")

    with GsmModem(
        port=PORT,
        delete_message_on_read=True,
        empty_when_full=True,
        log_notifications=True,
    ) as modem:
        modem.detect()
        modem.initialize()

        modem.on("message", on_message)
        modem.on("multipart-message", on_multipart_message)
        modem.on("ring", on_ring)
        modem.on("ussd", on_ussd)

        print("Listening (Ctrl+C to stop)...")
        try:
            while not modem.is_disconnected():
                time.sleep(1)
        except KeyboardInterrupt:
            print("\nStopping...")


if __name__ == "__main__":
    main()
