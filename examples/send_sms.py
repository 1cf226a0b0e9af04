"""
SMS sending example.

Demonstrates sending short, long (concatenated) and Unicode messages and
following delivery reports.
"""

import time
from atgsm import GsmModem, SMSError, TransactionError

# Replace with your serial port and recipient
PORT = "/dev/ttyUSB0"
RECIPIENT = "+1234567890"


def on_status_report(report, envelope):
    """Print delivery reports for sent messages."""
    print(f"[REPORT] message {report.message_reference} to {report.address}: status {report.status}")


def main():
    """Main function."""
    print("atgsm - SMS Sending Example\n")

    with GsmModem(port=PORT, request_message_status=True, send_timeout=90) as modem:
        modem.detect()
        modem.initialize(monitors=False)
        modem.on("status-report", on_status_report)

        messages = [
            "Hello from atgsm!",
            "This is a long message. " * 10,
            "Unicode works too: Привет, 世界!",
        ]

        for text in messages:
            try:
                parts = modem.sms.send_message(RECIPIENT, text)
                references = [p.message_reference for p in parts]
                print(f"Sent {len(parts)} part(s), references {references}")
            except (SMSError, TransactionError) as e:
                print(f"Send failed: {e}")

        print("\nWaiting 30s for delivery reports...")
        time.sleep(30)


if __name__ == "__main__":
    main()
