"""
USSD session example.

Demonstrates a balance check and a menu navigation session.
"""

from atgsm import GsmModem, GsmError

# Replace with your serial port and operator codes
PORT = "/dev/ttyUSB0"
BALANCE_CODE = "*100#"
MENU_SESSION = "*123#,1,2"


def main():
    """Main function."""
    print("atgsm - USSD Example\n")

    with GsmModem(port=PORT, ussd_timeout=20) as modem:
        modem.detect()
        modem.initialize(monitors=False)

        for code in (BALANCE_CODE, MENU_SESSION):
            print(f"=== {code} ===")
            try:
                for response in modem.ussd.dial(code):
                    print(f"[{response.code}] {response.message}")
            except GsmError as e:
                print(f"USSD failed: {e}")
                modem.ussd.cancel()


if __name__ == "__main__":
    main()
