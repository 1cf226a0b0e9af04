"""
Signal quality monitoring example.

Demonstrates checking signal strength and the current operator.
"""

import time
from atgsm import GsmModem, GsmError

# Replace with your serial port
PORT = "/dev/ttyUSB0"


def main():
    """Main function."""
    print("atgsm - Signal Quality Monitor\n")

    with GsmModem(port=PORT) as modem:
        print("Monitoring signal quality (Ctrl+C to stop)...\n")

        try:
            while True:
                try:
                    signal = modem.network.get_signal_quality()
                    if signal.is_valid:
                        print(f"Signal: RSSI={signal.rssi} ({signal.rssi_dbm} dBm), BER={signal.ber}")
                    else:
                        print("No signal detected")

                    network = modem.network.get_network()
                    print(f"Operator: {network.code if network else 'not registered'}")
                except GsmError as e:
                    print(f"Query failed: {e}")

                print("-" * 40)
                time.sleep(5)

        except KeyboardInterrupt:
            print("\nStopping monitor...")


if __name__ == "__main__":
    main()
