"""
Basic connection example.

Demonstrates connecting to a modem, selecting a driver and reading the
device identity.
"""

from atgsm import GsmModem

# Replace with your serial port
PORT = "/dev/ttyUSB0"


def main():
    """Main function."""
    print("atgsm - Basic Connection Example\n")

    # Connect to modem using context manager
    # This automatically starts and closes the modem
    with GsmModem(port=PORT) as modem:
        print("Connected to modem!\n")

        driver = modem.detect()
        print(f"Driver: {driver}")

        # Runs the init commands, then charset, SMS mode, SMSC and storage setup
        info = modem.initialize(monitors=False)

        print("\n=== Device Information ===")
        print(f"Name: {info.friendly_name}")
        print(f"Manufacturer: {info.manufacturer}")
        print(f"Model: {info.model}")
        print(f"Revision: {info.version}")
        print(f"IMEI: {info.serial}")
        print(f"IMSI: {info.imsi}")
        print(f"Calls: {info.has_call}  SMS: {info.has_sms}  USSD: {info.has_ussd}")

        props = modem.props
        print("\n=== Network ===")
        network = props.get("network")
        print(f"Operator: {network.code if network else 'not registered'}")
        print(f"SMSC: {props.get('smsc')}")
        print(f"Storage: {props.get('storage')} "
              f"({props.get('storage_used')}/{props.get('storage_total')})")

    print("\nConnection closed.")


if __name__ == "__main__":
    main()
