"""
Example: Bridging a serial/RFCOMM ELM327 adapter to WiFi OBD apps.

Bind the Bluetooth adapter to /dev/rfcomm0 first (or plug in a USB adapter),
then point your OBD app at the address printed below, port 35000.
"""

import asyncio
from obd_proxy import OBDProxyServer, SerialTransport, TransportException


async def main():
    """Main example function."""
    # Serial port (replace with your port)
    # Linux: /dev/rfcomm0, /dev/ttyUSB0, etc.
    # Windows: COM3, COM4, etc.
    serial_port = "/dev/rfcomm0"

    transport = SerialTransport(
        port=serial_port,
        baudrate=38400,
        timeout=1.0
    )

    try:
        async with transport:
            print(f"Connected to serial port {serial_port}")

            server = OBDProxyServer(transport)
            if not await server.start():
                print("Could not start proxy (port in use?)")
                return

            print(await server.get_connection_info())
            print("Press Ctrl+C to stop.")

            try:
                await asyncio.Event().wait()
            finally:
                await server.stop()

    except TransportException as e:
        print(f"Error: {e}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
