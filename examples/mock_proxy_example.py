"""
Example: Running the proxy against a simulated adapter.

This example starts the proxy with the MockTransport and then talks to it
the way an OBD app would, over a TCP connection. No hardware is required.
"""

import asyncio
from obd_proxy import MockTransport, OBDProxyServer


async def query(reader, writer, command):
    """Send one command and read until the ELM327 prompt."""
    writer.write(command.encode('latin-1') + b'\r')
    await writer.drain()
    response = await reader.readuntil(b'>')
    return response.decode('latin-1')


async def main():
    """Main example function."""
    transport = MockTransport()

    async with transport:
        server = OBDProxyServer(transport, host="127.0.0.1", port=35000)
        server.on_status_changed = lambda running, client: print(f"[status] running={running} client={client}")

        if not await server.start():
            print("Could not start proxy (port in use?)")
            return

        print(await server.get_connection_info())

        try:
            reader, writer = await asyncio.open_connection("127.0.0.1", server.port)

            # Typical app initialization
            for command in ("ATZ", "ATE0", "ATSP0"):
                response = await query(reader, writer, command)
                print(f"{command:6} -> {response!r}")

            # Engine RPM (PID 0x0C)
            print("\n=== Reading Engine RPM (PID 0x0C) ===")
            response = await query(reader, writer, "010C")
            data = response.replace('>', '').split()
            if data[:2] == ['41', '0C']:
                rpm = (int(data[2], 16) * 256 + int(data[3], 16)) / 4
                print(f"Engine RPM: {rpm}")

            # Vehicle speed (PID 0x0D)
            print("\n=== Reading Vehicle Speed (PID 0x0D) ===")
            response = await query(reader, writer, "010D")
            data = response.replace('>', '').split()
            if data[:2] == ['41', '0D']:
                print(f"Vehicle speed: {int(data[2], 16)} km/h")

            writer.close()
            await writer.wait_closed()
        finally:
            await server.stop()
            print("\n=== Proxy stopped ===")


if __name__ == "__main__":
    asyncio.run(main())
