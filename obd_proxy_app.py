#!/usr/bin/env python3
"""
OBD WiFi Proxy

Lets OBD-II scanner apps (Torque, Car Scanner, ...) that expect an ELM327
WiFi adapter on TCP port 35000 use an adapter that is only reachable over
Bluetooth or a serial port.

Features:
- Serves one OBD app at a time, further connections get BUSY
- Relays commands to a serial/RFCOMM, BLE or simulated adapter
- Optionally publishes proxy status (running, connected client) to MQTT
- Configurable via INI file

Usage:
    python obd_proxy_app.py [proxy_config.ini]
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from obd_proxy.ble_transport import BLETransport
from obd_proxy.collector import ResponseCollector
from obd_proxy.config import ProxyConfig, load_config
from obd_proxy.exceptions import ConfigurationException, TransportException
from obd_proxy.mock_transport import MockTransport
from obd_proxy.mqtt_status import MQTTStatusPublisher
from obd_proxy.serial_transport import SerialTransport
from obd_proxy.server import OBDProxyServer
from obd_proxy.transport import Transport


class ProxyApp:
    """Runs the proxy server until a shutdown signal arrives."""

    def __init__(self, config: ProxyConfig):
        """Initialize the application with configuration."""
        self.config = config
        self.transport: Optional[Transport] = None
        self.server: Optional[OBDProxyServer] = None
        self.publisher: Optional[MQTTStatusPublisher] = None
        self._shutdown = asyncio.Event()

    def _signal_handler(self):
        """Handle shutdown signals gracefully."""
        print("\n\nShutdown signal received. Cleaning up...")
        self._shutdown.set()

    async def _create_transport(self) -> Optional[Transport]:
        """Build the transport selected in the configuration."""
        transport_config = self.config.transport

        if transport_config.type == "mock":
            print("Using mock transport (simulated adapter)")
            return MockTransport()

        if transport_config.type == "serial":
            print(f"Using serial transport on {transport_config.device} @ {transport_config.baudrate} baud")
            return SerialTransport(transport_config.device, baudrate=transport_config.baudrate)

        ble_address = transport_config.ble_address
        if not ble_address:
            print("No BLE address configured, scanning for OBD devices (5s)...")
            devices = await BLETransport.discover_obd_devices(timeout=5.0)
            if not devices:
                print("✗ No OBD BLE devices found.")
                return None

            picked = devices[0]
            ble_address = picked['address']
            print(f"Discovered device: {picked['name']} @ {ble_address}")

        return BLETransport(ble_address, timeout=transport_config.timeout)

    def _print_serial_ports(self) -> None:
        ports = SerialTransport.list_ports()
        if ports:
            print("Available serial ports:")
            for port in ports:
                print(f"  {port}")
        else:
            print("No serial ports found. Is the Bluetooth adapter bound to /dev/rfcomm0?")

    def _print_status(self, running: bool, client_address: Optional[str]) -> None:
        if not running:
            print("✓ Proxy stopped")
        elif client_address:
            print(f"✓ OBD app connected from {client_address}")
        else:
            print("  Waiting for an OBD app to connect...")

    async def run(self) -> int:
        """Main run loop."""
        print("=" * 60)
        print("OBD WiFi Proxy")
        print("=" * 60)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._signal_handler)

        try:
            self.transport = await self._create_transport()
            if self.transport is None:
                return 1

            await self.transport.open()
            print(f"✓ Adapter transport open: {self.transport!r}")
        except TransportException as e:
            print(f"✗ Failed to open adapter transport: {e}")
            if isinstance(self.transport, SerialTransport):
                self._print_serial_ports()
            await self.cleanup()
            return 1

        timing = self.config.timing
        collector = ResponseCollector(
            self.transport,
            timeout=timing.response_timeout,
            poll_interval=timing.poll_interval,
            grace_period=timing.grace_period,
        )
        self.server = OBDProxyServer(self.transport, host=self.config.host, port=self.config.port, collector=collector)
        self.server.on_status_changed = self._print_status

        if self.config.mqtt.enabled:
            self.publisher = MQTTStatusPublisher(self.config.mqtt, self.server)
            self.publisher.start()

        if not await self.server.start():
            print(f"✗ Could not listen on port {self.config.port}. Exiting.")
            await self.cleanup()
            return 1

        print()
        print(await self.server.get_connection_info())
        print("Press Ctrl+C to stop.\n")

        await self._shutdown.wait()
        await self.cleanup()
        return 0

    async def cleanup(self):
        """Stop the server and close connections."""
        print("\nCleaning up connections...")

        if self.server and self.server.is_running:
            await self.server.stop()

        if self.publisher:
            try:
                self.publisher.stop()
                print("✓ Disconnected from MQTT broker")
            except Exception as e:
                print(f"⚠ Error disconnecting from MQTT broker: {e}")

        if self.transport:
            try:
                await self.transport.close()
                print("✓ Closed adapter transport")
            except TransportException as e:
                print(f"⚠ Error closing adapter transport: {e}")

        print("✓ Done")


def main():
    """Main entry point."""
    config_file = "proxy_config.ini"

    if len(sys.argv) > 1:
        config_file = sys.argv[1]

    try:
        config = load_config(config_file)
    except ConfigurationException as e:
        print(f"Error: {e}")
        sys.exit(1)

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    sys.exit(asyncio.run(ProxyApp(config).run()))


if __name__ == "__main__":
    main()
