"""
BLE (Bluetooth Low Energy) transport for the OBD2 adapter.

This module provides BLE connectivity for ELM327-compatible dongles like
the Vgate iCar Pro. Notifications from the adapter are collected in a
buffer which the proxy drains with read_available()/read_data().
"""

import logging
from typing import Any, Optional

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from .exceptions import NotConnectedException, TransportException
from .transport import ENCODING, Transport

logger = logging.getLogger(__name__)


class BLETransport(Transport):
    """BLE transport for ELM327 adapters using Bleak."""

    # Common service UUIDs for OBD2 BLE adapters
    COMMON_SERVICE_UUIDS = [
        "0000fff0-0000-1000-8000-00805f9b34fb",  # Standard ELM327 BLE
        "e7810a71-73ae-499d-8c15-faa9aef0c3f2",  # Vgate iCar Pro / IOS-Vlink
    ]

    # Common OBD2 device name patterns
    OBD_NAME_PATTERNS = ["vgate", "vlink", "obd", "elm", "icar", "v-link", "ios-vlink"]

    def __init__(
        self,
        address: str,
        timeout: float = 10.0,
        service_uuid: Optional[str] = None,
        notify_uuid: Optional[str] = None,
        write_uuid: Optional[str] = None,
    ) -> None:
        """
        Initialize BLE transport.

        Args:
            address: BLE device address (e.g., 'D2:E0:2F:8D:5C:6B')
            timeout: Connection timeout in seconds
            service_uuid: Optional specific service UUID to use
            notify_uuid: Optional specific notify characteristic UUID
            write_uuid: Optional specific write characteristic UUID
        """
        super().__init__()
        self.address = address
        self.timeout = timeout
        self._service_uuid = service_uuid
        self._notify_uuid = notify_uuid
        self._write_uuid = write_uuid
        self._read_buffer = bytearray()
        self._client: Optional[Any] = None

    def _notification_handler(self, sender: Any, data: bytearray) -> None:
        """Handle incoming BLE notifications."""
        logger.debug("BLE RX %dB: %s", len(data), " ".join(f"{b:02X}" for b in data))
        self._read_buffer.extend(data)

    def _discover_characteristics(self) -> None:
        """Discover write and notify characteristics."""
        if self._notify_uuid and self._write_uuid:
            return

        services = list(self._client.services)
        if self._service_uuid:
            services = [s for s in services if s.uuid.lower() == self._service_uuid.lower()]
        else:
            # Known OBD services first, the rest in device order
            services.sort(key=lambda s: s.uuid.lower() not in self.COMMON_SERVICE_UUIDS)

        for service in services:
            for char in service.characteristics:
                if not self._notify_uuid and ("notify" in char.properties or "indicate" in char.properties):
                    self._notify_uuid = char.uuid
                if not self._write_uuid and (
                    "write" in char.properties or "write-without-response" in char.properties
                ):
                    self._write_uuid = char.uuid

            if self._notify_uuid and self._write_uuid:
                break

        if not self._notify_uuid:
            raise TransportException("No notify characteristic found")
        if not self._write_uuid:
            raise TransportException("No write characteristic found")

    async def open(self) -> None:
        """Connect to the BLE adapter and subscribe to its notifications."""
        if self._is_open:
            return

        try:
            self._client = BleakClient(self.address, timeout=self.timeout)
            await self._client.connect()

            if not self._client.is_connected:
                raise TransportException(f"Failed to connect to {self.address}")

            self._discover_characteristics()
            await self._client.start_notify(self._notify_uuid, self._notification_handler)
            self._read_buffer.clear()
            self._is_open = True

        except (BleakError, TransportException, OSError, TimeoutError) as e:
            if self._client:
                try:
                    await self._client.disconnect()
                except BleakError:
                    pass
                self._client = None
            raise TransportException(f"Failed to open BLE connection: {e}") from e

    async def close(self) -> None:
        """Disconnect from the BLE adapter."""
        if not self._is_open:
            return

        client, self._client = self._client, None
        self._is_open = False
        self._read_buffer.clear()

        if client:
            try:
                await client.stop_notify(self._notify_uuid)
            except BleakError:
                pass

            try:
                await client.disconnect()
            except BleakError as e:
                raise TransportException(f"Error closing BLE connection: {e}") from e

    async def is_connected(self) -> bool:
        """Check whether the BLE client is still connected."""
        return self._is_open and self._client is not None and self._client.is_connected

    async def send_text(self, text: str) -> None:
        """Write a command to the write characteristic."""
        if not self._is_open or not self._client:
            raise NotConnectedException("BLE device not open")

        data = text.encode(ENCODING, errors="replace")
        logger.debug("BLE TX %dB: %s", len(data), " ".join(f"{b:02X}" for b in data))

        try:
            await self._client.write_gatt_char(self._write_uuid, data)
        except BleakError as e:
            raise TransportException(f"BLE write error: {e}") from e

    async def read_available(self) -> int:
        """Get the number of buffered notification bytes."""
        if not self._is_open:
            raise NotConnectedException("BLE device not open")
        return len(self._read_buffer)

    async def read_data(self, buffer_size: int = 1024) -> bytes:
        """Pop up to buffer_size bytes from the notification buffer."""
        if not self._is_open:
            raise NotConnectedException("BLE device not open")

        data = bytes(self._read_buffer[:buffer_size])
        del self._read_buffer[:buffer_size]
        return data

    @classmethod
    async def discover_obd_devices(cls, timeout: float = 10.0) -> list[dict[str, str]]:
        """
        Discover OBD2 BLE devices.

        Args:
            timeout: Scan timeout in seconds

        Returns:
            List of potential OBD2 BLE devices with 'name' and 'address' keys
        """
        try:
            devices = await BleakScanner.discover(timeout=timeout)
        except (BleakError, OSError) as e:
            raise TransportException(f"BLE scan failed: {e}") from e

        result = []
        for device in devices:
            name = device.name or "Unknown"
            if any(pattern in name.lower() for pattern in cls.OBD_NAME_PATTERNS):
                result.append({"name": name, "address": device.address})

        return result

    def __repr__(self) -> str:
        """String representation."""
        status = "open" if self._is_open else "closed"
        return f"BLETransport(address={self.address}, status={status})"
