"""
Serial transport for the OBD2 adapter.

This module provides serial port connectivity for ELM327 adapters, either
wired (USB) or Bluetooth classic through an already bound RFCOMM device.
"""

import asyncio
from typing import Optional

import serial  # type: ignore[import-untyped]
import serial.tools.list_ports  # type: ignore[import-untyped]

from .exceptions import NotConnectedException, TransportException, TransportTimeoutError
from .transport import ENCODING, Transport


class SerialTransport(Transport):
    """Serial port transport for ELM327 adapters."""

    def __init__(
        self,
        port: str,
        baudrate: int = 38400,
        timeout: float = 1.0,
        write_timeout: float = 1.0,
    ) -> None:
        """
        Initialize serial transport.

        Args:
            port: Serial port path (e.g., '/dev/rfcomm0', '/dev/ttyUSB0', 'COM3')
            baudrate: Baud rate for serial communication
            timeout: Read timeout in seconds
            write_timeout: Write timeout in seconds
        """
        super().__init__()
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.write_timeout = write_timeout
        self._serial: Optional[serial.Serial] = None

    async def open(self) -> None:
        """Open the serial port."""
        if self._is_open:
            return

        try:
            # Run blocking serial open in thread pool
            loop = asyncio.get_running_loop()
            self._serial = await loop.run_in_executor(
                None,
                lambda: serial.Serial(
                    port=self.port,
                    baudrate=self.baudrate,
                    timeout=self.timeout,
                    write_timeout=self.write_timeout,
                    bytesize=serial.EIGHTBITS,
                    parity=serial.PARITY_NONE,
                    stopbits=serial.STOPBITS_ONE,
                ),
            )
            self._is_open = True

        except serial.SerialException as e:
            raise TransportException(f"Failed to open serial port {self.port}: {e}") from e

    async def close(self) -> None:
        """Close the serial port."""
        if not self._is_open or self._serial is None:
            return

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._serial.close)
        except Exception as e:
            raise TransportException(f"Error closing serial port: {e}") from e
        finally:
            self._serial = None
            self._is_open = False

    async def is_connected(self) -> bool:
        """Check whether the serial port is open."""
        return self._is_open and self._serial is not None and self._serial.is_open

    def _require_open(self) -> serial.Serial:
        if not self._is_open or self._serial is None:
            raise NotConnectedException("Serial port not open")
        return self._serial

    async def send_text(self, text: str) -> None:
        """Write a command to the serial port."""
        port = self._require_open()

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, port.write, text.encode(ENCODING, errors="replace"))

        except serial.SerialTimeoutException as e:
            raise TransportTimeoutError(f"Write timeout: {e}") from e
        except serial.SerialException as e:
            raise TransportException(f"Serial write error: {e}") from e

    async def read_available(self) -> int:
        """Get the number of bytes in the serial input buffer."""
        port = self._require_open()

        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, lambda: port.in_waiting)

        except (serial.SerialException, OSError) as e:
            raise TransportException(f"Serial status error: {e}") from e

    async def read_data(self, buffer_size: int = 1024) -> bytes:
        """Read up to buffer_size bytes from the serial port."""
        port = self._require_open()

        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, port.read, buffer_size)

        except serial.SerialException as e:
            raise TransportException(f"Serial read error: {e}") from e

    @staticmethod
    def list_ports() -> list[str]:
        """
        List available serial ports.

        Returns:
            List of available serial port paths
        """
        ports = serial.tools.list_ports.comports()
        return [port.device for port in ports]

    def __repr__(self) -> str:
        """String representation."""
        status = "open" if self._is_open else "closed"
        return f"SerialTransport(port={self.port}, baudrate={self.baudrate}, status={status})"
