"""
Abstract transport interface for the vehicle side of the proxy.

This module provides the base class for the half-duplex links (serial,
Bluetooth RFCOMM, BLE) that carry ELM327 commands to the OBD2 adapter.
"""

from abc import ABC, abstractmethod

# One byte per character in both directions, so nothing the adapter sends is lost.
ENCODING = "latin-1"


class Transport(ABC):
    """Abstract base class for OBD2 adapter transports."""

    def __init__(self) -> None:
        """Initialize the transport."""
        self._is_open: bool = False

    @abstractmethod
    async def open(self) -> None:
        """
        Open the transport.

        Raises:
            TransportException: If the link cannot be opened
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close the transport.

        Raises:
            TransportException: If closing fails
        """
        pass

    @abstractmethod
    async def is_connected(self) -> bool:
        """Check whether the link to the adapter is currently usable."""
        pass

    @abstractmethod
    async def send_text(self, text: str) -> None:
        """
        Send a text command to the adapter.

        Args:
            text: Command text, including its trailing carriage return

        Raises:
            TransportException: If the write fails
        """
        pass

    @abstractmethod
    async def read_available(self) -> int:
        """
        Get the number of bytes waiting to be read.

        Returns:
            Byte count, 0 if nothing has arrived

        Raises:
            TransportException: If the query fails
        """
        pass

    @abstractmethod
    async def read_data(self, buffer_size: int = 1024) -> bytes:
        """
        Read up to buffer_size bytes that are already available.

        Args:
            buffer_size: Maximum number of bytes to return

        Returns:
            Bytes read, possibly empty

        Raises:
            TransportException: If the read fails
        """
        pass

    @property
    def is_open(self) -> bool:
        """Check if the transport is open."""
        return self._is_open

    async def __aenter__(self) -> "Transport":
        """Async context manager entry."""
        await self.open()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Async context manager exit."""
        try:
            await self.close()
        except Exception:
            pass


def show_line_breaks(text: str) -> str:
    """Make CR/LF visible for single-line log output."""
    return text.strip().replace("\r", "<CR>").replace("\n", "<LF>")
