"""
Mock transport for testing the OBD WiFi proxy.

This module provides a simulated ELM327 adapter that answers commands
from a table of recorded responses, so the proxy can be exercised
without a vehicle or a Bluetooth dongle.
"""

from typing import Optional

from .exceptions import NotConnectedException, TransportException
from .transport import ENCODING, Transport


class MockTransport(Transport):
    """
    Mock transport simulating an ELM327 adapter.

    Attributes:
        responses (dict): Dictionary mapping commands to responses.
        connected (bool): Value reported by is_connected().
        sent (list): Raw texts passed to send_text(), in order.
        call_count (dict): Counter for command calls.
        chunk_size (int | None): If set, read_available() never reports more
            than this many bytes, so responses arrive in several reads.
        fail_on_send (Exception | None): Raised by send_text() when set.
    """

    def __init__(self, connected: bool = True, chunk_size: Optional[int] = None) -> None:
        """
        Initialize mock transport.

        Args:
            connected: Initial link state reported by is_connected()
            chunk_size: Maximum bytes made available per poll
        """
        super().__init__()
        self.connected = connected
        self.chunk_size = chunk_size
        self.fail_on_send: Optional[Exception] = None
        self.sent: list[str] = []
        self.call_count: dict[str, int] = {}
        self._read_buffer: bytes = b''

        # Responses with echo off (ATE0), as a real adapter answers after init
        self.responses: dict[str, Optional[str]] = {
            'ATZ': '\r\rELM327 v1.5\r\r>',
            'ATI': 'ELM327 v1.5\r\r>',
            'ATE0': 'ATE0\rOK\r\r>',
            'ATL0': 'OK\r\r>',
            'ATS0': 'OK\r\r>',
            'ATS1': 'OK\r\r>',
            'ATH0': 'OK\r\r>',
            'ATH1': 'OK\r\r>',
            'ATSP0': 'OK\r\r>',
            'ATDPN': 'A6\r\r>',
            'ATRV': '12.6V\r\r>',
            '0100': '41 00 BE 3E B8 11 \r\r>',
            '0105': '41 05 7B \r\r>',
            '010C': '41 0C 1A F8 \r\r>',
            '010D': '41 0D 32 \r\r>',
            '0902': 'SEARCHING...\r7E8 10 14 49 02 01 4B 4E 41 \r7E8 21 4A 33 38 31 32 33 34 \r7E8 22 35 36 37 38 39 30 31 \r\r>',
        }

    async def open(self) -> None:
        """
        Open the mock transport.
        """
        self._is_open = True

    async def close(self) -> None:
        """
        Close the mock transport.
        """
        self._is_open = False
        self._read_buffer = b''

    async def is_connected(self) -> bool:
        """
        Report the simulated link state.
        """
        return self.connected

    async def send_text(self, text: str) -> None:
        """
        Mock write operation.

        Queues the recorded response for the command; unknown commands
        answer '?' like a real ELM327. A response of None means the
        adapter stays silent.

        Args:
            text (str): Command text including the trailing carriage return.
        """
        if self.fail_on_send is not None:
            raise self.fail_on_send
        if not self.connected:
            raise NotConnectedException("Mock adapter not connected")

        self.sent.append(text)
        command = text.strip().upper()
        self.call_count[command] = self.call_count.get(command, 0) + 1

        response = self.responses.get(command, '?\r\r>')
        if response is not None:
            self.feed(response)

    def feed(self, data: str | bytes) -> None:
        """
        Append data to the read buffer as if the adapter had sent it.

        Args:
            data: Text or raw bytes
        """
        if isinstance(data, str):
            data = data.encode(ENCODING)
        self._read_buffer += data

    async def read_available(self) -> int:
        """
        Report how many bytes are waiting.

        Returns:
            int: Buffered byte count, capped at chunk_size when set.
        """
        if not self.connected:
            raise TransportException("Mock adapter not connected")
        available = len(self._read_buffer)
        if self.chunk_size is not None:
            available = min(available, self.chunk_size)
        return available

    async def read_data(self, buffer_size: int = 1024) -> bytes:
        """
        Mock read operation.

        Args:
            buffer_size (int): Maximum number of bytes to read.

        Returns:
            bytes: Response data.
        """
        result = self._read_buffer[:buffer_size]
        self._read_buffer = self._read_buffer[buffer_size:]
        return result
