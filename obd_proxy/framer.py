"""
Command framing for the WiFi side of the proxy.

OBD apps send ELM327 commands terminated by CR and/or LF. The framer
accumulates the raw chunks read from the client socket and yields one
command once a terminator has been seen.
"""

from typing import Optional

from .transport import ENCODING


class CommandFramer:
    """
    Per-client receive buffer.

    As soon as the buffer holds a CR or LF, every line break in the whole
    buffer is removed and the remainder (trimmed) becomes one command. Two
    commands pipelined before a flush therefore come out glued together;
    ELM327 clients wait for the '>' prompt before sending the next one.
    """

    def __init__(self) -> None:
        self._buffer: str = ""

    def feed(self, chunk: bytes) -> Optional[str]:
        """
        Append a chunk received from the client.

        Args:
            chunk: Raw bytes read from the socket

        Returns:
            The extracted command, or None if no complete non-empty
            command is available yet.
        """
        self._buffer += chunk.decode(ENCODING)

        if "\r" not in self._buffer and "\n" not in self._buffer:
            return None

        command = self._buffer.replace("\r", "").replace("\n", "").strip()
        self._buffer = ""
        return command or None

    @property
    def pending(self) -> str:
        """Text buffered while waiting for a terminator."""
        return self._buffer

    def clear(self) -> None:
        self._buffer = ""
