"""
Forwarding of client commands to the vehicle adapter.

This is the core of the bridge: one command in, one prompt-terminated
ELM327 response out. Failures never escape as exceptions; they become
in-protocol error texts so the client's parser keeps running.
"""

import asyncio
import logging
from typing import Optional

from .collector import PROMPT, ResponseCollector
from .transport import Transport, show_line_breaks

logger = logging.getLogger(__name__)

NO_CONNECTION_RESPONSE = f"NO BLUETOOTH CONNECTION\r\n{PROMPT}"
ERROR_RESPONSE = f"ERROR\r\n{PROMPT}"


class Forwarder:
    """
    Sends commands over the transport and collects the replies.

    The transport is half-duplex, so exchanges are serialized: a command
    only goes out once the previous response has been collected, even when
    the previous caller has already gone away.
    """

    def __init__(self, transport: Transport, collector: Optional[ResponseCollector] = None) -> None:
        """
        Initialize the forwarder.

        Args:
            transport: Link to the OBD2 adapter
            collector: Response collector; a default one on the same
                transport is created when omitted
        """
        self.transport = transport
        self.collector = collector or ResponseCollector(transport)
        self._exchange_lock = asyncio.Lock()

    async def forward(self, command: str) -> str:
        """
        Forward one command and return the text to send back to the client.

        Args:
            command: ELM327 command without terminator (e.g. 'ATZ', '010C')

        Returns:
            str: Adapter response, or NO_CONNECTION_RESPONSE / ERROR_RESPONSE
        """
        async with self._exchange_lock:
            return await self._exchange(command)

    async def _exchange(self, command: str) -> str:
        try:
            logger.debug("Processing command: %r", command)

            if not await self.transport.is_connected():
                logger.warning("Adapter link down, cannot forward %r", command)
                return NO_CONNECTION_RESPONSE

            logger.debug("BT TX: %s", command)
            await self.transport.send_text(command + "\r")

            response = await self.collector.collect()
            logger.debug("BT RX: %s", show_line_breaks(response))
            return response

        except Exception as e:
            logger.error("Error forwarding command %r: %s", command, e)
            return ERROR_RESPONSE
