"""
Response collection from the vehicle adapter.

An ELM327 signals the end of a response with the '>' prompt. The
collector polls the transport until the prompt shows up or a deadline
passes, and always hands back text that ends with a prompt.
"""

import asyncio
import logging
import time

from .transport import ENCODING, Transport

logger = logging.getLogger(__name__)

PROMPT = ">"

RESPONSE_TIMEOUT = 5.0
POLL_INTERVAL = 0.02
GRACE_PERIOD = 0.05


class ResponseCollector:
    """
    Assembles one ELM327 response from a polled transport.

    Attributes:
        transport (Transport): Link to read from.
        timeout (float): Ceiling in seconds, measured from the start of collect().
        poll_interval (float): Sleep between polls that found no data.
        grace_period (float): Wait after the prompt for trailing bytes.
    """

    def __init__(
        self,
        transport: Transport,
        timeout: float = RESPONSE_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        grace_period: float = GRACE_PERIOD,
    ) -> None:
        self.transport = transport
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.grace_period = grace_period

    async def _read_pending(self) -> str:
        available = await self.transport.read_available()
        if available <= 0:
            return ""
        data = await self.transport.read_data(available)
        return data.decode(ENCODING)

    async def collect(self) -> str:
        """
        Read the adapter's response to the command just sent.

        Returns:
            str: Accumulated response text, ending with the prompt.

        Raises:
            TransportException: If the transport fails while polling
        """
        chunks: list[str] = []
        deadline = time.monotonic() + self.timeout

        while time.monotonic() < deadline:
            text = await self._read_pending()
            if text:
                chunks.append(text)

                if PROMPT in text:
                    # Wait a bit more for any trailing data
                    await asyncio.sleep(self.grace_period)
                    chunks.append(await self._read_pending())
                    return "".join(chunks)
                continue

            await asyncio.sleep(self.poll_interval)

        response = "".join(chunks)
        logger.warning("No prompt from adapter within %.1fs (%d bytes received)", self.timeout, len(response))
        if not response.endswith(PROMPT):
            response += "\r\n" + PROMPT
        return response
