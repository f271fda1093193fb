"""
OBD WiFi proxy server.

Acts as a WiFi-to-Bluetooth bridge for OBD-II communication: OBD scanner
apps that expect an ELM327 WiFi adapter connect over TCP and their
commands are relayed to the adapter behind the configured transport.

Standard ELM327 WiFi adapters use port 35000.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from .addresses import list_candidate_addresses
from .collector import ResponseCollector
from .forwarder import Forwarder
from .framer import CommandFramer
from .status import StatusCallback, StatusNotifier
from .transport import ENCODING, Transport, show_line_breaks

logger = logging.getLogger(__name__)

DEFAULT_PORT = 35000
BUSY_RESPONSE = b"BUSY\r\n"
READ_SIZE = 1024


@dataclass
class ServerState:
    """Listener state, reset on every stop()."""

    running: bool = False
    port: int = DEFAULT_PORT
    bound_addresses: list[str] = field(default_factory=list)


@dataclass
class ClientSession:
    """The one connected OBD app."""

    remote_address: str
    remote_port: int
    writer: asyncio.StreamWriter
    framer: CommandFramer = field(default_factory=CommandFramer)

    @property
    def label(self) -> str:
        return f"{self.remote_address}:{self.remote_port}"


class OBDProxyServer:
    """
    TCP listener serving one OBD app at a time.

    A second connection attempt while a client is attached is answered
    with BUSY and closed. Commands of the attached client are forwarded
    strictly one after another, so at most one exchange is ever in flight
    on the transport.

    Attributes:
        transport (Transport): Link to the OBD2 adapter.
        host (str): Interface to bind, all IPv4 interfaces by default.
        forwarder (Forwarder): Command/response relay.
        status (StatusNotifier): Observers of start/stop/connect/disconnect.
    """

    def __init__(
        self,
        transport: Transport,
        host: str = "0.0.0.0",
        port: int = DEFAULT_PORT,
        collector: Optional[ResponseCollector] = None,
        address_provider: Callable[[], Awaitable[list[str]]] = list_candidate_addresses,
    ) -> None:
        self.transport = transport
        self.host = host
        self.forwarder = Forwarder(transport, collector)
        self.status = StatusNotifier()
        self._address_provider = address_provider
        self._default_port = port
        self._state = ServerState(port=port)
        self._server: Optional[asyncio.Server] = None
        self._session: Optional[ClientSession] = None
        self._on_status_changed: Optional[StatusCallback] = None
        self._unsubscribe_primary: Optional[Callable[[], None]] = None

    @property
    def is_running(self) -> bool:
        return self._state.running

    @property
    def port(self) -> int:
        return self._state.port

    @property
    def bound_addresses(self) -> list[str]:
        return list(self._state.bound_addresses)

    @property
    def client_address(self) -> Optional[str]:
        return self._session.remote_address if self._session else None

    @property
    def on_status_changed(self) -> Optional[StatusCallback]:
        """Primary status callback; assigning replaces the previous one."""
        return self._on_status_changed

    @on_status_changed.setter
    def on_status_changed(self, callback: Optional[StatusCallback]) -> None:
        if self._unsubscribe_primary is not None:
            self._unsubscribe_primary()
            self._unsubscribe_primary = None
        self._on_status_changed = callback
        if callback is not None:
            self._unsubscribe_primary = self.status.subscribe(callback)

    async def start(self, port: Optional[int] = None) -> bool:
        """
        Start listening for OBD apps.

        Args:
            port: TCP port; if omitted the last port used (35000 initially)

        Returns:
            bool: True if the server is running, False if the port could not be bound.
        """
        if self._state.running:
            logger.info("Already running on port %d", self._state.port)
            return True

        if port is not None:
            self._default_port = port
        port = self._default_port
        logger.info("Starting server on port %d...", port)

        try:
            self._server = await asyncio.start_server(
                self._handle_connection,
                host=self.host,
                port=port,
                reuse_address=True,
            )
        except OSError as e:
            logger.error("Failed to start server on port %d: %s", port, e)
            self._server = None
            return False

        # Report the real port when asked for an ephemeral one
        sockets = self._server.sockets or ()
        if sockets:
            port = sockets[0].getsockname()[1]

        # Clients can be accepted from here on, announce before any await
        state = ServerState(running=True, port=port)
        self._state = state
        logger.info("Server STARTED on port %d", port)
        self.status.notify(True, None)

        state.bound_addresses = await self._discover_addresses()
        if state.bound_addresses:
            for address in state.bound_addresses:
                logger.info("Connect your OBD app to: %s:%d", address, port)
        else:
            logger.warning("No WiFi IP found - check WiFi connection")

        return True

    async def stop(self) -> None:
        """Disconnect the client, close the listener and reset the state."""
        logger.info("Stopping server...")

        self._state.running = False
        if self._session is not None:
            self._disconnect_client(self._session)

        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        self._state = ServerState(port=self._default_port)
        logger.info("Server stopped")
        self.status.notify(False, None)

    async def get_connection_info(self) -> str:
        """
        Human-readable connection hint for display.

        Returns:
            str: Addresses and port to enter in the OBD app, plus the client
            address if one is connected.
        """
        if not self._state.running:
            return "Proxy not running"

        port = self._state.port
        addresses = await self._discover_addresses()
        if not addresses:
            return f"No WiFi connection\nPort: {port}"

        lines = ["OBD WiFi Proxy Active", f"Port: {port}", "", "Connect your OBD app to:"]
        lines.extend(f"  {address}:{port}" for address in addresses)

        if self._session is not None:
            lines.extend(["", f"Client connected: {self._session.remote_address}"])

        return "\n".join(lines) + "\n"

    async def _discover_addresses(self) -> list[str]:
        try:
            return await self._address_provider()
        except Exception as e:
            logger.warning("Error getting IP addresses: %s", e)
            return []

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Handle an incoming client connection."""
        peer = writer.get_extra_info("peername") or ("unknown", 0)
        remote_address, remote_port = peer[0], peer[1]
        logger.info("Incoming connection from %s:%s", remote_address, remote_port)

        # Only allow one client at a time
        if self._session is not None:
            logger.info("Rejecting %s:%s - already have a client connected", remote_address, remote_port)
            await self._reject(writer)
            return

        session = ClientSession(remote_address=remote_address, remote_port=remote_port, writer=writer)
        self._session = session
        logger.info("Client ACCEPTED: %s", session.label)
        self.status.notify(True, remote_address)

        try:
            await self._serve(session, reader)
        except (ConnectionError, OSError) as e:
            logger.info("Client error: %s", e)
        finally:
            logger.info("Client disconnected: %s", session.label)
            self._disconnect_client(session)

    async def _reject(self, writer: asyncio.StreamWriter) -> None:
        try:
            writer.write(BUSY_RESPONSE)
            await writer.drain()
        except (ConnectionError, OSError) as e:
            logger.debug("Error sending BUSY: %s", e)
        finally:
            writer.close()

    async def _serve(self, session: ClientSession, reader: asyncio.StreamReader) -> None:
        """Read loop for the attached client; one command at a time."""
        while self._session is session:
            data = await reader.read(READ_SIZE)
            if not data:
                return

            logger.debug("WiFi RX (%d bytes): %s", len(data), show_line_breaks(data.decode(ENCODING)))
            command = session.framer.feed(data)
            if command is None:
                continue

            response = await self.forwarder.forward(command)
            await self._send_to_client(session, response)

    async def _send_to_client(self, session: ClientSession, text: str) -> None:
        """Write a response; a no-op once the client is gone."""
        writer = session.writer
        if self._session is not session or writer.is_closing():
            logger.debug("Dropping response for departed client %s", session.label)
            return

        try:
            writer.write(text.encode(ENCODING))
            await writer.drain()
            logger.debug("TX to client: %s", show_line_breaks(text))
        except (ConnectionError, OSError) as e:
            logger.warning("Error sending to client: %s", e)

    def _disconnect_client(self, session: ClientSession) -> None:
        """Tear down a session; only the first call for a session has effect."""
        if self._session is not session:
            return

        self._session = None
        session.framer.clear()
        session.writer.close()

        if self._state.running:
            self.status.notify(True, None)
