"""
Tests for the OBD proxy server.

These tests run the real asyncio listener on 127.0.0.1 with an ephemeral
port and connect to it the way an OBD app would, with the mock transport
standing in for the Bluetooth adapter.

To run from command line:
    python -m pytest tests/test_server.py -v
"""

import asyncio
import time
import unittest

from obd_proxy.collector import ResponseCollector
from obd_proxy.mock_transport import MockTransport
from obd_proxy.server import BUSY_RESPONSE, DEFAULT_PORT, OBDProxyServer

TEST_ADDRESSES = ['192.168.1.23']


async def fake_addresses() -> list[str]:
    return list(TEST_ADDRESSES)


async def no_addresses() -> list[str]:
    return []


async def failing_addresses() -> list[str]:
    raise OSError("no interfaces")


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll predicate until it holds or fail the test."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


async def read_response(reader: asyncio.StreamReader) -> bytes:
    """Read one prompt-terminated response."""
    return await asyncio.wait_for(reader.readuntil(b'>'), timeout=2.0)


class CountingCollector(ResponseCollector):
    """Collector that records how many collect() calls overlap."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.in_flight = 0
        self.max_in_flight = 0

    async def collect(self) -> str:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            return await super().collect()
        finally:
            self.in_flight -= 1


class TestOBDProxyServer(unittest.TestCase):
    """Test suite for OBDProxyServer lifecycle, accept policy and relaying."""

    def setUp(self) -> None:
        """Create the transport and record status notifications."""
        self.transport = MockTransport()
        asyncio.run(self.transport.open())
        self.events: list[tuple[bool, object]] = []

    def _create_server(self, address_provider=fake_addresses, timeout: float = 0.3) -> OBDProxyServer:
        server = OBDProxyServer(
            self.transport,
            host='127.0.0.1',
            port=0,
            collector=ResponseCollector(self.transport, timeout=timeout),
            address_provider=address_provider,
        )
        server.status.subscribe(lambda running, client: self.events.append((running, client)))
        return server

    async def _connect(self, server: OBDProxyServer):
        return await asyncio.open_connection('127.0.0.1', server.port)

    def test_initial_state(self) -> None:
        """A new server is stopped on the standard ELM327 port."""
        server = OBDProxyServer(self.transport)
        self.assertFalse(server.is_running)
        self.assertEqual(server.port, DEFAULT_PORT)
        self.assertEqual(server.port, 35000)
        self.assertIsNone(server.client_address)

    def test_start_and_stop(self) -> None:
        """Start binds and notifies, stop resets and notifies."""
        async def run_test():
            server = self._create_server()
            self.assertTrue(await server.start())
            self.assertTrue(server.is_running)
            self.assertGreater(server.port, 0)
            self.assertEqual(server.bound_addresses, TEST_ADDRESSES)

            await server.stop()
            self.assertFalse(server.is_running)
            self.assertEqual(server.bound_addresses, [])

        asyncio.run(run_test())
        self.assertEqual(self.events, [(True, None), (False, None)])

    def test_start_is_idempotent(self) -> None:
        """A second start() keeps the existing listener."""
        async def run_test():
            server = self._create_server()
            self.assertTrue(await server.start())
            port = server.port
            self.assertTrue(await server.start(port=port + 1))
            self.assertEqual(server.port, port)
            await server.stop()

        asyncio.run(run_test())
        self.assertEqual(self.events, [(True, None), (False, None)])

    def test_stop_when_not_running(self) -> None:
        """stop() on a stopped server only notifies."""
        server = self._create_server()
        asyncio.run(server.stop())
        self.assertFalse(server.is_running)
        self.assertEqual(self.events, [(False, None)])

    def test_bind_failure(self) -> None:
        """An occupied port makes start() return False and leaves the server stopped."""
        async def run_test():
            blocker = await asyncio.start_server(lambda r, w: None, '127.0.0.1', 0)
            port = blocker.sockets[0].getsockname()[1]
            try:
                server = self._create_server()
                self.assertFalse(await server.start(port=port))
                self.assertFalse(server.is_running)
            finally:
                blocker.close()
                await blocker.wait_closed()

        asyncio.run(run_test())
        self.assertEqual(self.events, [])

    def test_address_discovery_failure_does_not_prevent_start(self) -> None:
        """Errors while listing addresses only leave the address list empty."""
        async def run_test():
            server = self._create_server(address_provider=failing_addresses)
            self.assertTrue(await server.start())
            self.assertEqual(server.bound_addresses, [])
            await server.stop()

        asyncio.run(run_test())

    def test_command_round_trip(self) -> None:
        """A CR-terminated command is forwarded once and the response returned."""
        async def run_test():
            server = self._create_server()
            await server.start()
            reader, writer = await self._connect(server)

            writer.write(b'010C\r')
            await writer.drain()
            response = await read_response(reader)

            writer.close()
            await server.stop()
            return response

        response = asyncio.run(run_test())
        self.assertEqual(response, b'41 0C 1A F8 \r\r>')
        self.assertEqual(self.transport.sent, ['010C\r'])

    def test_split_command(self) -> None:
        """'AT' followed by 'Z\\r' is forwarded as the single command ATZ."""
        async def run_test():
            server = self._create_server()
            await server.start()
            reader, writer = await self._connect(server)

            writer.write(b'AT')
            await writer.drain()
            await asyncio.sleep(0.05)
            writer.write(b'Z\r')
            await writer.drain()
            response = await read_response(reader)

            writer.close()
            await server.stop()
            return response

        response = asyncio.run(run_test())
        self.assertIn(b'ELM327 v1.5', response)
        self.assertEqual(self.transport.sent, ['ATZ\r'])

    def test_sequential_commands(self) -> None:
        """Each command gets its own response, in order."""
        async def run_test():
            server = self._create_server()
            await server.start()
            reader, writer = await self._connect(server)

            responses = []
            for command in (b'ATE0\r', b'ATSP0\r', b'010D\r'):
                writer.write(command)
                await writer.drain()
                responses.append(await read_response(reader))

            writer.close()
            await server.stop()
            return responses

        responses = asyncio.run(run_test())
        self.assertEqual(responses, [b'ATE0\rOK\r\r>', b'OK\r\r>', b'41 0D 32 \r\r>'])
        self.assertEqual(self.transport.sent, ['ATE0\r', 'ATSP0\r', '010D\r'])

    def test_second_client_gets_busy(self) -> None:
        """A second connection receives BUSY and is closed; the first is unaffected."""
        async def run_test():
            server = self._create_server()
            await server.start()
            reader1, writer1 = await self._connect(server)
            await wait_until(lambda: server.client_address is not None)

            reader2, writer2 = await self._connect(server)
            rejected = await asyncio.wait_for(reader2.read(), timeout=2.0)
            writer2.close()

            self.assertEqual(server.client_address, '127.0.0.1')

            writer1.write(b'ATI\r')
            await writer1.drain()
            response = await read_response(reader1)

            writer1.close()
            await server.stop()
            return rejected, response

        rejected, response = asyncio.run(run_test())
        self.assertEqual(rejected, BUSY_RESPONSE)
        self.assertEqual(rejected, b'BUSY\r\n')
        self.assertEqual(response, b'ELM327 v1.5\r\r>')
        self.assertEqual(self.events[:2], [(True, None), (True, '127.0.0.1')])
        self.assertEqual(self.events.count((True, '127.0.0.1')), 1)

    def test_client_disconnect(self) -> None:
        """When the client leaves, the server keeps running and accepts a new one."""
        async def run_test():
            server = self._create_server()
            await server.start()
            reader, writer = await self._connect(server)
            await wait_until(lambda: server.client_address is not None)

            writer.close()
            await writer.wait_closed()
            await wait_until(lambda: server.client_address is None)
            self.assertTrue(server.is_running)

            reader, writer = await self._connect(server)
            writer.write(b'ATRV\r')
            await writer.drain()
            response = await read_response(reader)

            writer.close()
            await server.stop()
            return response

        response = asyncio.run(run_test())
        self.assertEqual(response, b'12.6V\r\r>')
        self.assertEqual(
            self.events,
            [
                (True, None),
                (True, '127.0.0.1'),
                (True, None),
                (True, '127.0.0.1'),
                (False, None),
            ],
        )

    def test_adapter_not_connected(self) -> None:
        """A dead link is reported in-protocol and the session stays open."""
        async def run_test():
            server = self._create_server()
            await server.start()
            reader, writer = await self._connect(server)

            self.transport.connected = False
            writer.write(b'010C\r')
            await writer.drain()
            first = await read_response(reader)

            self.transport.connected = True
            writer.write(b'010C\r')
            await writer.drain()
            second = await read_response(reader)

            writer.close()
            await server.stop()
            return first, second

        first, second = asyncio.run(run_test())
        self.assertEqual(first, b'NO BLUETOOTH CONNECTION\r\n>')
        self.assertEqual(second, b'41 0C 1A F8 \r\r>')
        self.assertEqual(self.transport.sent, ['010C\r'])

    def test_transport_error_keeps_session(self) -> None:
        """A failing adapter answers ERROR and the client can carry on."""
        async def run_test():
            server = self._create_server()
            await server.start()
            reader, writer = await self._connect(server)

            self.transport.fail_on_send = OSError("rfcomm gone")
            writer.write(b'0100\r')
            await writer.drain()
            first = await read_response(reader)

            self.transport.fail_on_send = None
            writer.write(b'0100\r')
            await writer.drain()
            second = await read_response(reader)

            writer.close()
            await server.stop()
            return first, second

        first, second = asyncio.run(run_test())
        self.assertEqual(first, b'ERROR\r\n>')
        self.assertEqual(second, b'41 00 BE 3E B8 11 \r\r>')

    def test_timeout_response_is_prompt_terminated(self) -> None:
        """A silent adapter still produces a prompt for the client."""
        async def run_test():
            server = self._create_server(timeout=0.2)
            await server.start()
            reader, writer = await self._connect(server)

            self.transport.responses['0902'] = None
            writer.write(b'0902\r')
            await writer.drain()
            response = await read_response(reader)

            writer.close()
            await server.stop()
            return response

        self.assertEqual(asyncio.run(run_test()), b'\r\n>')

    def test_stop_disconnects_client_and_restart(self) -> None:
        """After stop() the client sees EOF and start() on the same port works again."""
        async def run_test():
            server = self._create_server()
            await server.start()
            port = server.port
            reader, writer = await self._connect(server)
            await wait_until(lambda: server.client_address is not None)

            await server.stop()
            self.assertFalse(server.is_running)
            self.assertIsNone(server.client_address)
            remaining = await asyncio.wait_for(reader.read(), timeout=2.0)
            writer.close()

            self.assertTrue(await server.start(port=port))
            self.assertEqual(server.port, port)
            reader, writer = await self._connect(server)
            writer.write(b'010D\r')
            await writer.drain()
            response = await read_response(reader)

            writer.close()
            await server.stop()
            return remaining, response

        remaining, response = asyncio.run(run_test())
        self.assertEqual(remaining, b'')
        self.assertEqual(response, b'41 0D 32 \r\r>')

    def test_stop_during_pending_response(self) -> None:
        """stop() while a response is being collected does not raise."""
        async def run_test():
            server = self._create_server(timeout=0.3)
            await server.start()
            reader, writer = await self._connect(server)

            self.transport.responses['0105'] = None
            writer.write(b'0105\r')
            await writer.drain()
            await wait_until(lambda: self.transport.sent == ['0105\r'])

            await server.stop()
            remaining = await asyncio.wait_for(reader.read(), timeout=2.0)
            # Let the collector run out
            await asyncio.sleep(0.4)
            writer.close()
            return server.is_running, remaining

        running, remaining = asyncio.run(run_test())
        self.assertFalse(running)
        self.assertEqual(remaining, b'')

    def test_restart_waits_for_abandoned_exchange(self) -> None:
        """A new client after stop() and start() does not overlap the old client's exchange."""
        async def run_test():
            collector = CountingCollector(self.transport, timeout=0.5)
            server = OBDProxyServer(
                self.transport,
                host='127.0.0.1',
                port=0,
                collector=collector,
                address_provider=fake_addresses,
            )
            await server.start()
            port = server.port
            reader, writer = await self._connect(server)

            self.transport.responses['0101'] = None
            writer.write(b'0101\r')
            await writer.drain()
            await wait_until(lambda: self.transport.sent == ['0101\r'])

            await server.stop()
            writer.close()

            self.assertTrue(await server.start(port=port))
            reader, writer = await self._connect(server)
            writer.write(b'ATI\r')
            await writer.drain()
            response = await read_response(reader)

            writer.close()
            await server.stop()
            return collector.max_in_flight, response

        max_in_flight, response = asyncio.run(run_test())
        self.assertEqual(max_in_flight, 1)
        self.assertEqual(response, b'ELM327 v1.5\r\r>')
        self.assertEqual(self.transport.sent, ['0101\r', 'ATI\r'])

    def test_client_during_address_discovery(self) -> None:
        """A client accepted while addresses are still being looked up stays reported."""
        async def run_test():
            gate = asyncio.Event()

            async def slow_addresses() -> list[str]:
                await gate.wait()
                return list(TEST_ADDRESSES)

            server = self._create_server(address_provider=slow_addresses)
            start_task = asyncio.create_task(server.start())
            await wait_until(lambda: server.is_running)

            reader, writer = await self._connect(server)
            await wait_until(lambda: server.client_address is not None)
            gate.set()
            started = await start_task

            events = list(self.events)
            addresses = server.bound_addresses
            client = server.client_address
            writer.close()
            await server.stop()
            return started, events, addresses, client

        started, events, addresses, client = asyncio.run(run_test())
        self.assertTrue(started)
        self.assertEqual(events, [(True, None), (True, '127.0.0.1')])
        self.assertEqual(addresses, TEST_ADDRESSES)
        self.assertEqual(client, '127.0.0.1')

    def test_connection_info(self) -> None:
        """Connection info lists the addresses, port and connected client."""
        async def run_test():
            server = self._create_server()
            stopped = await server.get_connection_info()

            await server.start()
            idle = await server.get_connection_info()

            reader, writer = await self._connect(server)
            await wait_until(lambda: server.client_address is not None)
            busy = await server.get_connection_info()

            writer.close()
            await server.stop()
            return stopped, idle, busy, server

        stopped, idle, busy, server = asyncio.run(run_test())
        self.assertEqual(stopped, 'Proxy not running')
        self.assertIn('OBD WiFi Proxy Active', idle)
        self.assertIn('Connect your OBD app to:', idle)
        self.assertIn('  192.168.1.23:', idle)
        self.assertNotIn('Client connected', idle)
        self.assertIn('Client connected: 127.0.0.1', busy)

    def test_connection_info_without_addresses(self) -> None:
        """Without a WiFi address only the port is shown."""
        async def run_test():
            server = self._create_server(address_provider=no_addresses)
            await server.start()
            info = await server.get_connection_info()
            port = server.port
            await server.stop()
            return info, port

        info, port = asyncio.run(run_test())
        self.assertEqual(info, f'No WiFi connection\nPort: {port}')

    def test_on_status_changed_single_slot(self) -> None:
        """Assigning on_status_changed replaces the previous primary callback."""
        first: list = []
        second: list = []

        async def run_test():
            server = self._create_server()
            server.on_status_changed = lambda running, client: first.append(running)
            server.on_status_changed = lambda running, client: second.append(running)
            await server.start()
            await server.stop()
            server.on_status_changed = None
            await server.stop()

        asyncio.run(run_test())
        self.assertEqual(first, [])
        self.assertEqual(second, [True, False])
        self.assertEqual(self.events, [(True, None), (False, None), (False, None)])

    def test_failing_status_observer_is_ignored(self) -> None:
        """An observer that raises does not break the server."""
        def broken(running, client):
            raise RuntimeError("ui gone")

        async def run_test():
            server = self._create_server()
            server.status.subscribe(broken)
            self.assertTrue(await server.start())
            await server.stop()

        asyncio.run(run_test())
        self.assertEqual(self.events, [(True, None), (False, None)])


if __name__ == '__main__':
    unittest.main()
