"""
OBD WiFi proxy package.

This package lets OBD-II apps written for ELM327 WiFi adapters (TCP port
35000) talk to an adapter that is only reachable over a serial-like link
(Bluetooth RFCOMM, BLE or USB serial).
"""

from .addresses import list_candidate_addresses
from .collector import PROMPT, ResponseCollector
from .config import ProxyConfig, load_config
from .exceptions import (
    ConfigurationException,
    NotConnectedException,
    ProxyException,
    TransportException,
    TransportTimeoutError,
)
from .forwarder import ERROR_RESPONSE, NO_CONNECTION_RESPONSE, Forwarder
from .framer import CommandFramer
from .mock_transport import MockTransport
from .serial_transport import SerialTransport
from .ble_transport import BLETransport
from .server import BUSY_RESPONSE, DEFAULT_PORT, ClientSession, OBDProxyServer, ServerState
from .status import StatusNotifier
from .transport import Transport

__all__ = [
    # Server
    'OBDProxyServer',
    'ServerState',
    'ClientSession',
    'StatusNotifier',
    'DEFAULT_PORT',
    'BUSY_RESPONSE',

    # Bridge core
    'CommandFramer',
    'Forwarder',
    'ResponseCollector',
    'PROMPT',
    'NO_CONNECTION_RESPONSE',
    'ERROR_RESPONSE',
    'list_candidate_addresses',

    # Transport layer
    'Transport',
    'SerialTransport',
    'BLETransport',
    'MockTransport',

    # Configuration
    'ProxyConfig',
    'load_config',

    # Exceptions
    'ProxyException',
    'TransportException',
    'TransportTimeoutError',
    'NotConnectedException',
    'ConfigurationException',
]
