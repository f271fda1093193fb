"""
Configuration for the OBD WiFi proxy.

Settings are read from an INI file; every key has a default so an empty
section (or a missing optional section) is valid. See proxy_config.ini
for an annotated example.
"""

import configparser
import os
from dataclasses import dataclass, field

from .collector import GRACE_PERIOD, POLL_INTERVAL, RESPONSE_TIMEOUT
from .exceptions import ConfigurationException
from .server import DEFAULT_PORT

TRANSPORT_TYPES = ("serial", "ble", "mock")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class TransportConfig:
    type: str = "mock"
    device: str = "/dev/rfcomm0"
    baudrate: int = 38400
    ble_address: str = ""
    timeout: float = 10.0


@dataclass
class TimingConfig:
    response_timeout: float = RESPONSE_TIMEOUT
    poll_interval: float = POLL_INTERVAL
    grace_period: float = GRACE_PERIOD


@dataclass
class MQTTConfig:
    enabled: bool = False
    broker: str = "localhost"
    port: int = 1883
    username: str = ""
    password: str = ""
    client_id: str = "obd_proxy"
    status_topic: str = "obd_proxy/status"
    qos: int = 1
    retain: bool = True


@dataclass
class ProxyConfig:
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    transport: TransportConfig = field(default_factory=TransportConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    mqtt: MQTTConfig = field(default_factory=MQTTConfig)
    log_level: str = "INFO"


def _section(config: configparser.ConfigParser, name: str) -> configparser.SectionProxy:
    if name not in config:
        config.add_section(name)
    return config[name]


def parse_config(config: configparser.ConfigParser) -> ProxyConfig:
    """
    Build a ProxyConfig from parsed INI data.

    Raises:
        ConfigurationException: If a value has the wrong type or is out of range
    """
    defaults = ProxyConfig()

    try:
        proxy = _section(config, "Proxy")
        transport = _section(config, "Transport")
        timing = _section(config, "Timing")
        mqtt = _section(config, "MQTT")
        logging_section = _section(config, "Logging")

        result = ProxyConfig(
            host=proxy.get("host", defaults.host).strip(),
            port=proxy.getint("port", defaults.port),
            transport=TransportConfig(
                type=transport.get("type", defaults.transport.type).strip().lower(),
                device=transport.get("device", defaults.transport.device).strip(),
                baudrate=transport.getint("baudrate", defaults.transport.baudrate),
                ble_address=transport.get("ble_address", defaults.transport.ble_address).strip(),
                timeout=transport.getfloat("timeout", defaults.transport.timeout),
            ),
            timing=TimingConfig(
                response_timeout=timing.getfloat("response_timeout", defaults.timing.response_timeout),
                poll_interval=timing.getfloat("poll_interval", defaults.timing.poll_interval),
                grace_period=timing.getfloat("grace_period", defaults.timing.grace_period),
            ),
            mqtt=MQTTConfig(
                enabled=mqtt.getboolean("enabled", defaults.mqtt.enabled),
                broker=mqtt.get("broker", defaults.mqtt.broker).strip(),
                port=mqtt.getint("port", defaults.mqtt.port),
                username=mqtt.get("username", defaults.mqtt.username).strip(),
                password=mqtt.get("password", defaults.mqtt.password).strip(),
                client_id=mqtt.get("client_id", defaults.mqtt.client_id).strip(),
                status_topic=mqtt.get("status_topic", defaults.mqtt.status_topic).strip(),
                qos=mqtt.getint("qos", defaults.mqtt.qos),
                retain=mqtt.getboolean("retain", defaults.mqtt.retain),
            ),
            log_level=logging_section.get("level", defaults.log_level).strip().upper(),
        )
    except ValueError as e:
        raise ConfigurationException(f"Invalid configuration value: {e}") from e

    if not 0 <= result.port <= 65535:
        raise ConfigurationException(f"Invalid proxy port: {result.port}")
    if result.transport.type not in TRANSPORT_TYPES:
        raise ConfigurationException(
            f"Invalid transport type '{result.transport.type}', expected one of {', '.join(TRANSPORT_TYPES)}"
        )
    if result.timing.response_timeout <= 0 or result.timing.poll_interval <= 0 or result.timing.grace_period < 0:
        raise ConfigurationException("Timing values must be positive")
    if result.mqtt.qos not in (0, 1, 2):
        raise ConfigurationException(f"Invalid MQTT qos: {result.mqtt.qos}")
    if result.log_level not in LOG_LEVELS:
        raise ConfigurationException(f"Invalid log level: {result.log_level}")

    return result


def load_config(config_file: str) -> ProxyConfig:
    """
    Load and validate configuration from an INI file.

    Args:
        config_file: Path to the INI file

    Raises:
        ConfigurationException: If the file is missing, unreadable or invalid
    """
    if not os.path.exists(config_file):
        raise ConfigurationException(f"Configuration file '{config_file}' not found")

    config = configparser.ConfigParser()
    try:
        config.read(config_file)
    except configparser.Error as e:
        raise ConfigurationException(f"Cannot parse '{config_file}': {e}") from e

    return parse_config(config)
