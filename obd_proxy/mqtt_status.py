"""
MQTT publisher for proxy status.

Publishes a retained JSON document every time the proxy starts, stops,
or a client connects or leaves, so a dashboard can show whether an OBD
app is currently attached.
"""

import json
import logging
from datetime import datetime
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from .config import MQTTConfig
from .server import OBDProxyServer

logger = logging.getLogger(__name__)


class MQTTStatusPublisher:
    """Forwards proxy status notifications to an MQTT topic."""

    def __init__(self, config: MQTTConfig, server: OBDProxyServer, client: Optional[mqtt.Client] = None) -> None:
        """
        Initialize the publisher.

        Args:
            config: Broker and topic settings
            server: Proxy whose status is published
            client: Pre-built MQTT client (tests); created from config when omitted
        """
        self.config = config
        self.server = server
        self.client = client or self._create_client()
        self._unsubscribe: Optional[Callable[[], None]] = None

    def _create_client(self) -> mqtt.Client:
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=self.config.client_id)
        if self.config.username:
            client.username_pw_set(self.config.username, self.config.password)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        return client

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        """Callback for when the MQTT client connects."""
        if reason_code == 0:
            logger.info("Connected to MQTT broker %s:%d", self.config.broker, self.config.port)
            self.publish(self.server.is_running, self.server.client_address)
        else:
            logger.warning("Failed to connect to MQTT broker, reason: %s", reason_code)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        """Callback for when the MQTT client disconnects."""
        if reason_code != 0:
            logger.warning("Unexpected MQTT broker disconnection (reason: %s)", reason_code)

    def start(self) -> None:
        """Connect to the broker and start following the proxy status."""
        logger.info("Connecting to MQTT broker %s:%d...", self.config.broker, self.config.port)
        self.client.connect_async(self.config.broker, self.config.port, 60)
        self.client.loop_start()
        self._unsubscribe = self.server.status.subscribe(self.publish)

    def stop(self) -> None:
        """Stop following the proxy and disconnect from the broker."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.client.disconnect()
        self.client.loop_stop()

    def build_payload(self, running: bool, client_address: Optional[str]) -> str:
        return json.dumps({
            "running": running,
            "client": client_address,
            "port": self.server.port,
            "timestamp": datetime.now().isoformat(),
        })

    def publish(self, running: bool, client_address: Optional[str]) -> None:
        """Publish one status update."""
        payload = self.build_payload(running, client_address)
        self.client.publish(self.config.status_topic, payload, qos=self.config.qos, retain=self.config.retain)
        logger.debug("Published status to %s: %s", self.config.status_topic, payload)
