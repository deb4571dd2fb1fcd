"""MQTT broadcaster for submission queue activity events.

Each event is published as JSON on `<topic>/<event>`, for example
`submissions/queue/exhausted`, so dashboards can subscribe to only the
events they care about (or to `<topic>/#` for all of them).
"""
import json
import logging
import time
from enum import Enum
from typing import Optional, Union

import paho.mqtt.client as mqtt

from .config import Config

logger = logging.getLogger(__name__)


class QueueEvent(str, Enum):
    """Queue activity published to MQTT."""

    enqueued = "enqueued"
    retry_scheduled = "retry_scheduled"
    delivered = "delivered"
    exhausted = "exhausted"
    retry_requested = "retry_requested"


def build_event_payload(event: QueueEvent | str, submission_id: str, data: dict) -> str:
    payload = {
        "event_type": QueueEvent(event).value,
        "submission_id": submission_id,
        "timestamp": int(time.time() * 1000),
        **data,
    }
    return json.dumps(payload)


class MQTTBroadcaster:
    """Publishes queue events to an MQTT broker with QoS 1.

    Publishing is best effort: when the broker is unreachable events are
    dropped and publish_event() returns False. Queue operations never fail
    because of the broadcaster.
    """

    def __init__(self, broker: str, port: int, topic: str):
        self.broker = broker
        self.port = port
        self.topic = topic.rstrip("/")
        self.client: Optional[mqtt.Client] = None
        self.connected = False

    def event_topic(self, event: QueueEvent | str) -> str:
        return f"{self.topic}/{QueueEvent(event).value}"

    def connect(self) -> bool:
        try:
            self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
            self.client.on_connect = self._on_connect
            self.client.on_disconnect = self._on_disconnect
            self.client.connect(self.broker, self.port, keepalive=60)
            self.client.loop_start()
            self.connected = True
            logger.info(f"Publishing queue events to {self.broker}:{self.port} under {self.topic}")
            return True
        except Exception as e:
            logger.warning(f"Failed to connect to MQTT broker {self.broker}:{self.port}: {e}")
            return False

    def disconnect(self):
        if self.client:
            self.client.loop_stop()
            self.client.disconnect()
            self.connected = False

    def publish_event(self, event: QueueEvent | str, submission_id: str, data: dict) -> bool:
        if not self.connected or not self.client:
            return False
        try:
            result = self.client.publish(
                self.event_topic(event), build_event_payload(event, submission_id, data), qos=1
            )
            return result.rc == mqtt.MQTT_ERR_SUCCESS
        except Exception as e:
            logger.error(f"Error publishing {event} event for submission {submission_id}: {e}")
            return False

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        self.connected = not reason_code.is_failure
        if reason_code.is_failure:
            logger.warning(f"MQTT broker refused connection: {reason_code}")

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        self.connected = False


class NoOpBroadcaster:
    """Broadcaster used when BROADCAST_TYPE is not "mqtt" (and in tests)."""

    def connect(self) -> bool:
        return True

    def disconnect(self):
        pass

    def publish_event(self, event: QueueEvent | str, submission_id: str, data: dict) -> bool:
        return True


Broadcaster = Union[MQTTBroadcaster, NoOpBroadcaster]

_broadcaster: Optional[Broadcaster] = None


def get_broadcaster(broadcast_type: str, broker: str, port: int, topic: str) -> Broadcaster:
    """Get or create the process-wide broadcaster."""
    global _broadcaster
    if _broadcaster is None:
        if broadcast_type == "mqtt":
            _broadcaster = MQTTBroadcaster(broker, port, topic)
        else:
            _broadcaster = NoOpBroadcaster()
        _ = _broadcaster.connect()
    return _broadcaster


def get_default_broadcaster() -> Broadcaster:
    return get_broadcaster(
        broadcast_type=Config.BROADCAST_TYPE,
        broker=Config.MQTT_BROKER,
        port=Config.MQTT_PORT,
        topic=Config.MQTT_TOPIC,
    )


def shutdown_broadcaster():
    global _broadcaster
    if _broadcaster:
        _broadcaster.disconnect()
        _broadcaster = None
