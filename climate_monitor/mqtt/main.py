"""
Climate Monitor - MQTT Subscriber
Receives telemetry from the device and feeds the history store
"""

import json
import logging
import queue
import threading
from enum import Enum
from typing import Any, Callable

import paho.mqtt.client as mqtt

from climate_monitor.core.config import Settings
from climate_monitor.models.reading import Reading
from climate_monitor.services.history import HistoryStore
from climate_monitor.services.normalizer import DeviceDefaults, normalize_payload

logger = logging.getLogger(__name__)

_STOP = object()


class SubscriberState(str, Enum):
    """Connection lifecycle of the subscriber."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    RECONNECTING = "reconnecting"


class MessageError(ValueError):
    """Inbound message that cannot be turned into a payload dict."""


def decode_payload(raw: bytes) -> dict:
    """
    Decode an MQTT payload into a JSON object.

    Raises:
        MessageError: bytes are not UTF-8 JSON or not a JSON object
    """
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MessageError(f"Invalid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise MessageError(f"Expected a JSON object, got {type(payload).__name__}")
    return payload


class TelemetrySubscriber:
    """
    Keeps one subscription to the telemetry topic alive and drives ingestion.

    paho runs the network loop in its own thread and reconnects on a fixed
    delay forever. Decoded payloads are handed over through a queue to a
    single ingestion thread, which is the only writer of the history store.
    """

    def __init__(
        self,
        settings: Settings,
        store: HistoryStore,
        on_ota_status: Callable[[dict], Any] | None = None,
        client: mqtt.Client | None = None,
    ):
        self.settings = settings
        self.store = store
        self.defaults = DeviceDefaults.from_settings(settings)
        self.on_ota_status = on_ota_status
        self.client = client or self._build_client()
        self.state = SubscriberState.DISCONNECTED

        self._queue: queue.Queue = queue.Queue()
        self._worker: threading.Thread | None = None
        self._stopping = False
        self._resubscribe_timer: threading.Timer | None = None

        self.client.on_connect = self._on_connect
        self.client.on_connect_fail = self._on_connect_fail
        self.client.on_subscribe = self._on_subscribe
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect

    def _build_client(self) -> mqtt.Client:
        """Create the paho client: TLS, credentials, fixed reconnect delay."""
        settings = self.settings
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=settings.mqtt_client_id)

        if settings.mqtt_auth_enabled:
            client.username_pw_set(settings.mqtt_username, settings.mqtt_password)
        if settings.mqtt_tls:
            client.tls_set(ca_certs=settings.mqtt_ca_certs or None)

        delay = settings.mqtt_reconnect_delay
        client.reconnect_delay_set(min_delay=delay, max_delay=delay)
        client.connect_timeout = settings.mqtt_connect_timeout
        return client

    @property
    def topics(self) -> list[tuple[str, int]]:
        topics = [(self.settings.mqtt_topic, 1)]
        if self.settings.mqtt_ota_status_topic:
            topics.append((self.settings.mqtt_ota_status_topic, 1))
        return topics

    # ==================== CALLBACKS (paho network thread) ====================

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        """Called when the broker answers our CONNECT."""
        if reason_code.is_failure:
            self.state = SubscriberState.RECONNECTING
            logger.error(
                "❌ MQTT connect refused by %s:%s: %s (retrying in %ss)",
                self.settings.mqtt_broker,
                self.settings.mqtt_port,
                reason_code,
                self.settings.mqtt_reconnect_delay,
            )
            return

        logger.info("✅ Connected to MQTT broker: %s:%s", self.settings.mqtt_broker, self.settings.mqtt_port)
        # Not receiving until the broker acknowledges the SUBSCRIBE
        self.state = SubscriberState.CONNECTING
        client.subscribe(self.topics)

    def _on_connect_fail(self, client, userdata):
        """Called when the TCP/TLS connection could not be opened."""
        self.state = SubscriberState.RECONNECTING
        logger.warning(
            "⚠️ Could not reach MQTT broker %s:%s, retrying in %ss",
            self.settings.mqtt_broker,
            self.settings.mqtt_port,
            self.settings.mqtt_reconnect_delay,
        )

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties):
        failed = [rc for rc in reason_code_list if rc.is_failure]
        if failed:
            self.state = SubscriberState.RECONNECTING
            logger.error(
                "❌ Subscription refused: %s (retrying in %ss)",
                ", ".join(str(rc) for rc in failed),
                self.settings.mqtt_reconnect_delay,
            )
            self._schedule_resubscribe()
            return
        self.state = SubscriberState.SUBSCRIBED
        logger.info("📡 Subscribed to: %s", ", ".join(topic for topic, _ in self.topics))

    def _schedule_resubscribe(self):
        self._cancel_resubscribe()
        timer = threading.Timer(self.settings.mqtt_reconnect_delay, self._resubscribe)
        timer.daemon = True
        self._resubscribe_timer = timer
        timer.start()

    def _cancel_resubscribe(self):
        if self._resubscribe_timer is not None:
            self._resubscribe_timer.cancel()
            self._resubscribe_timer = None

    def _resubscribe(self):
        """Retry a refused SUBSCRIBE on the live connection."""
        self._resubscribe_timer = None
        # After a reconnect, on_connect subscribes again by itself
        if self._stopping or not self.client.is_connected():
            return
        logger.info("🔄 Retrying subscription to: %s", ", ".join(topic for topic, _ in self.topics))
        self.state = SubscriberState.CONNECTING
        self.client.subscribe(self.topics)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties):
        if self._stopping:
            self.state = SubscriberState.DISCONNECTED
            logger.info("⏹️ Disconnected from MQTT broker")
            return
        self.state = SubscriberState.RECONNECTING
        logger.warning(
            "⚠️ Disconnected from MQTT broker: %s (reconnecting in %ss)",
            reason_code,
            self.settings.mqtt_reconnect_delay,
        )

    def _on_message(self, client, userdata, msg):
        """Called when a message is received."""
        ota_topic = self.settings.mqtt_ota_status_topic
        if ota_topic and mqtt.topic_matches_sub(ota_topic, msg.topic):
            self.handle_ota_status(msg.payload)
        else:
            self.handle_payload(msg.payload)

    # ==================== MESSAGE HANDLING ====================

    def handle_payload(self, raw: bytes) -> bool:
        """
        Decode one telemetry message and queue it for ingestion.

        Returns:
            True if the message was queued, False if it was dropped
        """
        try:
            payload = decode_payload(raw)
        except MessageError as e:
            logger.warning("⚠️ Dropping malformed telemetry message: %s", e)
            return False

        self._queue.put(payload)
        return True

    def handle_ota_status(self, raw: bytes) -> bool:
        if self.on_ota_status is None:
            return False
        try:
            payload = decode_payload(raw)
        except MessageError as e:
            logger.warning("⚠️ Dropping malformed OTA status message: %s", e)
            return False

        try:
            self.on_ota_status(payload)
        except Exception:
            logger.exception("❌ Error applying OTA status %r", payload)
            return False
        return True

    def ingest(self, payload: dict) -> Reading:
        """Normalize a payload and record it. Runs on the ingestion thread."""
        reading = normalize_payload(payload, self.defaults)
        self.store.record(reading)
        logger.debug("📩 Ingested %r", reading)
        return reading

    def _ingest_loop(self):
        while True:
            payload = self._queue.get()
            if payload is _STOP:
                break
            try:
                self.ingest(payload)
            except Exception:
                logger.exception("❌ Error ingesting payload %r", payload)

    # ==================== COMMANDS ====================

    def publish_command(self, command: dict) -> bool:
        """
        Publish a command (e.g. {"command": "force_update"}) to the device.

        Returns:
            True if handed to the broker connection
        """
        topic = self.settings.mqtt_command_topic
        if not self.client.is_connected():
            logger.warning("⚠️ Cannot send %s: not connected to MQTT broker", command.get("command"))
            return False

        result = self.client.publish(topic, json.dumps(command), qos=1)
        if result.rc == mqtt.MQTT_ERR_SUCCESS:
            logger.info("📤 Command sent on %s: %s", topic, command)
            return True
        logger.error("❌ Failed to send command on %s: rc=%s", topic, result.rc)
        return False

    # ==================== LIFECYCLE ====================

    def start_ingestion(self):
        """Start the ingestion thread (idempotent)."""
        if self._worker is not None and self._worker.is_alive():
            return
        self._worker = threading.Thread(target=self._ingest_loop, name="telemetry-ingest", daemon=True)
        self._worker.start()

    def start(self):
        """Start ingestion and the MQTT network loop. Does not block."""
        self._stopping = False
        self.start_ingestion()

        logger.info(
            "🚀 Connecting to %s:%s (tls=%s, topic=%s)",
            self.settings.mqtt_broker,
            self.settings.mqtt_port,
            self.settings.mqtt_tls,
            self.settings.mqtt_topic,
        )
        self.state = SubscriberState.CONNECTING
        self.client.connect_async(self.settings.mqtt_broker, self.settings.mqtt_port, self.settings.mqtt_keepalive)
        # loop_start retries the first connection too, so a broker that is
        # down at boot is not fatal
        self.client.loop_start()

    def stop(self, timeout: float = 5.0):
        """Disconnect, then drain queued payloads and stop the ingestion thread."""
        self._stopping = True
        self._cancel_resubscribe()
        self.client.disconnect()
        self.client.loop_stop()
        self.state = SubscriberState.DISCONNECTED

        if self._worker is not None:
            self._queue.put(_STOP)
            self._worker.join(timeout)
            self._worker = None
        logger.info("⏹️ MQTT subscriber stopped")
