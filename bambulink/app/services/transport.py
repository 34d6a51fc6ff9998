"""MQTT transport to a Bambu Lab printer in LAN mode.

paho-mqtt runs its network loop in its own thread. Callbacks never touch
session state from that thread; they hand results to the asyncio event loop
with ``call_soon_threadsafe``.
"""

import asyncio
import logging
import ssl
import uuid
from dataclasses import dataclass
from typing import Any

import paho.mqtt.client as mqtt

from bambulink.app.core.config import ConnectionOptions, settings
from bambulink.app.core.errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawMessage:
    topic: str
    payload: bytes


def _ssl_context(options: ConnectionOptions) -> ssl.SSLContext:
    ssl_context = ssl.create_default_context()
    if options.tls_insecure:
        # LAN-mode printers present a self-signed certificate
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
    return ssl_context


class MQTTSession:
    """One connected MQTT session.

    Create with :meth:`open`. Inbound messages are read with
    :meth:`next_message`, which returns None once the session has ended.
    """

    def __init__(self, options: ConnectionOptions, client: mqtt.Client, loop: asyncio.AbstractEventLoop):
        self.options = options
        self._client = client
        self._loop = loop
        self._messages: asyncio.Queue[RawMessage | None] = asyncio.Queue()
        self._connected: asyncio.Future = loop.create_future()
        self._pending_acks: dict[int, asyncio.Future] = {}
        self._stream_closed = False
        self._ended = False

        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_message = self._on_message
        client.on_subscribe = self._on_subscribe

    @property
    def name(self) -> str:
        return f"{self.options.host}:{self.options.port}"

    @classmethod
    async def open(cls, options: ConnectionOptions) -> "MQTTSession":
        """Connect and wait for the broker to accept the session.

        Raises:
            TransportError: socket/TLS failure, refused CONNACK or timeout.
        """
        loop = asyncio.get_running_loop()
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"{settings.mqtt_client_id_prefix}{uuid.uuid4().hex[:12]}",
            protocol=mqtt.MQTTv311,
        )
        client.username_pw_set(settings.mqtt_username, options.access_code)
        client.tls_set_context(_ssl_context(options))

        session = cls(options, client, loop)
        logger.debug(f"[{session.name}] Connecting (tls_insecure={options.tls_insecure})")

        try:
            await asyncio.wait_for(
                asyncio.to_thread(client.connect, options.host, options.port, settings.mqtt_keepalive),
                timeout=settings.mqtt_connect_timeout,
            )
        except TimeoutError as e:
            # The connect thread may still finish and leave a socket open
            client.disconnect()
            raise TransportError(f"Connection to {session.name} timed out") from e
        except (OSError, ValueError) as e:
            raise TransportError(f"Connection to {session.name} failed: {e}") from e

        client.loop_start()

        try:
            await asyncio.wait_for(asyncio.shield(session._connected), timeout=settings.mqtt_connect_timeout)
        except TimeoutError as e:
            await session.close()
            raise TransportError(f"No CONNACK from {session.name}") from e
        except TransportError:
            await session.close()
            raise

        logger.info(f"[{session.name}] MQTT connected")
        return session

    async def subscribe(self, topic: str = "#", qos: int = 2) -> None:
        """Subscribe and wait for the SUBACK.

        Raises:
            TransportError: the request could not be sent or the broker refused it.
        """
        result, mid = self._client.subscribe(topic, qos)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Subscribe to '{topic}' failed: {mqtt.error_string(result)}")

        ack = self._loop.create_future()
        self._pending_acks[mid] = ack
        try:
            await asyncio.wait_for(ack, timeout=settings.mqtt_connect_timeout)
        except TimeoutError as e:
            raise TransportError(f"No SUBACK for '{topic}'") from e
        finally:
            self._pending_acks.pop(mid, None)

        logger.debug(f"[{self.name}] Subscribed to '{topic}' (qos={qos})")

    def publish(self, topic: str, payload: str | bytes, qos: int = 1) -> None:
        """Queue an outbound message.

        Raises:
            TransportError: paho refused the message (e.g. not connected).
        """
        info = self._client.publish(topic, payload, qos=qos)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Publish to '{topic}' failed: {mqtt.error_string(info.rc)}")

    async def next_message(self) -> RawMessage | None:
        """Next inbound message, or None once the session has ended."""
        if self._ended:
            return None
        message = await self._messages.get()
        if message is None:
            self._ended = True
        return message

    async def close(self) -> None:
        """Disconnect and stop the network thread. Failures are only logged."""
        if not self._connected.done():
            self._connected.cancel()

        try:
            rc = self._client.disconnect()
            if rc != mqtt.MQTT_ERR_SUCCESS:
                logger.warning(f"[{self.name}] MQTT disconnect returned: {mqtt.error_string(rc)}")
        except Exception as e:
            logger.error(f"[{self.name}] MQTT disconnect error: {e}")

        try:
            await asyncio.to_thread(self._client.loop_stop)
        except Exception as e:
            logger.error(f"[{self.name}] MQTT loop stop error: {e}")

        self._end_stream()

    # -- paho callbacks (network thread) ------------------------------------

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        self._loop.call_soon_threadsafe(self._resolve_connect, reason_code)

    def _on_disconnect(self, client, userdata, disconnect_flags=None, reason_code=None, properties=None):
        self._loop.call_soon_threadsafe(self._handle_disconnect, reason_code)

    def _on_message(self, client, userdata, msg):
        message = RawMessage(topic=msg.topic, payload=bytes(msg.payload))
        self._loop.call_soon_threadsafe(self._messages.put_nowait, message)

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        self._loop.call_soon_threadsafe(self._resolve_ack, mid, reason_code_list)

    # -- event loop side ----------------------------------------------------

    def _resolve_connect(self, reason_code: Any) -> None:
        if self._connected.done():
            return
        if reason_code.is_failure:
            self._connected.set_exception(TransportError(f"Connection to {self.name} refused: {reason_code}"))
        else:
            self._connected.set_result(None)

    def _handle_disconnect(self, reason_code: Any) -> None:
        if not self._connected.done():
            self._connected.set_exception(TransportError(f"Disconnected from {self.name}: {reason_code}"))
        for ack in self._pending_acks.values():
            if not ack.done():
                ack.set_exception(TransportError(f"Disconnected from {self.name} before SUBACK: {reason_code}"))
        logger.info(f"[{self.name}] MQTT disconnected: rc={reason_code}")
        self._end_stream()

    def _resolve_ack(self, mid: int, reason_codes: list) -> None:
        ack = self._pending_acks.get(mid)
        if ack is None or ack.done():
            return
        failures = [rc for rc in reason_codes if rc.is_failure]
        if failures:
            ack.set_exception(TransportError(f"Subscription refused: {failures[0]}"))
        else:
            ack.set_result(None)

    def _end_stream(self) -> None:
        if not self._stream_closed:
            self._stream_closed = True
            self._messages.put_nowait(None)
