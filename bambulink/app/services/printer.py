"""Printer handle: the public entry point for one printer connection."""

import asyncio
import logging

from bambulink.app.core.config import ConnectionOptions, settings
from bambulink.app.core.errors import TransportError
from bambulink.app.schemas.command import Request
from bambulink.app.services.control_loop import (
    CommandChannel,
    ControlLoop,
    Disconnect,
    Listener,
    ListenerSender,
    Publish,
    Subscribe,
)
from bambulink.app.services.transport import MQTTSession

logger = logging.getLogger(__name__)


class Printer:
    """Handle to a connected printer.

    Created by :meth:`connect`, which also starts the control loop that owns
    the MQTT session. The handle only sends commands to that loop, so
    :meth:`listen` and :meth:`disconnect` are safe to call from any thread.
    Once the loop has stopped they raise ``ChannelClosedError``.

    Two handles are equal when they point at the same host and port.
    """

    def __init__(self, options: ConnectionOptions, commands: CommandChannel, task: asyncio.Task):
        self.options = options
        self._commands = commands
        self._task = task

    @classmethod
    async def connect(cls, options: ConnectionOptions) -> "Printer":
        """Open the MQTT session, subscribe to every topic and start the control loop.

        Raises:
            TransportError: connect or subscribe failed. No control loop is started.
        """
        name = f"{options.host}:{options.port}"
        logger.debug(f"[{name}] Connecting to printer")

        session = await MQTTSession.open(options)
        try:
            await session.subscribe(settings.subscribe_topic, settings.subscribe_qos)
        except TransportError:
            await session.close()
            raise

        loop = asyncio.get_running_loop()
        commands = CommandChannel(loop)
        control = ControlLoop(session, commands, name=name)
        task = loop.create_task(control.run(), name=f"bambulink-{name}")

        logger.info(f"[{name}] Printer connected")
        return cls(options, commands, task)

    @property
    def closed(self) -> bool:
        """True once the control loop no longer accepts commands."""
        return self._commands.closed

    def listen(self) -> Listener:
        """Register a new listener for raw ``(topic, text)`` messages.

        Only messages arriving after the control loop processes the
        registration are delivered.
        """
        listener = Listener()
        self._commands.send(Subscribe(ListenerSender(listener)))
        return listener

    def disconnect(self) -> None:
        """Ask the control loop to close the session and stop."""
        self._commands.send(Disconnect())

    def publish(self, topic: str, payload: str | bytes, qos: int = 1) -> None:
        """Publish through the control loop. Transport failures are logged there."""
        self._commands.send(Publish(topic, payload, qos))

    def request(self, serial: str, request: Request) -> None:
        """Send a request to ``device/<serial>/request``."""
        self.publish(f"device/{serial}/request", request.to_payload(), settings.request_qos)

    async def wait_closed(self) -> None:
        """Wait for the control loop to finish."""
        await asyncio.shield(self._task)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Printer):
            return NotImplemented
        return (self.options.host, self.options.port) == (other.options.host, other.options.port)

    def __hash__(self) -> int:
        return hash((self.options.host, self.options.port))

    def __repr__(self) -> str:
        return f"Printer({self.options.host}:{self.options.port})"
