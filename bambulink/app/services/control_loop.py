"""Control loop owning one printer session.

The loop is the only code that touches the session and the listener
registry. Everything else talks to it through a :class:`CommandChannel`.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass
from enum import StrEnum

from bambulink.app.core.errors import ChannelClosedError, TransportError
from bambulink.app.services.transport import MQTTSession, RawMessage

logger = logging.getLogger(__name__)

_END = object()


class Listener:
    """Receiving end of one fanout channel.

    Yields ``(topic, text)`` tuples in transport order. Unbounded: a slow
    consumer never blocks ingestion or other listeners. Iteration stops when
    the control loop stops or after :meth:`close`.
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop receiving. The control loop drops this listener on its next delivery.

        Must be called on the event loop the listener is consumed from. A
        ``recv()`` already waiting returns None.
        """
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_END)

    async def recv(self) -> tuple[str, str] | None:
        """Next message, or None once the channel has ended."""
        if self._closed:
            return None
        item = await self._queue.get()
        if item is _END:
            self._closed = True
            return None
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> tuple[str, str]:
        item = await self.recv()
        if item is None:
            raise StopAsyncIteration
        return item


class ListenerSender:
    """Control loop side of a listener. Holds the listener weakly."""

    def __init__(self, listener: Listener):
        self._listener = weakref.ref(listener)

    def send(self, topic: str, text: str) -> bool:
        """Deliver one message. False if the listener was closed or garbage collected."""
        listener = self._listener()
        if listener is None or listener.closed:
            return False
        listener._queue.put_nowait((topic, text))
        return True

    def close(self) -> None:
        listener = self._listener()
        if listener is not None:
            listener._queue.put_nowait(_END)


@dataclass(frozen=True)
class Subscribe:
    sender: ListenerSender


@dataclass(frozen=True)
class Disconnect:
    pass


@dataclass(frozen=True)
class Publish:
    topic: str
    payload: str | bytes
    qos: int = 1


Command = Subscribe | Disconnect | Publish


class CommandChannel:
    """Many senders (any thread), one receiver (the control loop)."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop
        self._queue: asyncio.Queue[Command] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, command: Command) -> None:
        """Queue a command for the control loop.

        Raises:
            ChannelClosedError: the control loop has stopped.
        """
        if self._closed:
            raise ChannelClosedError("Control loop has stopped")
        try:
            self._loop.call_soon_threadsafe(self._put, command)
        except RuntimeError as e:
            # Event loop already closed
            raise ChannelClosedError("Control loop has stopped") from e

    async def recv(self) -> Command:
        return await self._queue.get()

    def close(self) -> None:
        """Refuse further commands and end the listeners of any unread Subscribe."""
        self._closed = True
        while not self._queue.empty():
            self._discard(self._queue.get_nowait())

    def _put(self, command: Command) -> None:
        if self._closed:
            # Raced with close(): sent before it, scheduled after it
            self._discard(command)
            return
        self._queue.put_nowait(command)

    @staticmethod
    def _discard(command: Command) -> None:
        if isinstance(command, Subscribe):
            command.sender.close()


class LoopState(StrEnum):
    RUNNING = "running"
    TERMINATING = "terminating"
    STOPPED = "stopped"


class ControlLoop:
    """Multiplexes transport messages and commands for one session."""

    def __init__(self, session: MQTTSession, commands: CommandChannel, name: str = ""):
        self._session = session
        self._commands = commands
        self._listeners: list[ListenerSender] = []
        self.name = name
        self.state = LoopState.RUNNING

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def run(self) -> None:
        logger.debug(f"[{self.name}] Control loop started")

        next_message = asyncio.ensure_future(self._session.next_message())
        next_command = asyncio.ensure_future(self._commands.recv())
        try:
            running = True
            while running:
                done, _ = await asyncio.wait(
                    {next_message, next_command}, return_when=asyncio.FIRST_COMPLETED
                )

                if next_message in done:
                    message = next_message.result()
                    if message is None:
                        logger.info(f"[{self.name}] Transport stream ended")
                        running = False
                    else:
                        self._dispatch(message)
                        next_message = asyncio.ensure_future(self._session.next_message())

                if next_command in done:
                    command = next_command.result()
                    next_command = asyncio.ensure_future(self._commands.recv())
                    if not self._handle_command(command):
                        running = False
        finally:
            self.state = LoopState.TERMINATING
            next_message.cancel()
            next_command.cancel()
            await self._shutdown()

    def _dispatch(self, message: RawMessage) -> None:
        try:
            text = message.payload.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug(f"[{self.name}] Dropping non-UTF-8 payload on {message.topic}: {message.payload[:64]!r}")
            return

        self._listeners = [
            sender for sender in self._listeners if sender.send(message.topic, text)
        ]

    def _handle_command(self, command: Command) -> bool:
        """Apply one command. False means stop the loop."""
        if isinstance(command, Subscribe):
            self._listeners.append(command.sender)
            logger.debug(f"[{self.name}] Listener added ({len(self._listeners)} total)")
        elif isinstance(command, Publish):
            try:
                self._session.publish(command.topic, command.payload, command.qos)
            except TransportError as e:
                logger.error(f"[{self.name}] {e}")
        elif isinstance(command, Disconnect):
            logger.debug(f"[{self.name}] Disconnect requested")
            return False
        return True

    async def _shutdown(self) -> None:
        self._commands.close()
        for sender in self._listeners:
            sender.close()
        self._listeners = []

        try:
            # close() logs its own failures
            await self._session.close()
        finally:
            self.state = LoopState.STOPPED
            logger.debug(f"[{self.name}] Control loop stopped")
