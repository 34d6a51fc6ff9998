"""Shared test fixtures for bambulink tests."""

import asyncio
import json
import logging
import os

import pytest

# Set environment variables BEFORE any app imports so settings pick them up
os.environ["BAMBULINK_LOG_TO_FILE"] = "false"
os.environ["BAMBULINK_DEBUG"] = "false"

from bambulink.app.core.config import ConnectionOptions  # noqa: E402
from bambulink.app.core.errors import TransportError  # noqa: E402
from bambulink.app.services.transport import RawMessage  # noqa: E402


class FakeSession:
    """Stands in for MQTTSession: messages are pushed by the test."""

    def __init__(self, options: ConnectionOptions | None = None):
        self.options = options
        self._messages: asyncio.Queue = asyncio.Queue()
        self.subscriptions: list[tuple[str, int]] = []
        self.published: list[tuple[str, str | bytes, int]] = []
        self.close_calls = 0
        self.subscribe_error: TransportError | None = None
        self.publish_error: TransportError | None = None

    def push(self, topic: str, payload: str | bytes) -> None:
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        self._messages.put_nowait(RawMessage(topic=topic, payload=payload))

    def end(self) -> None:
        self._messages.put_nowait(None)

    async def subscribe(self, topic: str = "#", qos: int = 2) -> None:
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.subscriptions.append((topic, qos))

    def publish(self, topic: str, payload: str | bytes, qos: int = 1) -> None:
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append((topic, payload, qos))

    async def next_message(self) -> RawMessage | None:
        return await self._messages.get()

    async def close(self) -> None:
        self.close_calls += 1


async def settle(rounds: int = 20) -> None:
    """Give other tasks a few turns of the event loop."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Yield to the event loop until predicate() is true."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0)


@pytest.fixture
def options():
    return ConnectionOptions(host="192.168.1.100", port=8883, access_code="12345678", tls_insecure=True)


@pytest.fixture
def fake_session(options):
    return FakeSession(options)


@pytest.fixture
def push_status_payload():
    return json.dumps(
        {
            "print": {
                "sequence_id": "2021",
                "command": "push_status",
                "gcode_state": "RUNNING",
                "mc_percent": 42,
                "bed_temper": 55.0,
                "nozzle_temper": 219.5,
                "wifi_signal": "-44dBm",
                "lights_report": [{"node": "chamber_light", "mode": "on"}],
                "upgrade_state": {"status": "IDLE"},
            }
        }
    )


@pytest.fixture
def bmc_payload():
    def _make(x: float, y: float, c: float, d: float, sequence_id: str = "1") -> str:
        return json.dumps(
            {
                "mc_print": {
                    "command": "push_info",
                    "sequence_id": sequence_id,
                    "param": f"[BMC] X{x:.1f} Y{y:.1f},z_c=      {c:.3f}      ,z_d={d:.3f}",
                }
            }
        )

    return _make


# ============================================================================
# Log Capture Fixtures for Error Detection
# ============================================================================


class LogCapture(logging.Handler):
    """Handler that captures log records for testing."""

    def __init__(self):
        super().__init__()
        self.records: list[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord):
        self.records.append(record)

    def get_errors(self) -> list[logging.LogRecord]:
        """Get all ERROR and CRITICAL level records."""
        return [r for r in self.records if r.levelno >= logging.ERROR]

    def has_errors(self) -> bool:
        return len(self.get_errors()) > 0

    def format_errors(self) -> str:
        errors = self.get_errors()
        if not errors:
            return "No errors"
        formatter = logging.Formatter("%(name)s - %(levelname)s - %(message)s")
        return "\n".join(formatter.format(r) for r in errors)


@pytest.fixture
def capture_logs():
    """Capture log records emitted during a test.

    Usage:
        def test_something(capture_logs):
            some_function()
            assert not capture_logs.has_errors(), capture_logs.format_errors()
    """
    handler = LogCapture()
    handler.setLevel(logging.DEBUG)

    root_logger = logging.getLogger()
    old_level = root_logger.level
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    yield handler

    root_logger.removeHandler(handler)
    root_logger.setLevel(old_level)
