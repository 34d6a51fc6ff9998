"""Requests published to ``device/<serial>/request``."""

import json
from typing import Literal

from pydantic import BaseModel


class Request(BaseModel):
    section: Literal["print", "info", "pushing", "system"]
    command: str
    sequence_id: str = "0"
    param: str | None = None

    def to_payload(self) -> str:
        body = {"command": self.command, "sequence_id": self.sequence_id}
        if self.param is not None:
            body["param"] = self.param
        return json.dumps({self.section: body})


def pause(sequence_id: str = "0") -> Request:
    return Request(section="print", command="pause", sequence_id=sequence_id)


def resume(sequence_id: str = "0") -> Request:
    return Request(section="print", command="resume", sequence_id=sequence_id)


def stop(sequence_id: str = "0") -> Request:
    return Request(section="print", command="stop", sequence_id=sequence_id)


def gcode_line(gcode: str, sequence_id: str = "0") -> Request:
    """G-code request. Multiple commands can be separated by newlines."""
    return Request(section="print", command="gcode_line", sequence_id=sequence_id, param=gcode)


def get_version(sequence_id: str = "0") -> Request:
    return Request(section="info", command="get_version", sequence_id=sequence_id)


def push_all(sequence_id: str = "0") -> Request:
    """Ask for a full status push instead of the usual partial updates."""
    return Request(section="pushing", command="pushall", sequence_id=sequence_id)
