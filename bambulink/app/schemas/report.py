"""Printer report payloads.

Every message the printer publishes on ``device/<serial>/report`` is a JSON
object keyed by one section name::

    {"print": {"command": "push_status", "sequence_id": "2021", "bed_temper": 24.0, ...}}
    {"info": {"command": "get_version", "sequence_id": "0", "module": [...]}}
    {"mc_print": {"command": "push_info", "sequence_id": "1", "param": "[BMC] ..."}}

The firmware keeps adding fields, so every model ignores what it does not know.
"""

import json
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Tag, ValidationError

from bambulink.app.core.errors import DecodeError


class ReportModel(BaseModel):
    # sequence_id arrives as a string from most firmware, as an int from some
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


# ---------------------------------------------------------------------------
# print.* commands
# ---------------------------------------------------------------------------


class PushStatus(ReportModel):
    """Periodic status push. Firmware sends partial updates, so every field is optional."""

    command: Literal["push_status"] = "push_status"
    gcode_state: str | None = None  # IDLE, PREPARE, RUNNING, PAUSE, FINISH, FAILED
    gcode_file: str | None = None
    subtask_name: str | None = None
    mc_print_stage: str | None = None
    mc_percent: int | None = None
    mc_remaining_time: int | None = None  # minutes
    layer_num: int | None = None
    total_layer_num: int | None = None
    bed_temper: float | None = None
    bed_target_temper: float | None = None
    nozzle_temper: float | None = None
    nozzle_target_temper: float | None = None
    chamber_temper: float | None = None
    nozzle_diameter: str | None = None
    nozzle_type: str | None = None
    wifi_signal: str | None = None  # e.g. "-44dBm"
    print_error: int | None = None
    spd_lvl: int | None = None  # 1=silent, 2=standard, 3=sport, 4=ludicrous
    home_flag: int | None = None
    ams: dict[str, Any] | None = None
    hms: list[dict[str, Any]] | None = None


class GcodeLine(ReportModel):
    command: Literal["gcode_line"] = "gcode_line"
    param: str | None = None
    result: str | None = None
    reason: str | None = None


class ProjectFile(ReportModel):
    command: Literal["project_file"] = "project_file"
    param: str | None = None
    subtask_name: str | None = None
    url: str | None = None
    result: str | None = None
    reason: str | None = None


class PrintControl(ReportModel):
    """Acknowledgement of a pause/resume/stop request."""

    command: Literal["pause", "resume", "stop"]
    param: str | None = None
    result: str | None = None
    reason: str | None = None


class OtherPrintCommand(ReportModel):
    """Any print command without a dedicated model. Keeps every field it was given."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    command: str


_PRINT_COMMAND_TAGS = {
    "push_status": "push_status",
    "gcode_line": "gcode_line",
    "project_file": "project_file",
    "pause": "control",
    "resume": "control",
    "stop": "control",
}


def _print_command_tag(value: Any) -> str | None:
    if isinstance(value, dict):
        command = value.get("command")
    else:
        command = getattr(value, "command", None)
    if not isinstance(command, str):
        return None
    return _PRINT_COMMAND_TAGS.get(command, "other")


PrintCommand = Annotated[
    Union[
        Annotated[PushStatus, Tag("push_status")],
        Annotated[GcodeLine, Tag("gcode_line")],
        Annotated[ProjectFile, Tag("project_file")],
        Annotated[PrintControl, Tag("control")],
        Annotated[OtherPrintCommand, Tag("other")],
    ],
    Discriminator(_print_command_tag),
]


# ---------------------------------------------------------------------------
# Top-level sections
# ---------------------------------------------------------------------------


class Print(ReportModel):
    """``print`` section. The command fields sit next to ``sequence_id`` on the wire."""

    TAG: ClassVar[str] = "print"

    sequence_id: str | None = None
    command: PrintCommand

    @classmethod
    def from_body(cls, body: dict) -> "Print":
        fields = {k: v for k, v in body.items() if k != "sequence_id"}
        return cls.model_validate({"sequence_id": body.get("sequence_id"), "command": fields})

    def to_body(self) -> dict:
        body = self.command.model_dump(exclude_none=True)
        # Undeclared fields go back as received, nulls included
        body.update(self.command.model_extra or {})
        if self.sequence_id is not None:
            body["sequence_id"] = self.sequence_id
        return body


class ModuleVersion(ReportModel):
    """One firmware module from a ``get_version`` answer."""

    name: str
    product_name: str | None = None
    sw_ver: str | None = None
    sw_new_ver: str | None = None
    hw_ver: str | None = None
    sn: str | None = None
    flag: int | None = None


class Info(ReportModel):
    """``info`` section. ``value`` carries the rest of the body untouched."""

    TAG: ClassVar[str] = "info"

    command: str
    sequence_id: str | None = None
    value: dict[str, Any] = {}

    @classmethod
    def from_body(cls, body: dict) -> "Info":
        value = {k: v for k, v in body.items() if k not in ("command", "sequence_id")}
        return cls.model_validate(
            {"command": body.get("command"), "sequence_id": body.get("sequence_id"), "value": value}
        )

    def to_body(self) -> dict:
        body = {"command": self.command, **self.value}
        if self.sequence_id is not None:
            body["sequence_id"] = self.sequence_id
        return body

    def modules(self) -> list[ModuleVersion]:
        """Firmware modules listed in a ``get_version`` answer."""
        return [ModuleVersion.model_validate(m) for m in self.value.get("module") or []]


class McPrint(ReportModel):
    """``mc_print`` section: motion-controller diagnostics in ``param``.

    ``param`` is free text on every firmware seen so far, but is kept as any
    JSON value so a structured param does not fail the whole report.
    """

    TAG: ClassVar[str] = "mc_print"

    command: str
    sequence_id: str | None = None
    param: Any

    @classmethod
    def from_body(cls, body: dict) -> "McPrint":
        return cls.model_validate(body)

    def to_body(self) -> dict:
        body = {"command": self.command, "param": self.param}
        if self.sequence_id is not None:
            body["sequence_id"] = self.sequence_id
        return body


Report = Print | Info | McPrint

REPORT_SECTIONS: dict[str, type[Print] | type[Info] | type[McPrint]] = {
    Print.TAG: Print,
    Info.TAG: Info,
    McPrint.TAG: McPrint,
}


def decode_report(data: str | bytes) -> Report:
    """Decode one report payload.

    Raises:
        DecodeError: payload is not UTF-8 JSON, is not an object, has no known
            section, or the section body does not validate.
    """
    if isinstance(data, (bytes, bytearray)):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Payload is not UTF-8: {e}") from e

    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Payload is not JSON: {e}") from e

    if not isinstance(payload, dict):
        raise DecodeError(f"Expected a JSON object, got {type(payload).__name__}")

    for key, body in payload.items():
        model = REPORT_SECTIONS.get(key)
        if model is None:
            continue
        if not isinstance(body, dict):
            raise DecodeError(f"Section '{key}' is not an object")
        try:
            return model.from_body(body)
        except ValidationError as e:
            raise DecodeError(f"Invalid '{key}' section: {e}") from e

    raise DecodeError(f"No known report section in keys {sorted(payload)}")


def encode_report(report: Report) -> str:
    """Encode a report back into its wire form."""
    return json.dumps({report.TAG: report.to_body()})
