"""Tests for outbound request payloads."""

import json

import pytest
from pydantic import ValidationError

from bambulink.app.schemas import command


class TestRequestPayloads:
    """Request builders produce the JSON the printer expects."""

    @pytest.mark.parametrize(
        "builder,expected",
        [
            (command.pause, {"print": {"command": "pause", "sequence_id": "0"}}),
            (command.resume, {"print": {"command": "resume", "sequence_id": "0"}}),
            (command.stop, {"print": {"command": "stop", "sequence_id": "0"}}),
            (command.get_version, {"info": {"command": "get_version", "sequence_id": "0"}}),
            (command.push_all, {"pushing": {"command": "pushall", "sequence_id": "0"}}),
        ],
    )
    def test_simple_requests(self, builder, expected):
        assert json.loads(builder().to_payload()) == expected

    def test_gcode_line_carries_param(self):
        request = command.gcode_line("G28\nM104 S200", sequence_id="17")

        assert json.loads(request.to_payload()) == {
            "print": {"command": "gcode_line", "sequence_id": "17", "param": "G28\nM104 S200"}
        }

    def test_unknown_section_rejected(self):
        with pytest.raises(ValidationError):
            command.Request(section="camera", command="ipcam_record_set")
