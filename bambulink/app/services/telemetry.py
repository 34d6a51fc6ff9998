"""Free-text diagnostics carried in ``mc_print`` reports.

The motion controller pushes log lines such as::

    [AMS][Period]:(AMS0-S255)cmd_en=1;act_en=1;sta=0;sw=1-1-1-0;c_len=0.000m,cnt=0
    [AMS][TASK]ams num:1,ams_exist:0x1,tray_now: 255
    [BMC] X231.0 Y236.0,z_c=      0.507      ,z_d=0.094
    [BMC] avr_rr=7.688645,avr_d_rr=0.501

The format is reverse engineered, so only a few prefixes are classified and
only the bed mesh samples are parsed. Everything else is ``Unknown``.
"""

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from bambulink.app.core.errors import DecodeError
from bambulink.app.schemas.report import McPrint, Report, decode_report
from bambulink.app.services.level_map import Point

logger = logging.getLogger(__name__)

AMS_PERIOD_PREFIX = "[AMS][Period]"
AMS_TASK_PREFIX = "[AMS][TASK]"
BMC_PREFIX = "[BMC]"

_BMC_MEASUREMENT = re.compile(
    r"X(-?[\d.]+) Y(-?[\d.]+),z_c=\s*(-?[\d.]+)\s*,z_d=(-?[\d.]+)"
)


@dataclass(frozen=True)
class AmsPeriod:
    """Periodic AMS state line."""


@dataclass(frozen=True)
class AmsTask:
    """AMS task/tray line."""


@dataclass(frozen=True)
class Bmc:
    """Bed mesh calibration line that is not a grid sample."""


@dataclass(frozen=True)
class BmcMeasurement:
    """One bed mesh sample: height offset and variance at (x, y)."""

    x: float
    y: float
    z_offset: float
    z_variance: float

    def to_point(self) -> Point:
        return Point(self.x, self.y, self.z_offset, self.z_variance)


@dataclass(frozen=True)
class Unknown:
    text: str


McPrintValue = AmsPeriod | AmsTask | Bmc | BmcMeasurement | Unknown


def _trim_quotes(text: str) -> str:
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        return text[1:-1]
    return text


def _parse_float(value: str) -> float:
    try:
        return float(value)
    except ValueError as e:
        raise DecodeError(f"Invalid number in BMC measurement: {value!r}") from e


def parse_mc_print_value(text: str) -> McPrintValue:
    """Classify one ``mc_print`` param string.

    Prefixes are checked in a fixed order: AMS before BMC, and the grid sample
    pattern is only tried once the ``[BMC]`` branch is taken.

    Raises:
        DecodeError: a BMC grid sample matched but one of its numbers does not
            parse (e.g. ``X1.2.3``).
    """
    text = _trim_quotes(text)

    if text.startswith(AMS_PERIOD_PREFIX):
        return AmsPeriod()
    if text.startswith(AMS_TASK_PREFIX):
        return AmsTask()
    if text.startswith(BMC_PREFIX):
        body = text.removeprefix(BMC_PREFIX + " ")
        match = _BMC_MEASUREMENT.match(body)
        if match is None:
            return Bmc()
        x, y, z_offset, z_variance = (_parse_float(g) for g in match.groups())
        return BmcMeasurement(x=x, y=y, z_offset=z_offset, z_variance=z_variance)

    return Unknown(text)


def mc_print_value(report: Report) -> McPrintValue | None:
    """Parsed diagnostic of an ``mc_print`` report, None for other sections.

    A param that is not a string is classified as ``Unknown`` holding its JSON text.
    """
    if not isinstance(report, McPrint):
        return None
    if isinstance(report.param, str):
        return parse_mc_print_value(report.param)
    return Unknown(json.dumps(report.param))


def level_points(texts: Iterable[str]) -> list[Point]:
    """Collect bed mesh samples from raw report texts, in arrival order.

    Texts that are not reports, or carry malformed samples, are skipped.
    """
    points = []
    for text in texts:
        try:
            value = mc_print_value(decode_report(text))
        except DecodeError as e:
            logger.debug(f"Skipping undecodable report: {e}")
            continue
        if isinstance(value, BmcMeasurement):
            points.append(value.to_point())
    return points
