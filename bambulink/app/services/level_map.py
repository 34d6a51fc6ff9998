"""Bed leveling grid built from bed mesh calibration samples."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Point:
    """Bed leveling sample."""

    x: float
    y: float
    c: float  # z offset
    d: float  # z variance


class LevelMap:
    """Grid view over a batch of leveling samples.

    ``xs`` and ``ys`` list each coordinate once, in the order first seen in
    the samples (not sorted). ``points`` keeps every sample as given, so two
    samples at the same (x, y) are both retained and ``value`` returns the
    first one.
    """

    def __init__(self, points: list[Point]):
        xs: list[float] = []
        ys: list[float] = []
        for point in points:
            if point.x not in xs:
                xs.append(point.x)
            if point.y not in ys:
                ys.append(point.y)

        self._xs = tuple(xs)
        self._ys = tuple(ys)
        self._points = tuple(points)

    @property
    def xs(self) -> list[float]:
        return list(self._xs)

    @property
    def ys(self) -> list[float]:
        return list(self._ys)

    @property
    def points(self) -> list[Point]:
        return list(self._points)

    def value(self, x: float, y: float) -> Point | None:
        """First sample at exactly (x, y). No tolerance is applied."""
        for point in self._points:
            if point.x == x and point.y == y:
                return point
        return None

    def render(self) -> str:
        """Text table of z offsets: one column per x, one row per y.

        Missing samples show as ``?????``.
        """
        lines = ["        " + "".join(f"{x:<7.1f}" for x in self._xs)]
        for y in self._ys:
            row = f"{y:>5.1f}: "
            for x in self._xs:
                point = self.value(x, y)
                row += f"{point.c:>6.3f} " if point is not None else "????? "
            lines.append(row)
        return "\n".join(lines) + "\n"

    def __str__(self) -> str:
        return self.render()

    def __repr__(self) -> str:
        return f"LevelMap(xs={len(self._xs)}, ys={len(self._ys)}, points={len(self._points)})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, LevelMap):
            return NotImplemented
        return self._points == other._points

    def __hash__(self) -> int:
        return hash(self._points)
