"""SVG path data flattening for Pillow polygons."""

import math
import re

_TOKEN = re.compile(r"[MmLlHhVvCcSsQqTtAaZz]|[-+]?(?:\d*\.\d+|\d+\.?)(?:[eE][-+]?\d+)?")

_ARG_COUNTS = {"M": 2, "L": 2, "H": 1, "V": 1, "C": 6, "S": 4, "Q": 4, "T": 2, "A": 7, "Z": 0}

CURVE_SEGMENTS = 16

Point = tuple[float, float]


class PathSyntaxError(ValueError):
    pass


def _cubic(p0: Point, p1: Point, p2: Point, p3: Point) -> list[Point]:
    points = []
    for i in range(1, CURVE_SEGMENTS + 1):
        t = i / CURVE_SEGMENTS
        mt = 1 - t
        points.append((
            mt ** 3 * p0[0] + 3 * mt ** 2 * t * p1[0] + 3 * mt * t ** 2 * p2[0] + t ** 3 * p3[0],
            mt ** 3 * p0[1] + 3 * mt ** 2 * t * p1[1] + 3 * mt * t ** 2 * p2[1] + t ** 3 * p3[1],
        ))
    return points


def _quadratic(p0: Point, p1: Point, p2: Point) -> list[Point]:
    points = []
    for i in range(1, CURVE_SEGMENTS + 1):
        t = i / CURVE_SEGMENTS
        mt = 1 - t
        points.append((
            mt ** 2 * p0[0] + 2 * mt * t * p1[0] + t ** 2 * p2[0],
            mt ** 2 * p0[1] + 2 * mt * t * p1[1] + t ** 2 * p2[1],
        ))
    return points


def _arc(p0: Point, rx: float, ry: float, phi_deg: float, large: bool, sweep: bool, p1: Point) -> list[Point]:
    """Endpoint-parameterized elliptical arc (SVG spec F.6.5), flattened."""
    if rx == 0 or ry == 0 or p0 == p1:
        return [p1]
    rx, ry = abs(rx), abs(ry)
    phi = math.radians(phi_deg)
    cos_phi, sin_phi = math.cos(phi), math.sin(phi)
    dx, dy = (p0[0] - p1[0]) / 2, (p0[1] - p1[1]) / 2
    x1p = cos_phi * dx + sin_phi * dy
    y1p = -sin_phi * dx + cos_phi * dy

    scale = x1p ** 2 / rx ** 2 + y1p ** 2 / ry ** 2
    if scale > 1:
        rx *= math.sqrt(scale)
        ry *= math.sqrt(scale)

    num = rx ** 2 * ry ** 2 - rx ** 2 * y1p ** 2 - ry ** 2 * x1p ** 2
    den = rx ** 2 * y1p ** 2 + ry ** 2 * x1p ** 2
    coef = math.sqrt(max(0.0, num / den)) if den else 0.0
    if large == sweep:
        coef = -coef
    cxp = coef * rx * y1p / ry
    cyp = -coef * ry * x1p / rx
    cx = cos_phi * cxp - sin_phi * cyp + (p0[0] + p1[0]) / 2
    cy = sin_phi * cxp + cos_phi * cyp + (p0[1] + p1[1]) / 2

    def _angle(ux: float, uy: float, vx: float, vy: float) -> float:
        return math.atan2(ux * vy - uy * vx, ux * vx + uy * vy)

    theta1 = _angle(1, 0, (x1p - cxp) / rx, (y1p - cyp) / ry)
    delta = _angle((x1p - cxp) / rx, (y1p - cyp) / ry, (-x1p - cxp) / rx, (-y1p - cyp) / ry)
    if not sweep and delta > 0:
        delta -= 2 * math.pi
    elif sweep and delta < 0:
        delta += 2 * math.pi

    points = []
    for i in range(1, CURVE_SEGMENTS + 1):
        theta = theta1 + delta * i / CURVE_SEGMENTS
        x = cos_phi * rx * math.cos(theta) - sin_phi * ry * math.sin(theta) + cx
        y = sin_phi * rx * math.cos(theta) + cos_phi * ry * math.sin(theta) + cy
        points.append((x, y))
    return points


def flatten_path(data: str) -> list[tuple[list[Point], bool]]:
    """
    Flatten SVG path data into polylines.

    Returns:
        List of (points, closed) subpaths in path coordinates.

    Raises:
        PathSyntaxError: malformed data
    """
    tokens = _TOKEN.findall(data or "")
    if not tokens or tokens[0] not in "Mm":
        raise PathSyntaxError("Path data must start with a moveto command")

    subpaths: list[tuple[list[Point], bool]] = []
    current: list[Point] = []
    pos: Point = (0.0, 0.0)
    start: Point = (0.0, 0.0)
    last_control: Point | None = None
    last_cmd = ""
    i = 0
    cmd = ""

    def _flush(closed: bool):
        nonlocal current
        if len(current) > 1:
            subpaths.append((current, closed))
        current = []

    while i < len(tokens):
        token = tokens[i]
        if token.isalpha():
            cmd = token
            i += 1
        elif not cmd:
            raise PathSyntaxError(f"Unexpected number {token}")

        upper = cmd.upper()
        relative = cmd.islower()
        count = _ARG_COUNTS[upper]

        if upper == "Z":
            if current:
                current.append(start)
            _flush(True)
            pos = start
            last_cmd = "Z"
            last_control = None
            cmd = ""
            continue

        args = tokens[i:i + count]
        if len(args) < count or any(a.isalpha() for a in args):
            raise PathSyntaxError(f"Not enough arguments for {cmd}")
        values = [float(a) for a in args]
        i += count

        ox, oy = pos if relative else (0.0, 0.0)

        if upper == "M":
            _flush(False)
            pos = (ox + values[0], oy + values[1])
            start = pos
            current = [pos]
            # implicit lineto after the first pair
            cmd = "l" if relative else "L"
            last_control = None
        elif upper == "L":
            pos = (ox + values[0], oy + values[1])
            current.append(pos)
            last_control = None
        elif upper == "H":
            pos = ((pos[0] if relative else 0.0) + values[0], pos[1])
            current.append(pos)
            last_control = None
        elif upper == "V":
            pos = (pos[0], (pos[1] if relative else 0.0) + values[0])
            current.append(pos)
            last_control = None
        elif upper == "C":
            c1 = (ox + values[0], oy + values[1])
            c2 = (ox + values[2], oy + values[3])
            end = (ox + values[4], oy + values[5])
            current.extend(_cubic(pos, c1, c2, end))
            last_control, pos = c2, end
        elif upper == "S":
            if last_cmd in ("C", "S") and last_control:
                c1 = (2 * pos[0] - last_control[0], 2 * pos[1] - last_control[1])
            else:
                c1 = pos
            c2 = (ox + values[0], oy + values[1])
            end = (ox + values[2], oy + values[3])
            current.extend(_cubic(pos, c1, c2, end))
            last_control, pos = c2, end
        elif upper == "Q":
            c = (ox + values[0], oy + values[1])
            end = (ox + values[2], oy + values[3])
            current.extend(_quadratic(pos, c, end))
            last_control, pos = c, end
        elif upper == "T":
            if last_cmd in ("Q", "T") and last_control:
                c = (2 * pos[0] - last_control[0], 2 * pos[1] - last_control[1])
            else:
                c = pos
            end = (ox + values[0], oy + values[1])
            current.extend(_quadratic(pos, c, end))
            last_control, pos = c, end
        elif upper == "A":
            end = (ox + values[5], oy + values[6])
            current.extend(_arc(pos, values[0], values[1], values[2], bool(values[3]), bool(values[4]), end))
            last_control, pos = None, end

        last_cmd = upper

    _flush(False)
    if not subpaths:
        raise PathSyntaxError("Path has no drawable segments")
    return subpaths


def path_bounds(subpaths: list[tuple[list[Point], bool]]) -> tuple[float, float, float, float]:
    """(min_x, min_y, max_x, max_y) over all points."""
    xs = [p[0] for points, _ in subpaths for p in points]
    ys = [p[1] for points, _ in subpaths for p in points]
    return min(xs), min(ys), max(xs), max(ys)
