"""
Connector geometry.

Pure functions used by renderers to place connector lines between boxes:
boundary intersection points, bezier control points, SVG path data and
hit testing. Nothing here touches engine state.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Tuple, Protocol
import math

from models.annotation import Point, Rectangle


class BoxLike(Protocol):
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class ConnectionPoints:
    """Endpoints and cubic bezier control points of a connector."""
    start: Point
    end: Point
    control_points: Tuple[Point, Point]

    def to_path_data(self) -> str:
        return connection_path_data(self)


def box_center(box: BoxLike) -> Point:
    return Point(box.x + box.width / 2, box.y + box.height / 2)


def find_intersection_point(box: BoxLike, from_point: Point, to_point: Point) -> Point:
    """
    Find where the ray from from_point toward to_point leaves the box.

    The exit edge is chosen by comparing the ray's slope with the box's
    aspect: a ray flatter than the box diagonal leaves through the left or
    right edge, a steeper one through the top or bottom edge.
    """
    center = box_center(box)
    angle = math.atan2(to_point.y - from_point.y, to_point.x - from_point.x)
    half_width = box.width / 2
    half_height = box.height / 2

    cos_a = math.cos(angle)
    sin_a = math.sin(angle)

    if abs(cos_a) * half_height > abs(sin_a) * half_width:
        x = center.x + (half_width if cos_a > 0 else -half_width)
        if sin_a == 0:
            y = center.y
        else:
            y = center.y + math.tan(angle) * (x - center.x)
    else:
        y = center.y + (half_height if sin_a > 0 else -half_height)
        tan_a = math.tan(angle)
        # cos(pi/2) is not exactly zero in floating point, so test the
        # horizontal component instead of tan() for the vertical exit.
        if abs(cos_a) < 1e-12:
            x = center.x
        elif tan_a == 0:
            # only reachable for zero-height boxes
            x = center.x + math.copysign(half_width, cos_a)
        else:
            x = center.x + (y - center.y) / tan_a

    return Point(x, y)


def calculate_control_points(
    start: Point,
    end: Point,
    control_distance_ratio: float = 1 / 3,
) -> Tuple[Point, Point]:
    """Place both bezier control points on the straight start-end line."""
    distance = point_distance(start.to_tuple(), end.to_tuple())
    if distance == 0:
        return (start, start)

    control_distance = distance * control_distance_ratio
    angle = math.atan2(end.y - start.y, end.x - start.x)
    dx = math.cos(angle) * control_distance
    dy = math.sin(angle) * control_distance

    return (
        Point(start.x + dx, start.y + dy),
        Point(end.x - dx, end.y - dy),
    )


def calculate_connection_points(
    start_box: BoxLike,
    end_box: BoxLike,
    control_distance_ratio: float = 1 / 3,
) -> ConnectionPoints:
    start_center = box_center(start_box)
    end_center = box_center(end_box)

    start = find_intersection_point(start_box, start_center, end_center)
    end = find_intersection_point(end_box, end_center, start_center)

    return ConnectionPoints(
        start=start,
        end=end,
        control_points=calculate_control_points(start, end, control_distance_ratio),
    )


def connection_path_data(points: ConnectionPoints) -> str:
    """Build an SVG cubic bezier path string for a connector."""
    cp1, cp2 = points.control_points
    return (
        f"M {points.start.x:g} {points.start.y:g} "
        f"C {cp1.x:g} {cp1.y:g}, {cp2.x:g} {cp2.y:g}, "
        f"{points.end.x:g} {points.end.y:g}"
    )


def is_point_near_line(
    point: Point,
    start: Point,
    end: Point,
    threshold: float = 5.0,
) -> bool:
    """
    Check whether point lies within threshold of the infinite line through
    start and end. A zero-length line never matches.
    """
    line_length = point_distance(start.to_tuple(), end.to_tuple())
    if line_length == 0:
        return False

    distance = abs(
        (end.y - start.y) * point.x
        - (end.x - start.x) * point.y
        + end.x * start.y
        - end.y * start.x
    ) / line_length

    return distance <= threshold


def point_distance(
    point1: Tuple[float, float],
    point2: Tuple[float, float],
) -> float:
    """Calculate the Euclidean distance between two points."""
    dx = point2[0] - point1[0]
    dy = point2[1] - point1[1]
    return math.sqrt(dx * dx + dy * dy)


def points_to_bounding_rect(
    points: List[Tuple[float, float]],
    padding: float = 0.0,
) -> Rectangle:
    """Calculate the bounding rectangle for a list of points."""
    if not points:
        return Rectangle(0.0, 0.0, 0.0, 0.0)

    min_x = min(p[0] for p in points) - padding
    max_x = max(p[0] for p in points) + padding
    min_y = min(p[1] for p in points) - padding
    max_y = max(p[1] for p in points) + padding

    return Rectangle(min_x, min_y, max_x - min_x, max_y - min_y)


def boxes_envelope(boxes: List[BoxLike]) -> Rectangle:
    """Axis-aligned envelope of the top-left and bottom-right box corners."""
    corners: List[Tuple[float, float]] = []
    for box in boxes:
        corners.append((box.x, box.y))
        corners.append((box.x + box.width, box.y + box.height))
    return points_to_bounding_rect(corners)


def boxes_overlap(first: BoxLike, second: BoxLike) -> bool:
    """Edge-touching boxes count as overlapping."""
    return not (
        first.x > second.x + second.width
        or first.x + first.width < second.x
        or first.y > second.y + second.height
        or first.y + first.height < second.y
    )


def calculate_arrow_head_points(
    start: Tuple[float, float],
    end: Tuple[float, float],
    head_length: float = 10.0,
    head_angle: float = 30.0,
) -> List[Tuple[float, float]]:
    """
    Calculate the points for an arrow head.

    Args:
        start: Point the arrow comes from (for a bezier, the last control point).
        end: Arrow tip.
        head_length: Length of arrow head.
        head_angle: Half-angle of arrow head in degrees.

    Returns:
        List of three points: [left_point, tip_point, right_point].
    """
    dx = end[0] - start[0]
    dy = end[1] - start[1]
    length = math.sqrt(dx * dx + dy * dy)

    if length < 1e-10:
        return [end, end, end]

    unit_dx = dx / length
    unit_dy = dy / length

    base_x = end[0] - unit_dx * head_length
    base_y = end[1] - unit_dy * head_length

    spread = head_length * math.tan(math.radians(head_angle))
    perp_dx = -unit_dy
    perp_dy = unit_dx

    left = (base_x + perp_dx * spread, base_y + perp_dy * spread)
    right = (base_x - perp_dx * spread, base_y - perp_dy * spread)

    return [left, end, right]
