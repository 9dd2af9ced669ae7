from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple
import random
import uuid


DEFAULT_LAYER_ID = "default"


class BoxType(Enum):
    """Semantic kinds a box can be tagged with."""
    BOX = "box"
    TITLE = "title"
    CONTENT = "content"
    NOTE = "note"


@dataclass(frozen=True)
class Color:
    """Immutable RGB color representation."""

    red: int = 0
    green: int = 0
    blue: int = 0

    def to_hex(self) -> str:
        """Convert to hex string (#RRGGBB)."""
        return f"#{self.red:02x}{self.green:02x}{self.blue:02x}"

    @classmethod
    def from_hex(cls, hex_string: str) -> Color:
        """Create color from hex string."""
        hex_string = hex_string.lstrip("#")
        if len(hex_string) == 6:
            return cls(
                red=int(hex_string[0:2], 16),
                green=int(hex_string[2:4], 16),
                blue=int(hex_string[4:6], 16),
            )
        elif len(hex_string) == 3:
            return cls(
                red=int(hex_string[0] * 2, 16),
                green=int(hex_string[1] * 2, 16),
                blue=int(hex_string[2] * 2, 16),
            )
        raise ValueError(f"Invalid hex color: {hex_string}")

    @classmethod
    def random(cls, rng: Optional[random.Random] = None) -> Color:
        rng = rng or random
        value = rng.randrange(0, 0x1000000)
        return cls((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF)


@dataclass(frozen=True)
class Point:
    """Immutable 2D point in page-local coordinate space."""

    x: float
    y: float

    def to_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class Rectangle:
    """Immutable axis-aligned rectangle in page-local coordinate space."""

    x: float
    y: float
    width: float
    height: float

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Point:
        return Point(self.x + self.width / 2, self.y + self.height / 2)

    def to_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    def contains_point(self, point: Point) -> bool:
        return (
            self.x <= point.x <= self.x2
            and self.y <= point.y <= self.y2
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Rectangle:
        return cls(
            x=data.get("x", 0.0),
            y=data.get("y", 0.0),
            width=data.get("width", 0.0),
            height=data.get("height", 0.0),
        )


def generate_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Layer:
    """A named, colored, toggleable grouping of annotations."""

    layer_id: str
    name: str
    color: str
    visible: bool = True

    @property
    def is_default(self) -> bool:
        return self.layer_id == DEFAULT_LAYER_ID

    def copy(self, **changes) -> Layer:
        return replace(self, **changes)

    def serialize(self) -> Dict[str, Any]:
        return {
            "id": self.layer_id,
            "name": self.name,
            "color": self.color,
            "visible": self.visible,
        }


@dataclass
class Box:
    """A rectangular annotation region on one page, owned by one layer."""

    box_id: str
    document_id: str
    layer_id: str
    page_number: int
    x: float
    y: float
    width: float
    height: float
    text: str = ""
    color: Optional[str] = None
    box_type: BoxType = BoxType.BOX
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    # Fields callers may change through BoxStore.update_box
    MUTABLE_FIELDS = ("x", "y", "width", "height", "text", "color", "box_type")

    @property
    def bounds(self) -> Rectangle:
        return Rectangle(self.x, self.y, self.width, self.height)

    @property
    def center(self) -> Point:
        return self.bounds.center

    def copy(self, **changes) -> Box:
        return replace(self, **changes)

    def serialize(self) -> Dict[str, Any]:
        """Serialize to the camelCase layout used by layer export files."""
        return {
            "id": self.box_id,
            "layerId": self.layer_id,
            "pageNumber": self.page_number,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "text": self.text,
            "color": self.color,
            "type": self.box_type.value,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class ConnectionStyle:
    """Immutable stroke properties of a connector line."""

    color: str = "#000000"
    width: float = 2.0
    dashed: bool = False
    arrow_head: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "color": self.color,
            "width": self.width,
            "dashed": self.dashed,
            "arrow_head": self.arrow_head,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ConnectionStyle:
        return cls(
            color=data.get("color", "#000000"),
            width=data.get("width", 2.0),
            dashed=data.get("dashed", False),
            arrow_head=data.get("arrow_head", True),
        )


@dataclass
class Connection:
    """A visual link between two boxes on the same page."""

    connection_id: str
    start_box_id: str
    end_box_id: str
    layer_id: str
    document_id: str
    page_number: int
    style: ConnectionStyle = field(default_factory=ConnectionStyle)
    label: Optional[str] = None

    def references(self, box_id: str) -> bool:
        return box_id in (self.start_box_id, self.end_box_id)

    def copy(self, **changes) -> Connection:
        return replace(self, **changes)

    def serialize(self) -> Dict[str, Any]:
        return {
            "id": self.connection_id,
            "startBoxId": self.start_box_id,
            "endBoxId": self.end_box_id,
            "layerId": self.layer_id,
            "pageNumber": self.page_number,
            "style": self.style.to_dict(),
            "label": self.label,
        }


@dataclass
class Group:
    """A named set of boxes with a bounding envelope captured at creation."""

    group_id: str
    name: str
    layer_id: str
    document_id: str
    page_number: int
    box_ids: List[str]
    bounds: Rectangle
    color: str
    created_at: datetime = field(default_factory=datetime.now)

    def copy(self, **changes) -> Group:
        changes.setdefault("box_ids", list(self.box_ids))
        return replace(self, **changes)

    def serialize(self) -> Dict[str, Any]:
        return {
            "id": self.group_id,
            "name": self.name,
            "layerId": self.layer_id,
            "pageNumber": self.page_number,
            "boxIds": list(self.box_ids),
            "bounds": self.bounds.to_dict(),
            "color": self.color,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class PageKey:
    """Composite key of a page partition."""

    document_id: str
    page_number: int
