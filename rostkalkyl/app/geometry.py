"""Room geometry and the quantities derived from it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from .models import Surface, Unit, normalize_surface, normalize_unit

DOOR_WIDTH_M = 0.9
DOOR_HEIGHT_M = 2.1
WINDOW_WIDTH_M = 1.2
WINDOW_HEIGHT_M = 1.2

MAX_ROOM_SIDE_M = 100.0
MAX_ROOM_HEIGHT_M = 10.0


def validate_dimensions(width: float, length: float, height: float, doors: int = 0, windows: int = 0) -> List[str]:
    """Return a list of problems with the given room measurements (empty when valid)."""
    errors: List[str] = []
    for label, value in (("width", width), ("length", length), ("height", height)):
        if value is None or value <= 0:
            errors.append(f"{label} must be positive")
    if width and width > MAX_ROOM_SIDE_M:
        errors.append(f"width exceeds {MAX_ROOM_SIDE_M:g} m")
    if length and length > MAX_ROOM_SIDE_M:
        errors.append(f"length exceeds {MAX_ROOM_SIDE_M:g} m")
    if height and height > MAX_ROOM_HEIGHT_M:
        errors.append(f"height exceeds {MAX_ROOM_HEIGHT_M:g} m")
    if doors is None or doors < 0:
        errors.append("doors must be zero or more")
    if windows is None or windows < 0:
        errors.append("windows must be zero or more")
    return errors


@dataclass(frozen=True)
class RoomGeometry:
    width: float
    length: float
    height: float
    doors: int = 0
    windows: int = 0

    def __post_init__(self) -> None:
        errors = validate_dimensions(self.width, self.length, self.height, self.doors, self.windows)
        if errors:
            raise ValueError("; ".join(errors))

    @property
    def perimeter(self) -> float:
        return 2 * (self.width + self.length)

    @property
    def walls_gross(self) -> float:
        return self.perimeter * self.height

    @property
    def door_area(self) -> float:
        return self.doors * DOOR_WIDTH_M * DOOR_HEIGHT_M

    @property
    def window_area(self) -> float:
        return self.windows * WINDOW_WIDTH_M * WINDOW_HEIGHT_M

    @property
    def walls_net(self) -> float:
        # Windows stay in the wall area; only door openings are deducted.
        return max(0.0, self.walls_gross - self.door_area)

    @property
    def ceiling_area(self) -> float:
        return self.width * self.length

    @property
    def floor_area(self) -> float:
        return self.width * self.length

    @property
    def door_frame_length(self) -> float:
        return self.doors * (2 * DOOR_HEIGHT_M + DOOR_WIDTH_M)

    @property
    def window_frame_length(self) -> float:
        return self.windows * 2 * (WINDOW_WIDTH_M + WINDOW_HEIGHT_M)

    def quantity_for(self, surface: Union[Surface, str, None], unit: Union[Unit, str]) -> float:
        """Base quantity of *surface* measured in *unit* for this room.

        Area: walls net of doors, ceiling and floor W×L, doors and windows
        by their opening area. Length: room perimeter, or frame length for
        doors and windows. Count: number of doors or windows, otherwise 1.
        """

        resolved_unit = normalize_unit(unit)
        resolved_surface = normalize_surface(surface)
        if resolved_unit is None:
            raise ValueError(f"unknown unit: {unit!r}")

        if resolved_unit is Unit.AREA:
            return {
                Surface.WALL: self.walls_net,
                Surface.CEILING: self.ceiling_area,
                Surface.FLOOR: self.floor_area,
                Surface.DOOR: self.door_area,
                Surface.WINDOW: self.window_area,
                Surface.TRIM: 0.0,
            }.get(resolved_surface, 0.0)

        if resolved_unit is Unit.LENGTH:
            if resolved_surface is Surface.DOOR:
                return self.door_frame_length
            if resolved_surface is Surface.WINDOW:
                return self.window_frame_length
            if resolved_surface is None:
                return 0.0
            return self.perimeter

        if resolved_surface is Surface.DOOR:
            return float(self.doors)
        if resolved_surface is Surface.WINDOW:
            return float(self.windows)
        return 1.0

    def summary(self) -> Dict[str, float]:
        return {
            "walls_gross": self.walls_gross,
            "walls_net": self.walls_net,
            "ceiling": self.ceiling_area,
            "floor": self.floor_area,
            "perimeter": self.perimeter,
            "door_area": self.door_area,
            "window_area": self.window_area,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "width": self.width,
            "length": self.length,
            "height": self.height,
            "doors": self.doors,
            "windows": self.windows,
        }

    @classmethod
    def from_dict(cls, payload: Optional[Mapping[str, Any]]) -> Optional["RoomGeometry"]:
        if not payload:
            return None
        return cls(
            width=float(payload["width"]),
            length=float(payload["length"]),
            height=float(payload["height"]),
            doors=int(payload.get("doors", 0) or 0),
            windows=int(payload.get("windows", 0) or 0),
        )
