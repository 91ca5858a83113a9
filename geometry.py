"""Face bounding box coordinate systems and the conversions between them.

Two incompatible representations are in play:

- UI coordinates: percentages of image width/height in [0, 100], natural
  for overlay positioning and drag interactions.
- API coordinates: normalised fractions in [0, 1], what the backend stores.

Each is a distinct wrapper type with no arithmetic, so a value of one kind
can only become the other through ``ui_to_api`` / ``api_to_ui`` (or the
box-level ``ui_bbox_to_api`` / ``api_bbox_to_ui``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

UI_MAX = 100.0
API_MAX = 1.0


class CoordinateRangeError(ValueError):
    """An API coordinate fell outside [0, 1]."""


@dataclass(frozen=True)
class UiCoordinate:
    """Percentage coordinate, nominally in [0, 100].

    Out-of-range values are tolerated (a face box dragged partly off the
    canvas) but logged.
    """

    value: float

    def __post_init__(self) -> None:
        if not 0 <= self.value <= UI_MAX:
            logger.warning("UI coordinate %s outside expected range [0, 100]", self.value)

    def __float__(self) -> float:
        return float(self.value)


@dataclass(frozen=True)
class ApiCoordinate:
    """Normalised coordinate, strictly in [0, 1]."""

    value: float

    def __post_init__(self) -> None:
        if not 0 <= self.value <= API_MAX:
            raise CoordinateRangeError(
                f"API coordinate {self.value} outside valid range [0, 1]"
            )

    def __float__(self) -> float:
        return float(self.value)


def ui_to_api(coord: UiCoordinate) -> ApiCoordinate:
    """Convert a UI coordinate to an API coordinate.

    Off-canvas UI values are clamped to the image edge.
    """
    if not isinstance(coord, UiCoordinate):
        raise TypeError(f"expected UiCoordinate, got {type(coord).__name__}")
    value = coord.value / UI_MAX
    if not 0 <= value <= API_MAX:
        clamped = min(max(value, 0.0), API_MAX)
        logger.warning("Clamping off-canvas coordinate %s to %s", coord.value, clamped * UI_MAX)
        value = clamped
    return ApiCoordinate(value)


def api_to_ui(coord: ApiCoordinate) -> UiCoordinate:
    """Convert an API coordinate to a UI coordinate."""
    if not isinstance(coord, ApiCoordinate):
        raise TypeError(f"expected ApiCoordinate, got {type(coord).__name__}")
    return UiCoordinate(coord.value * UI_MAX)


def _check_fields(box: Any, kind: type) -> None:
    for name in ("x", "y", "width", "height"):
        value = getattr(box, name)
        if not isinstance(value, kind):
            raise TypeError(
                f"{type(box).__name__}.{name} must be {kind.__name__}, "
                f"got {type(value).__name__}"
            )


@dataclass(frozen=True)
class UiBoundingBox:
    """Face box in UI (percentage) coordinates."""

    x: UiCoordinate
    y: UiCoordinate
    width: UiCoordinate
    height: UiCoordinate

    def __post_init__(self) -> None:
        _check_fields(self, UiCoordinate)

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.x.value, self.y.value, self.width.value, self.height.value)


@dataclass(frozen=True)
class ApiBoundingBox:
    """Face box in API (normalised) coordinates."""

    x: ApiCoordinate
    y: ApiCoordinate
    width: ApiCoordinate
    height: ApiCoordinate

    def __post_init__(self) -> None:
        _check_fields(self, ApiCoordinate)

    def as_tuple(self) -> tuple[float, float, float, float]:
        return (self.x.value, self.y.value, self.width.value, self.height.value)

    def to_dict(self) -> dict[str, float]:
        """Wire representation sent to the backend."""
        return {
            "x": self.x.value,
            "y": self.y.value,
            "width": self.width.value,
            "height": self.height.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ApiBoundingBox:
        """Build from a backend payload; raises CoordinateRangeError on bad values."""
        try:
            return create_api_bbox(data["x"], data["y"], data["width"], data["height"])
        except KeyError as e:
            raise ValueError(f"Bounding box missing field {e.args[0]!r}") from e


def create_ui_bbox(x: float, y: float, width: float, height: float) -> UiBoundingBox:
    """Create a UI box from raw numbers (user interactions, overlay math)."""
    return UiBoundingBox(UiCoordinate(x), UiCoordinate(y), UiCoordinate(width), UiCoordinate(height))


def create_api_bbox(x: float, y: float, width: float, height: float) -> ApiBoundingBox:
    """Create an API box from raw numbers received from the backend."""
    return ApiBoundingBox(
        ApiCoordinate(x), ApiCoordinate(y), ApiCoordinate(width), ApiCoordinate(height)
    )


def ui_bbox_to_api(bbox: UiBoundingBox) -> ApiBoundingBox:
    """Convert a UI box to API form (each field divided by 100)."""
    return ApiBoundingBox(
        x=ui_to_api(bbox.x),
        y=ui_to_api(bbox.y),
        width=ui_to_api(bbox.width),
        height=ui_to_api(bbox.height),
    )


def api_bbox_to_ui(bbox: ApiBoundingBox) -> UiBoundingBox:
    """Convert an API box to UI form (each field multiplied by 100)."""
    return UiBoundingBox(
        x=api_to_ui(bbox.x),
        y=api_to_ui(bbox.y),
        width=api_to_ui(bbox.width),
        height=api_to_ui(bbox.height),
    )
