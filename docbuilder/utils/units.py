"""Conversions between screen pixels at a zoom level and page points."""
from __future__ import annotations

MIN_ZOOM_PERCENT = 25
MAX_ZOOM_PERCENT = 400
DEFAULT_ZOOM_PERCENT = 100
ZOOM_STEP_PERCENT = 25


def clamp_zoom(percent: float) -> float:
    """Clamp a zoom percentage to the supported range."""
    return max(MIN_ZOOM_PERCENT, min(MAX_ZOOM_PERCENT, percent))


def pixels_to_points(value: float, zoom_percent: float = DEFAULT_ZOOM_PERCENT) -> float:
    """Convert an on-screen distance to page points."""
    return value * 100.0 / zoom_percent


def points_to_pixels(value: float, zoom_percent: float = DEFAULT_ZOOM_PERCENT) -> float:
    """Convert page points to an on-screen distance."""
    return value * zoom_percent / 100.0
