"""Heuristic height estimation for blocks that have not been rendered yet."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from docbuilder.model.elements import (
    BLOCK_IMAGE,
    DEFAULT_IMAGE_HEIGHT_PT,
    DEFAULT_SHAPE_HEIGHT_PT,
    ELEMENT_IMAGE,
    ELEMENT_SHAPE,
    MIN_TEXT_HEIGHT_PT,
    Block,
    Element,
    ShapeContent,
    TextContent,
)
from docbuilder.model.style_model import DEFAULT_FONT_SIZE_PT, DEFAULT_LINE_HEIGHT


@dataclass(slots=True, frozen=True)
class CharWidthModel:
    """Average glyph width as a fraction of the font size.

    0.6 is a monospace-ish approximation for Latin text. Swap in another model
    for proportional fonts or other scripts.
    """

    width_factor: float = 0.6

    def chars_per_line(self, available_width: float, font_size: float) -> int:
        char_width = font_size * self.width_factor
        if char_width <= 0:
            return 1
        return max(int(math.floor(available_width / char_width)), 1)


class HeightEstimator:
    """Estimate rendered heights of blocks and elements in points."""

    def __init__(self, char_model: Optional[CharWidthModel] = None) -> None:
        self._char_model = char_model or CharWidthModel()

    @property
    def char_model(self) -> CharWidthModel:
        return self._char_model

    def estimate(self, block: Block, available_width: float) -> float:
        if block.kind == BLOCK_IMAGE:
            return float(block.height) if block.height else DEFAULT_IMAGE_HEIGHT_PT
        if isinstance(block.payload, ShapeContent):
            return float(block.height) if block.height else DEFAULT_SHAPE_HEIGHT_PT
        if isinstance(block.payload, TextContent):
            return self.estimate_text(
                block.payload.text,
                available_width,
                _style_float(block.style, "fontSize", DEFAULT_FONT_SIZE_PT),
                _style_float(block.style, "lineHeight", DEFAULT_LINE_HEIGHT),
            )
        return float(block.height) if block.height else DEFAULT_SHAPE_HEIGHT_PT

    def estimate_element(self, element: Element) -> float:
        """Re-estimate an element's height from its own content and width."""
        if element.element_type == ELEMENT_IMAGE:
            return element.bounds.height or DEFAULT_IMAGE_HEIGHT_PT
        if element.element_type == ELEMENT_SHAPE or not isinstance(element.content, TextContent):
            return element.bounds.height or DEFAULT_SHAPE_HEIGHT_PT
        return self.estimate_text(
            element.content.text,
            element.bounds.width,
            _style_float(element.style, "fontSize", DEFAULT_FONT_SIZE_PT),
            _style_float(element.style, "lineHeight", DEFAULT_LINE_HEIGHT),
        )

    def estimate_text(self, text: str, available_width: float, font_size: float, line_height: float) -> float:
        chars_per_line = self._char_model.chars_per_line(available_width, font_size)
        estimated_lines = math.ceil(len(text) / chars_per_line)
        # Explicit line breaks are never under-counted.
        lines = max(estimated_lines, text.count("\n") + 1)
        return max(lines * font_size * line_height, MIN_TEXT_HEIGHT_PT)


_DEFAULT_ESTIMATOR = HeightEstimator()


def estimate_height(block: Block, available_width: float) -> float:
    """Estimate ``block``'s height with the default character width model."""
    return _DEFAULT_ESTIMATOR.estimate(block, available_width)


def _style_float(style, key: str, default: float) -> float:
    value = style.get(key) if style else None
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default
