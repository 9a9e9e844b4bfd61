"""Style model captures the visual presets applied to normalized blocks."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

DEFAULT_FONT_SIZE_PT = 12.0
DEFAULT_LINE_HEIGHT = 1.4

USER_COLOR = "#2E7D32"
ASSISTANT_COLOR = "#1976D2"


@dataclass(slots=True)
class StyleDefinition:
    """Named style preset; ``properties`` are sent verbatim as element style."""

    style_id: str
    block_kind: str
    properties: Dict[str, object] = field(default_factory=dict)
    is_default: bool = False


class StylesCatalog:
    """Collection of style presets keyed by identifier."""

    def __init__(self, styles: Mapping[str, StyleDefinition]):
        self._styles = dict(styles)

    def get(self, style_id: Optional[str]) -> Optional[StyleDefinition]:
        """Return the style definition given its identifier."""
        if style_id is None:
            return None
        return self._styles.get(style_id)

    def default_for(self, block_kind: str) -> Optional[StyleDefinition]:
        """Return the default style for the given block kind if defined."""
        for style in self._styles.values():
            if style.block_kind == block_kind and style.is_default:
                return style
        return None

    def resolve(self, style_id: Optional[str], block_kind: str) -> Dict[str, object]:
        """Return a copy of the properties for ``style_id``, else the kind's default."""
        style = self.get(style_id) or self.default_for(block_kind)
        return dict(style.properties) if style else {}

    @classmethod
    def default(cls) -> "StylesCatalog":
        """Presets matching the chat archive editor's look."""
        presets = [
            StyleDefinition(
                "title",
                "title",
                {"fontFamily": "Helvetica", "fontSize": 16, "fontWeight": "bold", "color": ASSISTANT_COLOR},
                is_default=True,
            ),
            StyleDefinition(
                "role_header.assistant",
                "role_header",
                {"fontFamily": "Helvetica", "fontSize": 12, "fontWeight": "bold", "color": ASSISTANT_COLOR},
                is_default=True,
            ),
            StyleDefinition(
                "role_header.user",
                "role_header",
                {"fontFamily": "Helvetica", "fontSize": 12, "fontWeight": "bold", "color": USER_COLOR},
            ),
            StyleDefinition(
                "text",
                "text",
                {
                    "fontFamily": "Helvetica",
                    "fontSize": 11,
                    "color": "#000000",
                    "lineHeight": DEFAULT_LINE_HEIGHT,
                    "whiteSpace": "pre-wrap",
                },
                is_default=True,
            ),
            StyleDefinition(
                "code",
                "code",
                {
                    "fontFamily": "Courier",
                    "fontSize": 9,
                    "color": "#000000",
                    "backgroundColor": "#f5f5f5",
                    "border": "1px solid #ddd",
                    "borderRadius": "4px",
                    "padding": "8px",
                    "whiteSpace": "pre",
                },
                is_default=True,
            ),
            StyleDefinition(
                "image",
                "image",
                {"border": "1px solid #ddd", "borderRadius": "4px"},
                is_default=True,
            ),
        ]
        return cls({style.style_id: style for style in presets})
