"""Convert ordered chat message parts into role-tagged layout blocks."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from docbuilder.model.elements import (
    BLOCK_CODE,
    BLOCK_IMAGE,
    BLOCK_ROLE_HEADER,
    BLOCK_TEXT,
    BLOCK_TITLE,
    Block,
    ImageContent,
    TextContent,
)
from docbuilder.model.style_model import StylesCatalog
from docbuilder.parser.media_resolver import MediaResolver, extract_file_id
from docbuilder.utils.logger import get_logger
from docbuilder.utils.text_normalizer import TextNormalizer

LOGGER = get_logger(__name__)

FENCED_CODE_PATTERN = re.compile(r"```([\w+#.-]+)?[^\S\n]*\n?([\s\S]*?)```")
DEFAULT_CODE_LANGUAGE = "text"
DEFAULT_IMAGE_WIDTH_PT = 400.0
CONVERSATION_SPACING_PT = 30.0

ROLE_LABELS = {
    "user": "User:",
    "assistant": "Assistant:",
    "tool": "Tool:",
    "system": "System:",
}


@dataclass(slots=True)
class ChatMessage:
    """Ordered content parts of one message, as handed over by the archive parser."""

    role: str
    parts: List[object] = field(default_factory=list)
    message_id: Optional[str] = None
    folder: Optional[str] = None
    conversation_id: Optional[str] = None
    conversation_title: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> "ChatMessage":
        """Accept both flat ``{role, parts}`` and export-style nested messages."""
        inner = payload.get("message") if isinstance(payload.get("message"), Mapping) else payload
        author = inner.get("author") if isinstance(inner.get("author"), Mapping) else {}
        content = inner.get("content") if isinstance(inner.get("content"), Mapping) else {}

        role = payload.get("role") or author.get("role") or "assistant"
        parts = payload.get("parts") or content.get("parts") or []
        if isinstance(parts, (str, bytes)) or not isinstance(parts, Sequence):
            parts = [parts]

        return cls(
            role=str(role),
            parts=list(parts),
            message_id=_optional_str(payload.get("id") or inner.get("id")),
            folder=_optional_str(payload.get("folder")),
            conversation_id=_optional_str(payload.get("conversationId")),
            conversation_title=_optional_str(payload.get("conversationTitle")),
        )


class ContentNormalizer:
    """Turns chat messages into ordered blocks ready for page allocation."""

    def __init__(
        self,
        media_resolver: Optional[MediaResolver] = None,
        styles: Optional[StylesCatalog] = None,
        text_normalizer: Optional[TextNormalizer] = None,
    ) -> None:
        self._media = media_resolver or MediaResolver()
        self._styles = styles or StylesCatalog.default()
        self._text = text_normalizer or TextNormalizer(preserve_whitespace=True)

    # ------------------------------------------------------------------
    # Public API
    def normalize_message(self, message: ChatMessage | Mapping[str, object]) -> List[Block]:
        """Return the message's blocks, led by a single role header."""
        if not isinstance(message, ChatMessage):
            message = ChatMessage.from_payload(message)

        content_blocks: List[Block] = []
        for part in message.parts:
            content_blocks.extend(self._normalize_part(part, message))

        if not content_blocks:
            return []

        header = self._role_header(message.role)
        if message.message_id:
            header.metadata["messageId"] = message.message_id
        return [header, *content_blocks]

    def normalize_messages(self, messages: Iterable[ChatMessage | Mapping[str, object]]) -> List[Block]:
        blocks: List[Block] = []
        for message in messages:
            blocks.extend(self.normalize_message(message))
        return blocks

    def normalize_collection(self, messages: Iterable[ChatMessage | Mapping[str, object]]) -> List[Block]:
        """Group collected messages by conversation, each led by a title block."""
        groups: Dict[Optional[str], List[ChatMessage]] = {}
        titles: Dict[Optional[str], str] = {}
        for raw in messages:
            message = raw if isinstance(raw, ChatMessage) else ChatMessage.from_payload(raw)
            key = message.conversation_id
            groups.setdefault(key, []).append(message)
            if key not in titles or (message.conversation_title and titles[key] == "Untitled Conversation"):
                titles[key] = message.conversation_title or "Untitled Conversation"

        blocks: List[Block] = []
        for index, (key, group) in enumerate(groups.items()):
            title = Block(
                kind=BLOCK_TITLE,
                payload=TextContent(titles[key]),
                style=self._styles.resolve("title", BLOCK_TITLE),
                spacing_before=CONVERSATION_SPACING_PT if index else 0.0,
                metadata={"conversationId": key} if key else {},
            )
            blocks.append(title)
            blocks.extend(self.normalize_messages(group))

        LOGGER.info("Normalized %d conversations into %d blocks", len(groups), len(blocks))
        return blocks

    def split_fenced_code(self, text: str) -> List[Block]:
        """Split a string into alternating text and code blocks, preserving order."""
        blocks: List[Block] = []
        last_end = 0
        for match in FENCED_CODE_PATTERN.finditer(text):
            self._append_text(blocks, text[last_end:match.start()])
            language = match.group(1) or DEFAULT_CODE_LANGUAGE
            code = match.group(2).rstrip("\n")
            blocks.append(
                Block(
                    kind=BLOCK_CODE,
                    payload=TextContent(code),
                    style=self._styles.resolve("code", BLOCK_CODE),
                    metadata={"language": language},
                )
            )
            last_end = match.end()
        self._append_text(blocks, text[last_end:])
        return blocks

    # ------------------------------------------------------------------
    # Part handling
    def _normalize_part(self, part: object, message: ChatMessage) -> List[Block]:
        if isinstance(part, str):
            return self._normalize_string(part)
        if isinstance(part, Mapping):
            if _is_image_part(part):
                return [self._image_block(part, message)]
            text = part.get("text")
            if isinstance(text, str):
                return self._normalize_string(text)
        LOGGER.debug("Skipping unsupported message part of type %s", type(part).__name__)
        return []

    def _normalize_string(self, raw: str) -> List[Block]:
        text = self._text.normalize_text(raw)
        if not text.strip():
            return []
        if "```" not in text:
            return [self._text_block(text.strip())]
        return self.split_fenced_code(text)

    def _append_text(self, blocks: List[Block], segment: str) -> None:
        segment = segment.strip()
        if segment:
            blocks.append(self._text_block(segment))

    def _text_block(self, text: str) -> Block:
        return Block(kind=BLOCK_TEXT, payload=TextContent(text), style=self._styles.resolve("text", BLOCK_TEXT))

    def _role_header(self, role: str) -> Block:
        label = ROLE_LABELS.get(role.lower(), f"{role.strip().title() or 'Assistant'}:")
        style_id = "role_header.user" if role.lower() == "user" else "role_header.assistant"
        return Block(
            kind=BLOCK_ROLE_HEADER,
            payload=TextContent(label),
            style=self._styles.resolve(style_id, BLOCK_ROLE_HEADER),
            metadata={"role": role},
        )

    def _image_block(self, part: Mapping[str, object], message: ChatMessage) -> Block:
        pointer = part.get("asset_pointer")
        if isinstance(pointer, Mapping):
            direct_url = pointer.get("url")
            pointer = None
        else:
            direct_url = part.get("url") or part.get("image_url")
        if isinstance(direct_url, Mapping):
            direct_url = direct_url.get("url")

        source_width = _first_number(part, "width")
        source_height = _first_number(part, "height")
        file_id = extract_file_id(pointer if isinstance(pointer, str) else None)

        url: Optional[str] = None
        if isinstance(direct_url, str) and direct_url:
            url = direct_url
        elif file_id:
            url = self._media.resolve(message.folder, file_id)
            if url is None:
                LOGGER.warning("Unresolved image %s in folder %s", file_id, message.folder)

        return Block(
            kind=BLOCK_IMAGE,
            payload=ImageContent(
                url=url,
                file_id=file_id or (pointer if isinstance(pointer, str) else None),
                original_width=source_width,
                original_height=source_height,
            ),
            style=self._styles.resolve("image", BLOCK_IMAGE),
            width=source_width or DEFAULT_IMAGE_WIDTH_PT,
        )


def _is_image_part(part: Mapping[str, object]) -> bool:
    content_type = part.get("content_type")
    if content_type == "image_asset_pointer" and part.get("asset_pointer"):
        return True
    if part.get("type") == "image" and part.get("url"):
        return True
    if part.get("image_url"):
        return True
    return isinstance(content_type, str) and "image" in content_type


def _first_number(part: Mapping[str, object], key: str) -> Optional[float]:
    pointer = part.get("asset_pointer")
    candidates = [pointer.get(key) if isinstance(pointer, Mapping) else None, part.get(key)]
    for value in candidates:
        if isinstance(value, (int, float)) and value > 0:
            return float(value)
    return None


def _optional_str(value: object) -> Optional[str]:
    return None if value is None else str(value)
