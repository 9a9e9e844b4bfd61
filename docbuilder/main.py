"""Entry-point for the chat archive document builder pipeline."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from docbuilder.client.http_service import DEFAULT_BASE_URL, HttpDocumentService
from docbuilder.client.memory_service import InMemoryDocumentService
from docbuilder.client.mutation_client import CancellationToken, DocumentMutationClient, RetryPolicy
from docbuilder.client.service import DocumentService
from docbuilder.model.document_model import PAGE_SIZES_PT, Document, PageGeometry
from docbuilder.parser.content_normalizer import ContentNormalizer
from docbuilder.parser.layout_calculator import AllocationReport, PageAllocator
from docbuilder.parser.media_resolver import MediaResolver
from docbuilder.utils.debug import DebugDumper
from docbuilder.utils.logger import get_logger

LOGGER = get_logger(__name__)


def load_messages(path: Path) -> Tuple[List[Mapping[str, object]], Optional[str]]:
    """Read collected messages from JSON: a bare list or ``{"title", "messages"}``."""
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, list):
        return payload, None
    if isinstance(payload, dict) and isinstance(payload.get("messages"), list):
        return payload["messages"], payload.get("title")
    raise ValueError(f"{path} does not contain a message list")


def folder_lister(media_root: Path):
    """Return a folder listing callable for :class:`MediaResolver` rooted at ``media_root``."""

    def list_folder(folder: str) -> List[str]:
        return sorted(entry.name for entry in (media_root / folder).iterdir() if entry.is_file())

    return list_folder


async def build_document(
    messages: Sequence[Mapping[str, object]],
    client: DocumentMutationClient,
    *,
    title: str = "Chat Export",
    geometry: Optional[PageGeometry] = None,
    normalizer: Optional[ContentNormalizer] = None,
    prune_empty_pages: bool = False,
    token: Optional[CancellationToken] = None,
) -> Tuple[Document, AllocationReport]:
    """Create a document, normalize ``messages`` into blocks and allocate them onto pages."""
    geometry = geometry or PageGeometry()
    normalizer = normalizer or ContentNormalizer()
    blocks = normalizer.normalize_collection(messages)

    meta: Dict[str, object] = {
        "title": title,
        "size": geometry.size,
        "orientation": geometry.orientation,
        "margins": geometry.margins.to_payload(),
    }
    document = await client.create_document(meta, token)
    LOGGER.info("Created document %s (%s) for %d blocks", document.id, title, len(blocks))

    allocator = PageAllocator(client, geometry=geometry, prune_empty_pages=prune_empty_pages)
    report = await allocator.assemble(document, blocks, token)
    return document, report


def _build_service(args: argparse.Namespace, policy: RetryPolicy) -> DocumentService:
    if args.offline:
        return InMemoryDocumentService()
    return HttpDocumentService(args.server, timeout=policy.timeout)


async def run(args: argparse.Namespace) -> int:
    source = Path(args.messages_file).resolve()
    if not source.exists():
        raise FileNotFoundError(f"Messages file not found: {source}")

    messages, file_title = load_messages(source)
    resolver = MediaResolver(folder_lister(Path(args.media_root))) if args.media_root else MediaResolver()
    geometry = PageGeometry.named(args.page_size, args.orientation)
    policy = RetryPolicy.from_env()
    if args.timeout:
        policy.timeout = args.timeout

    service = _build_service(args, policy)
    client = DocumentMutationClient(service, policy)
    try:
        document, report = await build_document(
            messages,
            client,
            title=args.title or file_title or source.stem,
            geometry=geometry,
            normalizer=ContentNormalizer(resolver),
        )
    finally:
        await service.aclose()

    if args.debug_dir:
        target = DebugDumper(Path(args.debug_dir)).dump(document, report)
        LOGGER.info("Wrote debug dump to %s", target)

    print(f"{document.id}: {report.summary()} on {len(document.pages)} pages")
    return 0 if report.completed else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Assemble collected chat messages into a paginated document")
    parser.add_argument("messages_file", help="JSON file with the collected messages")
    target = parser.add_mutually_exclusive_group()
    target.add_argument("--server", default=DEFAULT_BASE_URL, help="Base URL of the document editor API")
    target.add_argument("--offline", action="store_true", help="Assemble against an in-memory document store")
    parser.add_argument("--title", help="Document title (defaults to the file's title or name)")
    parser.add_argument("--page-size", choices=sorted(PAGE_SIZES_PT), default="A4")
    parser.add_argument("--orientation", choices=("portrait", "landscape"), default="portrait")
    parser.add_argument("--media-root", help="Directory holding one media folder per conversation")
    parser.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    parser.add_argument("--debug-dir", help="Directory to write the assembled document as JSON")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the messages → blocks → pages pipeline."""
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
