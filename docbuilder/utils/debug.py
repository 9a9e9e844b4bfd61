"""Helpers to persist assembled documents for debugging."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from docbuilder.model.document_model import Document
from docbuilder.parser.layout_calculator import AllocationReport


class DebugDumper:
    """Writes intermediate artifacts onto disk for inspection."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def dump(self, document: Document, report: Optional[AllocationReport] = None) -> Path:
        """Persist the document (and the run report, if any) as JSON."""
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = document.to_payload()
        if report is not None:
            payload["report"] = {
                "mode": report.mode,
                "summary": report.summary(),
                "total": report.total,
                "created": report.created,
                "updated": report.updated,
                "deleted": report.deleted,
                "reordered": report.reordered,
                "unchanged": report.unchanged,
                "pagesCreated": report.pages_created,
                "pagesDeleted": report.pages_deleted,
                "error": str(report.error) if report.error else None,
            }
        target = self.directory / f"document_{document.id}.json"
        target.write_text(json.dumps(payload, indent=2))
        return target
