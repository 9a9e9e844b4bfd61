"""
Chat Archive Media Resolver

Maps file identifiers found in exported messages onto retrievable media URLs
using the filename listing of a conversation's media folder.
"""

import mimetypes
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Callable, Dict, Iterable, Optional
from urllib.parse import quote

from docbuilder.utils.logger import get_logger

LOGGER = get_logger(__name__)

FILE_ID_PATTERN = re.compile(r'file[-_][A-Za-z0-9]+')
MEDIA_URL_TEMPLATE = "/api/media/{folder}/{filename}"

MEDIA_TYPES = {
    '.png': 'image',
    '.jpg': 'image',
    '.jpeg': 'image',
    '.gif': 'image',
    '.webp': 'image',
    '.svg': 'image',
    '.mp3': 'audio',
    '.wav': 'audio',
    '.ogg': 'audio',
    '.m4a': 'audio',
    '.mp4': 'video',
    '.webm': 'video',
    '.mov': 'video',
}


def determine_media_type(filename: Optional[str]) -> str:
    """Classify a filename as ``image``, ``audio``, ``video`` or ``unknown``."""
    if not filename:
        return 'unknown'
    ext = PurePosixPath(filename.lower()).suffix
    if ext in MEDIA_TYPES:
        return MEDIA_TYPES[ext]

    mime_type, _ = mimetypes.guess_type(filename)
    if mime_type:
        major = mime_type.split('/', 1)[0]
        if major in {'image', 'audio', 'video'}:
            return major
    return 'unknown'


def extract_file_id(reference: Optional[str]) -> Optional[str]:
    """Return the file identifier from an asset pointer or filename.

    ``file-service://file-abc123`` and ``sediment://file_abc123-photo.png`` both
    yield the identifier; anything else falls back to the last path segment.
    """
    if not reference:
        return None
    last_segment = re.split(r'[/\\]', reference.rstrip('/\\'))[-1]
    match = FILE_ID_PATTERN.search(last_segment)
    if match:
        return match.group(0)
    return last_segment or None


@dataclass
class MediaCatalog:
    """Filenames of one conversation media folder, indexed by file id."""

    folder: str
    filenames: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_listing(cls, folder: str, listing: Iterable[str]) -> "MediaCatalog":
        """Index a folder listing by embedded file id and by full filename."""
        filenames: Dict[str, str] = {}
        for filename in listing:
            match = FILE_ID_PATTERN.search(filename)
            if match:
                filenames.setdefault(match.group(0), filename)
            filenames[filename] = filename
        return cls(folder=folder, filenames=filenames)

    def lookup(self, file_id: str) -> Optional[str]:
        return self.filenames.get(file_id)

    def __len__(self) -> int:
        return len(self.filenames)


class MediaResolver:
    """Resolves ``(folder, file_id)`` pairs to media URLs, caching listings per folder."""

    def __init__(
        self,
        list_folder: Optional[Callable[[str], Iterable[str]]] = None,
        url_template: str = MEDIA_URL_TEMPLATE,
    ) -> None:
        self._list_folder = list_folder
        self._url_template = url_template
        self._catalogs: Dict[str, MediaCatalog] = {}

    def register(self, catalog: MediaCatalog) -> None:
        self._catalogs[catalog.folder] = catalog

    def catalog_for(self, folder: str) -> Optional[MediaCatalog]:
        if folder in self._catalogs:
            return self._catalogs[folder]
        if self._list_folder is None:
            return None

        try:
            listing = list(self._list_folder(folder))
        except OSError as exc:
            LOGGER.warning("Failed to list media folder %s: %s", folder, exc)
            return None

        catalog = MediaCatalog.from_listing(folder, listing)
        LOGGER.debug("Indexed %d media names for folder %s", len(catalog), folder)
        self._catalogs[folder] = catalog
        return catalog

    def resolve(self, folder: Optional[str], file_id: Optional[str]) -> Optional[str]:
        """Return a retrievable URL, or ``None`` when the media is not in the folder."""
        if not folder or not file_id:
            return None
        catalog = self.catalog_for(folder)
        if catalog is None:
            return None
        filename = catalog.lookup(file_id)
        if filename is None:
            return None
        return self._url_template.format(folder=quote(folder), filename=quote(filename))

    def clear_cache(self, folder: Optional[str] = None) -> None:
        """Drop cached listings for one folder, or all folders."""
        if folder:
            self._catalogs.pop(folder, None)
        else:
            self._catalogs.clear()
