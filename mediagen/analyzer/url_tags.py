"""Reversible URL tagging for text sent to an AI backend.

URLs are swapped for positional placeholders (``<TAG_1/>``, ``<TAG_2/>``, ...)
before any AI call and swapped back afterwards, so the model never sees or
rewrites them. Indices are 1-based and contiguous across every text in one
``preprocess`` call, shared by all media types. Repeated URLs get distinct
placeholders.

With ``tag_mime_types`` the inferred MIME type is encoded in the tag name
(``<IMAGE_JPEG_TAG_1/>``) and restored structures get a ``mimeType`` next to
any ``gcsUri``/``fileUri`` that held such a tag.
"""

import logging
import mimetypes
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import unquote, urlsplit

from mediagen.errors import UnknownTagError

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"(?:https?|gs)://[^\s<>\"'`]+", re.IGNORECASE)
TAG_PATTERN = re.compile(r"<(?:[A-Z0-9]+(?:_[A-Z0-9]+)*_)?TAG_\d+/>")
URI_KEYS = ("gcsUri", "fileUri")

_TRAILING_PUNCTUATION = ".,;:!?)]}"
_FIREBASE_URL = re.compile(
    r"^https://firebasestorage\.googleapis\.com/v0/b/([^/]+)/o/([^?]+)(?:\?.*)?$"
)
_GCS_API_URL = re.compile(r"^https://storage\.googleapis\.com/([^/]+)/(.+)$")
_EXTRA_MIME_TYPES = {
    ".webp": "image/webp",
    ".webm": "video/webm",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".ogg": "audio/ogg",
    ".opus": "audio/opus",
    ".flac": "audio/flac",
    ".heic": "image/heic",
}

UnknownTagHandler = Callable[[UnknownTagError], None]


@dataclass
class TagMap:
    """Placeholder → URL for one pipeline run, in tagging order."""
    entries: Dict[str, str] = field(default_factory=dict)
    mime_types: Dict[str, str] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, placeholder: object) -> bool:
        return placeholder in self.entries

    def urls(self) -> List[str]:
        return list(self.entries.values())


def guess_mime_type(url: str) -> Optional[str]:
    path = urlsplit(url).path
    mime_type, _ = mimetypes.guess_type(path, strict=False)
    if mime_type:
        return mime_type
    ext = path[path.rfind("."):].lower() if "." in path else ""
    return _EXTRA_MIME_TYPES.get(ext)


def mime_tag_name(mime_type: str) -> str:
    """``image/jpeg`` → ``IMAGE_JPEG``; ``image/svg+xml`` → ``IMAGE_SVG_XML``."""
    return re.sub(r"[^A-Z0-9]+", "_", mime_type.upper()).strip("_")


def normalize_storage_url(url: str) -> str:
    """Rewrite Firebase Storage and GCS HTTPS URLs to ``gs://bucket/path``."""
    match = _FIREBASE_URL.match(url)
    if match:
        return f"gs://{match.group(1)}/{unquote(match.group(2))}"
    match = _GCS_API_URL.match(url)
    if match:
        return f"gs://{match.group(1)}/{match.group(2)}"
    return url


def _split_trailing(url: str) -> Tuple[str, str]:
    stripped = url.rstrip(_TRAILING_PUNCTUATION)
    return stripped, url[len(stripped):]


class UrlTagCodec:

    def __init__(self, tag_mime_types: bool = False, normalize_storage_urls: bool = False):
        self.tag_mime_types = tag_mime_types
        self.normalize_storage_urls = normalize_storage_urls

    def _placeholder(self, index: int, url: str) -> Tuple[str, Optional[str]]:
        if self.tag_mime_types:
            mime_type = guess_mime_type(url)
            if mime_type:
                return f"<{mime_tag_name(mime_type)}_TAG_{index}/>", mime_type
        return f"<TAG_{index}/>", None

    def preprocess(self, texts: Sequence[str]) -> Tuple[List[str], TagMap]:
        """Replace every URL in ``texts`` with a placeholder.

        Returns the tagged texts (same order) and the tag map.
        """
        tag_map = TagMap()

        def tag(match: "re.Match[str]") -> str:
            url, tail = _split_trailing(match.group(0))
            if not url or url.endswith("://"):
                return match.group(0)
            if self.normalize_storage_urls:
                url = normalize_storage_url(url)
            placeholder, mime_type = self._placeholder(len(tag_map) + 1, url)
            tag_map.entries[placeholder] = url
            if mime_type:
                tag_map.mime_types[placeholder] = mime_type
            return placeholder + tail

        tagged = [URL_PATTERN.sub(tag, text) for text in texts]
        return tagged, tag_map

    def restore(
        self,
        text: str,
        tag_map: TagMap,
        on_unknown: Optional[UnknownTagHandler] = None,
    ) -> str:
        """Put the original URLs back. Unknown placeholders are left verbatim and reported."""
        for placeholder, url in tag_map.entries.items():
            text = re.sub(re.escape(placeholder), lambda _m, url=url: url, text)

        for leftover in TAG_PATTERN.findall(text):
            error = UnknownTagError(leftover)
            logger.warning("Unknown URL tag left in output: %s", leftover)
            if on_unknown is not None:
                on_unknown(error)
        return text

    def restore_structure(
        self,
        value: Any,
        tag_map: TagMap,
        on_unknown: Optional[UnknownTagHandler] = None,
    ) -> Any:
        """Restore every string in a JSON-like structure.

        Walks the original and restored structures together so that a
        ``gcsUri``/``fileUri`` whose original value was a MIME-typed tag gets
        the matching ``mimeType`` on its enclosing object.
        """
        if isinstance(value, str):
            return self.restore(value, tag_map, on_unknown)
        if isinstance(value, list):
            return [self.restore_structure(item, tag_map, on_unknown) for item in value]
        if not isinstance(value, dict):
            return value

        restored = {
            key: self.restore_structure(item, tag_map, on_unknown) for key, item in value.items()
        }
        for key in URI_KEYS:
            original = value.get(key)
            if isinstance(original, str) and original.strip() in tag_map.mime_types:
                restored["mimeType"] = tag_map.mime_types[original.strip()]
        return restored


_default_codec = UrlTagCodec()


def preprocess(texts: Sequence[str]) -> Tuple[List[str], TagMap]:
    return _default_codec.preprocess(texts)


def restore(text: str, tag_map: TagMap, on_unknown: Optional[UnknownTagHandler] = None) -> str:
    return _default_codec.restore(text, tag_map, on_unknown)
