"""
Nielsen Bridge — Metadata Builder

Fluent accumulator for a Nielsen DCR metadata record.

  1. Defaults (user-provided content metadata) are applied first and always
     win over anything derived from the player or an ad.
  2. `with_content()` / `with_ad()` fill the gaps from the player source or
     the ad descriptor.
  3. `build()` validates the seven required fields, then enforces the
     2048-byte ceiling on the serialized query string by dropping optional
     fields from least to most important.

Field reference: https://engineeringportal.nielsen.com/wiki/France_SDK_Metadata
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

from ..core.config import tracking_cfg
from ..core.errors import MetadataSizeError, MissingFieldError
from ..core.models import Ad, NielsenMetadata

logger = logging.getLogger("nielsen.metadata")

REQUIRED_FIELDS: Tuple[str, ...] = (
    "type",
    "assetId",
    "program",
    "title",
    "length",
    "islive",
    "subbrand",
)

CUSTOM_FIELDS: Tuple[str, ...] = tuple(f"nol_p{i}" for i in range(20))

CLI_MD_VALUES = frozenset({"LIVE", "TIMESHIFTING", "TVOD", "VOD", "SVOD", "AOD"})

# Trim order: least important first, classifiers last
OPTIONAL_FIELDS_PRIORITY: Tuple[str, ...] = (
    *reversed(CUSTOM_FIELDS),
    "cli_ch",
    "cli_md",
)

# Reserved by the Nielsen wire protocol
_RESERVED_CHARS = ("|", "~")

# Characters encodeURIComponent leaves untouched
_URI_SAFE = "-_.!~*'()"


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def serialize_metadata(metadata: Dict[str, Any]) -> str:
    """Sorted `key=value` pairs, percent-encoded, joined with `&`. None is skipped."""
    return "&".join(
        f"{quote(str(k), safe=_URI_SAFE)}={quote(_stringify(v), safe=_URI_SAFE)}"
        for k, v in sorted(metadata.items())
        if v is not None
    )


def _utf8_length(text: str) -> int:
    total = 0
    i = 0
    n = len(text)
    while i < n:
        code = ord(text[i])
        if code < 0x80:
            total += 1
        elif code < 0x800:
            total += 2
        elif code < 0xD800 or 0xE000 <= code < 0x10000:
            total += 3
        else:
            total += 4
            # high + low surrogate pair counts once
            if 0xD800 <= code < 0xDC00 and i + 1 < n and 0xDC00 <= ord(text[i + 1]) < 0xE000:
                i += 1
        i += 1
    return total


def byte_size(text: str) -> int:
    """UTF-8 byte length, counted by hand when the text holds lone surrogates."""
    try:
        return len(text.encode("utf-8"))
    except UnicodeEncodeError:
        return _utf8_length(text)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class MetadataBuilder:
    """
    Usage:
        metadata = (
            MetadataBuilder({"subbrand": "c05", "assetId": "vid-1"})
            .with_content(player)
            .with_cli_md("VOD")
            .build()
        )
    """

    def __init__(self, defaults: Optional[NielsenMetadata] = None) -> None:
        self._metadata: NielsenMetadata = dict(defaults or {})

    def with_content(self, player: Any) -> "MetadataBuilder":
        """Derive content fields from the player's current source."""
        source = player.get_source()
        live = player.is_live()

        self._metadata["type"] = "content"

        if not self._metadata.get("title") and source is not None and source.title:
            self._metadata["title"] = source.title

        if not self._metadata.get("program") and source is not None:
            if source.dash:
                self._metadata["program"] = source.dash
            elif source.hls:
                self._metadata["program"] = source.hls
            elif source.title:
                self._metadata["program"] = self._metadata.get("title")

        self._metadata["length"] = tracking_cfg.live_stream_length if live else player.get_duration()
        self._metadata["islive"] = "y" if live else "n"
        return self

    def with_ad(self, ad: Ad) -> "MetadataBuilder":
        """Derive ad fields from an ad descriptor."""
        self._metadata["type"] = "ad"
        self._metadata["assetId"] = ad.id or str(uuid.uuid4())

        if ad.duration:
            self._metadata["length"] = ad.duration

        data = ad.data
        title = data.ad_title if data is not None else None
        description = data.ad_description if data is not None else None

        self._metadata["title"] = title or ad.media_file_url or "Untitled Ad"
        self._metadata["program"] = description or ad.media_file_url or "Unknown Program"
        self._metadata["islive"] = "n"
        return self

    def with_asset_id(self, asset_id: str) -> "MetadataBuilder":
        self._metadata["assetId"] = asset_id
        return self

    def with_type(self, type_: str) -> "MetadataBuilder":
        self._metadata["type"] = type_
        return self

    def with_is_live(self, islive: str) -> "MetadataBuilder":
        self._metadata["islive"] = islive
        return self

    def with_length(self, length: float) -> "MetadataBuilder":
        self._metadata["length"] = length
        return self

    def with_program(self, program: str) -> "MetadataBuilder":
        self._metadata["program"] = program
        return self

    def with_title(self, title: str) -> "MetadataBuilder":
        self._metadata["title"] = title
        return self

    def with_cli_md(self, cli_md: str) -> "MetadataBuilder":
        if cli_md not in CLI_MD_VALUES:
            logger.warning(f"Unexpected cli_md value '{cli_md}'")
        self._metadata["cli_md"] = cli_md
        return self

    def with_cli_ch(self, cli_ch: str) -> "MetadataBuilder":
        self._metadata["cli_ch"] = cli_ch
        return self

    def with_custom_field(self, key: str, value: str) -> "MetadataBuilder":
        if key not in CUSTOM_FIELDS:
            raise ValueError(f"'{key}' is not a Nielsen custom field (nol_p0 … nol_p19)")
        if any(ch in value for ch in _RESERVED_CHARS):
            logger.warning(f"Nielsen custom field '{key}' contains invalid characters. Skipping.")
            return self
        self._metadata[key] = value
        return self

    def build(self) -> NielsenMetadata:
        """
        Return the finished record.

        Raises MissingFieldError for the first absent required field and
        MetadataSizeError when the record cannot be trimmed under the limit.
        """
        for key in REQUIRED_FIELDS:
            if self._metadata.get(key) is None:
                raise MissingFieldError(key)

        limit = tracking_cfg.max_metadata_bytes
        data = dict(self._metadata)

        size = byte_size(serialize_metadata(data))
        if size <= limit:
            return data

        logger.info(f"Metadata is {size} bytes (limit {limit}), trimming optional fields")
        for key in OPTIONAL_FIELDS_PRIORITY:
            if data.pop(key, None) is None:
                continue
            size = byte_size(serialize_metadata(data))
            logger.debug(f"Dropped '{key}' → {size} bytes")
            if size <= limit:
                return data

        raise MetadataSizeError(limit, size)
