"""Pydantic models describing the archive document."""

from __future__ import annotations

import base64
import binascii
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator

from .codecs import Algorithm
from .config import FORMAT_VERSION, TOOL_NAME
from .errors import ExtractionError


class RecordKind(str, Enum):
    """How a single file is stored in the archive."""

    STANDARD = "standard"
    DUPLICATE = "duplicate"
    DICTIONARY = "dictionary"


class ArchiveRecord(BaseModel):
    """One file of the source tree."""

    type: RecordKind
    original_hash: str
    original_size: int = Field(ge=0)
    compressed_size: int = Field(default=0, ge=0)
    compression_ratio: Optional[float] = None
    algorithm: Algorithm = Algorithm.LZMA
    # base64 of the compressed payload (standard and dictionary records)
    content: Optional[str] = None
    # canonical path of the first file with identical bytes (duplicate records)
    reference_file: Optional[str] = None
    # text prepended before compression (dictionary records)
    dictionary: Optional[str] = None
    # True when the payload holds normalized text instead of the original bytes
    normalized: bool = False
    # hash of the bytes the payload restores to, when it differs from original_hash
    content_hash: Optional[str] = None

    @model_validator(mode="after")
    def _check_kind(self) -> "ArchiveRecord":
        if self.type == RecordKind.DUPLICATE:
            if not self.reference_file:
                raise ValueError("duplicate record requires reference_file")
            if self.content is not None:
                raise ValueError("duplicate record must not carry content")
        else:
            if self.content is None:
                raise ValueError(f"{self.type.value} record requires content")
            if self.type == RecordKind.DICTIONARY and self.dictionary is None:
                raise ValueError("dictionary record requires dictionary text")
        return self

    @classmethod
    def duplicate_of(cls, reference_file: str, original_hash: str, original_size: int) -> "ArchiveRecord":
        return cls(
            type=RecordKind.DUPLICATE,
            reference_file=reference_file,
            original_hash=original_hash,
            original_size=original_size,
        )

    @property
    def is_duplicate(self) -> bool:
        return self.type == RecordKind.DUPLICATE

    @property
    def expected_hash(self) -> str:
        """Hash the restored payload must match."""
        return self.content_hash or self.original_hash

    @property
    def payload(self) -> bytes:
        """Decoded compressed payload."""
        if self.content is None:
            return b""
        try:
            return base64.b64decode(self.content, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ExtractionError(
                f"Corrupt payload encoding: {exc}", reason="bad_encoding"
            ) from exc

    @property
    def dictionary_prefix(self) -> bytes:
        """Bytes stripped from the front of a decompressed dictionary payload."""
        if self.type != RecordKind.DICTIONARY or self.dictionary is None:
            return b""
        return self.dictionary.encode("utf-8") + b"\n"


def encode_payload(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def compression_ratio(compressed_size: int, original_size: int) -> float:
    """Compressed size as a percentage of the original, two decimals."""
    if original_size <= 0:
        return 0.0
    return round(compressed_size / original_size * 100, 2)


class ArchiveMetadata(BaseModel):
    """Aggregate numbers, recomputed on every build."""

    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    source_directory: str
    file_count: int = Field(ge=0)
    total_original_size: int = Field(ge=0)
    total_compressed_size: int = Field(ge=0)
    overall_compression_ratio: float = 0.0
    algorithm: Algorithm = Algorithm.LZMA
    format_version: str = FORMAT_VERSION
    tool: str = TOOL_NAME


class Archive(BaseModel):
    """The persisted unit: metadata plus relative path -> record."""

    metadata: ArchiveMetadata
    files: Dict[str, ArchiveRecord] = Field(default_factory=dict)

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def from_json(cls, data) -> "Archive":
        return cls.model_validate_json(data)

    def resolve_reference(self, relative_path: str) -> str:
        """Follow duplicate references from ``relative_path`` to a stored record.

        Raises:
            ExtractionError: If a reference is missing or the chain loops.
        """
        seen = set()
        current = relative_path
        while True:
            record = self.files.get(current)
            if record is None:
                raise ExtractionError(
                    f"Unresolved duplicate reference: {relative_path} -> {current}",
                    path=relative_path,
                    reason="missing_reference",
                )
            if not record.is_duplicate:
                return current
            if current in seen:
                raise ExtractionError(
                    f"Circular duplicate reference at {current}",
                    path=relative_path,
                    reason="reference_cycle",
                )
            seen.add(current)
            current = record.reference_file
