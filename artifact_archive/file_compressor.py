"""Per-file compression.

Turns one file into an :class:`ArchiveRecord`: standard, duplicate reference
or dictionary-enhanced. Every stored payload is decompressed and hashed again
before the record is accepted.
"""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from .codecs import CODEC_ERRORS, Codec, get_codec
from .config import CompressionOptions
from .dictionary import DictionaryOptimizer
from .errors import CompressionFailure
from .hashing import calculate_hash, hashes_equal
from .models import ArchiveRecord, RecordKind, compression_ratio, encode_payload
from .text import apply_text_optimizations, is_text_file

logger = logging.getLogger(__name__)


@dataclass
class BuildState:
    """Mutable state shared by all files of a single build."""

    # content hash -> relative path of the first file stored with that content
    file_hashes: Dict[str, str] = field(default_factory=dict)
    optimizer: DictionaryOptimizer = field(default_factory=DictionaryOptimizer)


def iter_restored(record: ArchiveRecord, chunk_size: int) -> Iterator[bytes]:
    """Yield the restored bytes of a stored record, dictionary prefix removed.

    Raises:
        ValueError: If a dictionary payload does not start with its prefix.
        Any codec error for corrupt payloads.
    """
    codec = get_codec(record.algorithm)
    prefix = record.dictionary_prefix
    pending = b""
    for chunk in codec.iter_decompress(record.payload, chunk_size):
        if prefix:
            pending += chunk
            if len(pending) < len(prefix):
                continue
            if pending[:len(prefix)] != prefix:
                raise ValueError("dictionary prefix mismatch")
            chunk = pending[len(prefix):]
            prefix = b""
            pending = b""
        if chunk:
            yield chunk
    if prefix:
        raise ValueError("payload shorter than its dictionary prefix")


class FileCompressor:
    """Compresses files one at a time for an archive build."""

    def __init__(self, options: Optional[CompressionOptions] = None, log: Optional[logging.Logger] = None):
        self.options = options or CompressionOptions()
        self.logger = log or logger
        self.codec: Codec = get_codec(self.options.algorithm)

    def compress_file(self, path: str, relative_path: str, state: BuildState) -> ArchiveRecord:
        """Compress a single file into a record.

        Args:
            path: Absolute path of the file on disk
            relative_path: Archive key for the file (forward slashes)
            state: Build-scoped dedup index and dictionary groups

        Returns:
            The verified record

        Raises:
            CompressionFailure: The file is over ``max_file_size``, or reading,
                compression or verification failed.
        """
        try:
            size = os.path.getsize(path)
        except OSError as exc:
            raise CompressionFailure(
                f"Error reading file {path}: {exc}", path=relative_path, reason="read_error"
            ) from exc

        if size > self.options.max_file_size:
            raise CompressionFailure(
                f"File {relative_path} exceeds the maximum size ({size} > {self.options.max_file_size} bytes)",
                path=relative_path,
                reason="too_large",
            )

        if size > self.options.large_file_threshold:
            return self._compress_large_file(path, relative_path, size, state)

        try:
            with open(path, "rb") as f:
                content = f.read()
        except OSError as exc:
            raise CompressionFailure(
                f"Error reading file {path}: {exc}", path=relative_path, reason="read_error"
            ) from exc

        original_hash = calculate_hash(content)
        duplicate = self._check_duplicate(relative_path, original_hash, len(content), state)
        if duplicate is not None:
            return duplicate

        text = None
        if self.options.delta_compression and is_text_file(path):
            try:
                text = content.decode("utf-8")
            except UnicodeDecodeError:
                self.logger.debug("Not valid UTF-8, compressing as binary: %s", relative_path)

        data = content
        content_hash = None
        if text is not None and self.options.lossy_text_normalization:
            optimized = apply_text_optimizations(text)
            if optimized != text:
                text = optimized
                data = optimized.encode("utf-8")
                content_hash = calculate_hash(data)

        level = self.options.compression_level
        try:
            compressed = self.codec.compress(data, level)
        except CODEC_ERRORS as exc:
            raise CompressionFailure(
                f"Error compressing file {path}: {exc}", path=relative_path, reason="codec_error"
            ) from exc

        kind = RecordKind.STANDARD
        dictionary = None
        if text is not None:
            result = state.optimizer.try_compress(text, relative_path, self.codec, level)
            if result is not None and len(result.compressed) < len(compressed):
                kind = RecordKind.DICTIONARY
                compressed = result.compressed
                dictionary = result.dictionary

        record = ArchiveRecord(
            type=kind,
            content=encode_payload(compressed),
            original_hash=original_hash,
            original_size=len(content),
            compressed_size=len(compressed),
            compression_ratio=compression_ratio(len(compressed), len(content)),
            algorithm=self.codec.algorithm,
            dictionary=dictionary,
            normalized=content_hash is not None,
            content_hash=content_hash,
        )
        self.validate_record(record, relative_path)
        self._register(relative_path, original_hash, state)

        self.logger.debug(
            "Compressed file: %s (%s%% of original) using %s%s",
            relative_path,
            record.compression_ratio,
            self.codec.algorithm.value,
            " with dictionary" if kind == RecordKind.DICTIONARY else "",
        )
        return record

    def _compress_large_file(self, path: str, relative_path: str, size: int, state: BuildState) -> ArchiveRecord:
        """Hash, then compress, a file through bounded reads."""
        chunk_size = self.options.stream_chunk_size
        self.logger.info("Streaming large file %s (%d bytes)", relative_path, size)
        try:
            digest = hashlib.sha256()
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(chunk_size), b""):
                    digest.update(chunk)
            original_hash = digest.hexdigest()

            duplicate = self._check_duplicate(relative_path, original_hash, size, state)
            if duplicate is not None:
                return duplicate

            stream = self.codec.compressor(self.options.compression_level)
            parts = []
            original_size = 0
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(chunk_size), b""):
                    original_size += len(chunk)
                    parts.append(stream.compress(chunk))
            parts.append(stream.flush())
        except OSError as exc:
            raise CompressionFailure(
                f"Error reading file {path}: {exc}", path=relative_path, reason="read_error"
            ) from exc
        except CODEC_ERRORS as exc:
            raise CompressionFailure(
                f"Error compressing file {path}: {exc}", path=relative_path, reason="codec_error"
            ) from exc

        compressed = b"".join(parts)
        record = ArchiveRecord(
            type=RecordKind.STANDARD,
            content=encode_payload(compressed),
            original_hash=original_hash,
            original_size=original_size,
            compressed_size=len(compressed),
            compression_ratio=compression_ratio(len(compressed), original_size),
            algorithm=self.codec.algorithm,
        )
        self.validate_record(record, relative_path)
        self._register(relative_path, original_hash, state)
        return record

    def _check_duplicate(
        self, relative_path: str, original_hash: str, size: int, state: BuildState
    ) -> Optional[ArchiveRecord]:
        if not self.options.deduplication:
            return None
        reference = state.file_hashes.get(original_hash)
        if reference is None:
            return None
        self.logger.debug("Deduplicated file: %s -> %s", relative_path, reference)
        return ArchiveRecord.duplicate_of(reference, original_hash, size)

    def _register(self, relative_path: str, original_hash: str, state: BuildState) -> None:
        # Only verified records enter the index, so a duplicate can never
        # point at a file that was skipped.
        if self.options.deduplication:
            state.file_hashes.setdefault(original_hash, relative_path)

    def validate_record(self, record: ArchiveRecord, relative_path: str) -> None:
        """Round-trip a stored record and compare hashes.

        Raises:
            CompressionFailure: The payload does not restore to the expected bytes.
        """
        if record.is_duplicate:
            return
        try:
            digest = hashlib.sha256()
            for chunk in iter_restored(record, self.options.stream_chunk_size):
                digest.update(chunk)
        except (ValueError,) + CODEC_ERRORS as exc:
            raise CompressionFailure(
                f"Compression validation failed for {relative_path}: {exc}",
                path=relative_path,
                reason="validation_error",
            ) from exc
        if not hashes_equal(digest.hexdigest(), record.expected_hash):
            raise CompressionFailure(
                f"Compression validation failed for {relative_path}: hash mismatch after compression",
                path=relative_path,
                reason="hash_mismatch",
            )
