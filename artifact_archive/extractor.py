"""Archive extraction: the inverse of the builder."""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
from typing import List, Optional

from .codecs import CODEC_ERRORS
from .errors import ExtractionError
from .file_compressor import iter_restored
from .hashing import hash_file, hashes_equal
from .models import Archive, ArchiveRecord
from .validator import read_archive

logger = logging.getLogger(__name__)


def extraction_order(archive: Archive) -> List[str]:
    """Order paths so every duplicate comes after the record it resolves to.

    Stored records keep document order; duplicates follow, each resolved to
    its stored target.

    Raises:
        ExtractionError: A duplicate reference is missing or circular.
    """
    stored = [path for path, record in archive.files.items() if not record.is_duplicate]
    duplicates = [path for path, record in archive.files.items() if record.is_duplicate]
    for path in duplicates:
        archive.resolve_reference(path)
    return stored + duplicates


class ArchiveExtractor:
    """Rebuilds the original tree from an archive file."""

    def __init__(self, chunk_size: int = 1024 * 1024, log: Optional[logging.Logger] = None):
        self.chunk_size = chunk_size
        self.logger = log or logger

    def decompress_archive(self, archive_path: str, output_dir: str) -> str:
        """Extract every file of ``archive_path`` below ``output_dir``.

        Returns:
            ``output_dir``

        Raises:
            ExtractionError: The archive is unreadable, a reference cannot be
                resolved, or an extracted file does not match its hash.
        """
        self.logger.info("Decompressing archive: %s", archive_path)
        archive = read_archive(archive_path)

        try:
            os.makedirs(output_dir, exist_ok=True)
        except OSError as exc:
            raise ExtractionError(
                f"Cannot create output directory {output_dir}: {exc}",
                path=output_dir,
                reason="mkdir_failed",
            ) from exc

        root = os.path.realpath(output_dir)
        extracted = 0
        for relative_path in extraction_order(archive):
            record = archive.files[relative_path]
            target = self._target_path(root, relative_path)
            try:
                os.makedirs(os.path.dirname(target), exist_ok=True)
            except OSError as exc:
                raise ExtractionError(
                    f"Cannot create directory for {relative_path}: {exc}",
                    path=relative_path,
                    reason="mkdir_failed",
                ) from exc

            if record.is_duplicate:
                self._copy_duplicate(archive, root, relative_path, record, target)
            else:
                self._write_stored(relative_path, record, target)
            extracted += 1

        self.logger.info("Successfully extracted %d files to: %s", extracted, output_dir)
        return output_dir

    def _target_path(self, root: str, relative_path: str) -> str:
        target = os.path.realpath(os.path.join(root, *relative_path.split("/")))
        if os.path.isabs(relative_path) or os.path.commonpath([root, target]) != root:
            raise ExtractionError(
                f"Refusing to extract outside the output directory: {relative_path}",
                path=relative_path,
                reason="unsafe_path",
            )
        return target

    def _write_stored(self, relative_path: str, record: ArchiveRecord, target: str) -> None:
        digest = hashlib.sha256()
        try:
            with open(target, "wb") as f:
                for chunk in iter_restored(record, self.chunk_size):
                    digest.update(chunk)
                    f.write(chunk)
        except ExtractionError as exc:
            exc.path = relative_path
            exc.context.path = relative_path
            raise
        except (ValueError,) + CODEC_ERRORS as exc:
            raise ExtractionError(
                f"Cannot decompress {relative_path}: {exc}",
                path=relative_path,
                reason="corrupt_payload",
            ) from exc
        except OSError as exc:
            raise ExtractionError(
                f"Cannot write {relative_path}: {exc}", path=relative_path, reason="write_failed"
            ) from exc

        if not hashes_equal(digest.hexdigest(), record.expected_hash):
            raise ExtractionError(
                f"Extraction validation failed for: {relative_path}",
                path=relative_path,
                reason="hash_mismatch",
            )

    def _copy_duplicate(
        self, archive: Archive, root: str, relative_path: str, record: ArchiveRecord, target: str
    ) -> None:
        source_path = archive.resolve_reference(relative_path)
        source = self._target_path(root, source_path)
        if not os.path.isfile(source):
            raise ExtractionError(
                f"Reference file not yet processed: {record.reference_file}",
                path=relative_path,
                reason="missing_reference",
            )
        try:
            shutil.copyfile(source, target)
            actual_hash = hash_file(target, self.chunk_size)
        except OSError as exc:
            raise ExtractionError(
                f"Cannot write {relative_path}: {exc}", path=relative_path, reason="write_failed"
            ) from exc

        # the copy restores whatever the stored record restores to
        expected = archive.files[source_path].expected_hash
        if not hashes_equal(actual_hash, expected):
            raise ExtractionError(
                f"Extraction validation failed for: {relative_path}",
                path=relative_path,
                reason="hash_mismatch",
            )


def decompress_archive(archive_path: str, output_dir: str) -> str:
    """Extract ``archive_path`` into ``output_dir`` and return ``output_dir``."""
    return ArchiveExtractor().decompress_archive(archive_path, output_dir)
