"""Post-build archive validation."""

from __future__ import annotations

import logging
import os
from typing import Iterable, Optional

from pydantic import ValidationError

from .codecs import CODEC_ERRORS, detect_codec
from .errors import ArchiveValidationError, ExtractionError
from .hashing import hash_file, hashes_equal
from .models import Archive

logger = logging.getLogger(__name__)


def relative_archive_path(file_path: str, base_dir: str) -> str:
    """Archive key for ``file_path``: relative to ``base_dir``, forward slashes."""
    return os.path.relpath(file_path, base_dir).replace(os.sep, "/")


def read_archive(archive_path: str, error_cls=ExtractionError) -> Archive:
    """Read, decompress and parse an archive envelope.

    Args:
        archive_path: Path of the archive file
        error_cls: Exception type raised on failure

    Raises:
        error_cls: The file is unreadable, corrupt or not an archive.
    """
    try:
        with open(archive_path, "rb") as f:
            compressed = f.read()
    except OSError as exc:
        raise error_cls(
            f"Cannot read archive {archive_path}: {exc}", path=archive_path, reason="read_error"
        ) from exc

    codec = detect_codec(compressed, archive_path)
    try:
        document = codec.decompress(compressed)
    except CODEC_ERRORS as exc:
        raise error_cls(
            f"Cannot decompress archive {archive_path}: {exc}",
            path=archive_path,
            reason="corrupt_envelope",
        ) from exc

    try:
        return Archive.from_json(document)
    except ValidationError as exc:
        raise error_cls(
            f"Invalid archive document in {archive_path}: {exc}",
            path=archive_path,
            reason="invalid_document",
        ) from exc


class ArchiveValidator:
    """Checks that an archive remembers the right original hash for every file.

    The check is made against the original files on disk, so it verifies the
    bookkeeping of the build rather than recovering content.
    """

    def __init__(self, chunk_size: int = 1024 * 1024, log: Optional[logging.Logger] = None):
        self.chunk_size = chunk_size
        self.logger = log or logger

    def validate(self, archive_path: str, original_files: Iterable[str], source_dir: str) -> bool:
        """Validate ``archive_path`` against the files it was built from.

        Args:
            archive_path: Path of the archive to validate
            original_files: Absolute paths of the files under ``source_dir``
            source_dir: Root the archive was built from

        Returns:
            True when every check passes

        Raises:
            ArchiveValidationError: Count mismatch, missing record or hash mismatch.
        """
        self.logger.info("Validating compressed archive: %s", archive_path)
        original_files = list(original_files)
        archive = read_archive(archive_path, error_cls=ArchiveValidationError)

        if len(archive.files) != len(original_files):
            raise ArchiveValidationError(
                f"File count mismatch: expected {len(original_files)}, got {len(archive.files)}",
                path=archive_path,
                reason="count_mismatch",
            )

        validated = 0
        for original_path in original_files:
            relative_path = relative_archive_path(original_path, source_dir)
            record = archive.files.get(relative_path)
            if record is None:
                raise ArchiveValidationError(
                    f"File missing from archive: {relative_path}",
                    path=relative_path,
                    reason="missing_record",
                )

            try:
                actual_hash = hash_file(original_path, self.chunk_size)
            except OSError as exc:
                raise ArchiveValidationError(
                    f"Cannot read original file {relative_path}: {exc}",
                    path=relative_path,
                    reason="read_error",
                ) from exc

            if not hashes_equal(actual_hash, record.original_hash):
                raise ArchiveValidationError(
                    f"Hash mismatch for file: {relative_path}",
                    path=relative_path,
                    reason="hash_mismatch",
                )
            validated += 1

        self.logger.info("Archive validation successful: %d files validated", validated)
        return True


def validate_archive(archive_path: str, original_files: Iterable[str], source_dir: str) -> bool:
    return ArchiveValidator().validate(archive_path, original_files, source_dir)
