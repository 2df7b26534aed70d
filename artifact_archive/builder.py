"""Directory walker and archive builder.

Walks a source tree in a stable order, compresses every file into a record,
then serializes ``{metadata, files}`` and compresses the document once more as
the archive envelope.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from .codecs import CODEC_ERRORS, get_codec
from .config import CompressionOptions
from .errors import (
    ArchiveWriteError,
    CompressionFailure,
    SourceNotFoundError,
    log_exception,
)
from .file_compressor import BuildState, FileCompressor
from .logging_utils import format_bytes
from .models import Archive, ArchiveMetadata, ArchiveRecord, compression_ratio
from .validator import ArchiveValidator, relative_archive_path

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = os.path.join(tempfile.gettempdir(), "artifact-archive-compressed")

ProgressCallback = Callable[[Dict[str, Any]], Any]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def archive_file_name(source_dir: str, moment: datetime, extension: str) -> str:
    """``<basename>_<timestamp>.<ext>`` with ``:`` and ``.`` in the timestamp replaced."""
    dir_name = os.path.basename(os.path.normpath(os.path.abspath(source_dir)))
    stamp = iso_timestamp(moment).replace(":", "-").replace(".", "-")
    return f"{dir_name}_{stamp}{extension}"


@dataclass
class BuildReport:
    """Outcome of one build."""

    archive_path: str
    metadata: ArchiveMetadata
    archive_size: int
    failures: List[CompressionFailure] = field(default_factory=list)


class ArchiveBuilder:
    """Builds archives from directory trees.

    Args:
        options: Default compression options for every build
        clock: Source of the current time (for timestamps and file names)
        log: Logger to report progress to
    """

    def __init__(
        self,
        options: Optional[CompressionOptions] = None,
        clock: Callable[[], datetime] = utc_now,
        log: Optional[logging.Logger] = None,
    ):
        self.options = options or CompressionOptions()
        self.clock = clock
        self.logger = log or logger

    def compress_directory(
        self,
        source_dir: str,
        output_dir: Optional[str] = None,
        options: Optional[CompressionOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        """Compress ``source_dir`` into a single archive file.

        Returns:
            Path of the written archive

        Raises:
            SourceNotFoundError: ``source_dir`` is missing or not a directory
            ArchiveWriteError: The archive could not be written
            CompressionFailure: A file failed and ``strict`` is set
            ArchiveValidationError: Post-build validation failed
        """
        return self.build(source_dir, output_dir, options, on_progress).archive_path

    def build(
        self,
        source_dir: str,
        output_dir: Optional[str] = None,
        options: Optional[CompressionOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BuildReport:
        """Like :meth:`compress_directory` but returns the full :class:`BuildReport`."""
        options = options or self.options
        self.logger.info("Starting compression of directory: %s", source_dir)

        source_dir = os.path.abspath(source_dir)
        self.validate_source_directory(source_dir)

        final_output_dir = output_dir or DEFAULT_OUTPUT_DIR
        self.ensure_output_directory(final_output_dir)

        files = self.get_all_files(source_dir)
        self.logger.info("Found %d files to compress", len(files))
        _notify(on_progress, {"phase": "scanning", "files_found": len(files)})

        records, failures = self.compress_files(files, source_dir, options, on_progress)
        if failures:
            self.logger.warning("%d of %d files could not be compressed", len(failures), len(files))

        moment = self.clock()
        metadata = self.create_metadata(records, source_dir, options, moment)

        _notify(on_progress, {"phase": "archiving", "file_count": metadata.file_count})
        archive_path, archive_size = self.create_final_archive(
            Archive(metadata=metadata, files=records), final_output_dir, source_dir, options, moment
        )

        if options.validate_after_compression:
            _notify(on_progress, {"phase": "validating", "archive": archive_path})
            ArchiveValidator(options.stream_chunk_size, self.logger).validate(
                archive_path, files, source_dir
            )

        self.logger.info("Directory compressed successfully: %s", archive_path)
        return BuildReport(archive_path, metadata, archive_size, failures)

    def validate_source_directory(self, source_dir: str) -> None:
        if not os.path.exists(source_dir):
            raise SourceNotFoundError(
                f"Source directory not found: {source_dir}", path=source_dir, reason="not_found"
            )
        if not os.path.isdir(source_dir):
            raise SourceNotFoundError(
                f"Source path is not a directory: {source_dir}", path=source_dir, reason="not_a_directory"
            )
        if not os.listdir(source_dir):
            self.logger.warning("Source directory is empty: %s", source_dir)

    def ensure_output_directory(self, output_dir: str) -> None:
        try:
            os.makedirs(output_dir, exist_ok=True)
        except OSError as exc:
            raise ArchiveWriteError(
                f"Failed to create output directory: {exc}", path=output_dir, reason="mkdir_failed"
            ) from exc
        self.logger.debug("Output directory ensured: %s", output_dir)

    def get_all_files(self, directory: str) -> List[str]:
        """Every regular file below ``directory``, sorted by path components.

        Symbolic links are not followed. Unreadable subdirectories are logged
        and skipped.
        """
        files: List[str] = []
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            self.logger.error("Error reading directory: %s (%s)", directory, exc)
            return files

        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                files.extend(self.get_all_files(entry.path))
            elif entry.is_file(follow_symlinks=False):
                files.append(entry.path)
        return files

    def compress_files(
        self,
        files: List[str],
        base_dir: str,
        options: CompressionOptions,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """Compress ``files`` in order, skipping the ones that fail.

        Returns:
            Tuple of (relative path -> record, list of failures)
        """
        compressor = FileCompressor(options, self.logger)
        state = BuildState()
        records: Dict[str, ArchiveRecord] = {}
        failures: List[CompressionFailure] = []

        for index, file_path in enumerate(files):
            _notify(on_progress, {
                "phase": "compressing",
                "current": index + 1,
                "total": len(files),
                "current_file": os.path.basename(file_path),
            })
            relative_path = relative_archive_path(file_path, base_dir)
            try:
                records[relative_path] = compressor.compress_file(file_path, relative_path, state)
            except CompressionFailure as exc:
                if options.strict:
                    raise
                log_exception(exc, self.logger, component="builder",
                              operation="compress_file", level=logging.WARNING)
                failures.append(exc)

        return records, failures

    def create_metadata(
        self,
        records: Dict[str, ArchiveRecord],
        source_dir: str,
        options: CompressionOptions,
        moment: datetime,
    ) -> ArchiveMetadata:
        total_original = sum(record.original_size for record in records.values())
        total_compressed = sum(record.compressed_size for record in records.values())
        return ArchiveMetadata(
            timestamp=iso_timestamp(moment),
            source_directory=os.path.basename(os.path.normpath(source_dir)),
            file_count=len(records),
            total_original_size=total_original,
            total_compressed_size=total_compressed,
            overall_compression_ratio=compression_ratio(total_compressed, total_original),
            algorithm=options.algorithm,
        )

    def create_final_archive(
        self,
        archive: Archive,
        output_dir: str,
        source_dir: str,
        options: CompressionOptions,
        moment: datetime,
    ):
        """Serialize, compress and write the envelope.

        Returns:
            Tuple of (archive path, archive size in bytes)
        """
        codec = get_codec(options.algorithm)
        try:
            envelope = codec.compress(archive.to_json().encode("utf-8"), options.compression_level)
        except CODEC_ERRORS as exc:
            raise ArchiveWriteError(
                f"Failed to compress archive document: {exc}", reason="codec_error"
            ) from exc

        output_file = os.path.join(output_dir, archive_file_name(source_dir, moment, codec.extension))
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".partial-", dir=output_dir)
            with os.fdopen(fd, "wb") as f:
                f.write(envelope)
            os.replace(tmp_path, output_file)
        except OSError as exc:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise ArchiveWriteError(
                f"Failed to create final archive: {exc}", path=output_file, reason="write_failed"
            ) from exc

        self.log_compression_stats(archive.metadata, output_file, len(envelope))
        return output_file, len(envelope)

    def log_compression_stats(self, metadata: ArchiveMetadata, output_file: str, final_size: int) -> None:
        self.logger.info("Compression Statistics:")
        self.logger.info("  Files: %d", metadata.file_count)
        self.logger.info("  Original Size: %s", format_bytes(metadata.total_original_size))
        self.logger.info("  Compressed Size: %s", format_bytes(metadata.total_compressed_size))
        self.logger.info("  Final Archive Size: %s", format_bytes(final_size))
        self.logger.info("  Compression Ratio: %.2f%%", metadata.overall_compression_ratio)
        self.logger.info("  Output File: %s", output_file)


def _notify(callback: Optional[ProgressCallback], update: Dict[str, Any]) -> None:
    if callback is None:
        return
    try:
        callback(update)
    except Exception as exc:
        logger.debug("Progress callback failed: %s", exc)


def compress_directory(
    source_dir: str,
    output_dir: Optional[str] = None,
    options: Optional[CompressionOptions] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> str:
    """Compress ``source_dir`` and return the archive path."""
    return ArchiveBuilder(options).compress_directory(source_dir, output_dir, on_progress=on_progress)


def ultra_compress_directory(source_dir: str, output_dir: Optional[str] = None) -> str:
    """Maximum-ratio preset: lzma level 9 with every optimization, no validation."""
    options = CompressionOptions(
        compression_level=9,
        deduplication=True,
        delta_compression=True,
        validate_after_compression=False,
    )
    return ArchiveBuilder(options).compress_directory(source_dir, output_dir)
