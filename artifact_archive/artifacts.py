"""Packaging of test artifact files (e.g. ``bbOut.json``) for resimulation."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .builder import ArchiveBuilder
from .config import ARTIFACT_FILE_NAME, ARTIFACT_PARSE_LIMIT, CompressionOptions
from .errors import ArchiveError, ArtifactError, log_exception
from .logging_utils import format_bytes

logger = logging.getLogger(__name__)

DEFAULT_ARTIFACTS_DIR = os.path.join(tempfile.gettempdir(), "artifact-archive-artifacts")

# Searched, in order, when the file is not in the working directory itself
COMMON_ARTIFACT_DIRS = ("test", "tests", "out", "artifacts", "build")

# Bytes inspected when a file is too large to parse
_SNIFF_SIZE = 4096


@dataclass
class ArtifactBundle:
    """Outcome of packaging an artifacts file.

    ``compressed_file_path`` is None when nothing was packaged; ``message``
    then says why.
    """

    compressed_file_path: Optional[str]
    metadata: Dict[str, Any] = field(default_factory=dict)
    success: bool = True
    message: Optional[str] = None


def compress_test_artifacts(
    artifacts_file: str,
    output_dir: Optional[str] = None,
    options: Optional[CompressionOptions] = None,
    status: str = "success",
    message: str = "Test artifacts processed",
    parse_limit: int = ARTIFACT_PARSE_LIMIT,
    builder: Optional[ArchiveBuilder] = None,
) -> ArtifactBundle:
    """Compress a single artifacts file into an archive.

    The file is staged alone in a temporary directory which is removed
    whether or not compression succeeds. Content is checked first with
    :func:`check_file_content`.

    Raises:
        ArtifactError: The file is missing, empty, not a JSON object or
            array, or could not be compressed.
    """
    logger.info("Compressing test artifacts from: %s", artifacts_file)
    try:
        original_size = os.path.getsize(artifacts_file)
    except OSError as exc:
        raise ArtifactError(
            f"Artifacts file not readable: {artifacts_file}: {exc}",
            path=artifacts_file,
            reason="not_found",
        ) from exc
    logger.info("Processing file of size: %s", format_bytes(original_size))

    check_file_content(artifacts_file, parse_limit)

    builder = builder or ArchiveBuilder(options)
    final_output_dir = output_dir or DEFAULT_ARTIFACTS_DIR

    with tempfile.TemporaryDirectory(prefix="artifact-staging-") as staging_dir:
        staged = os.path.join(staging_dir, os.path.basename(artifacts_file))
        try:
            shutil.copyfile(artifacts_file, staged)
            report = builder.build(staging_dir, final_output_dir, options)
        except OSError as exc:
            raise ArtifactError(
                f"Failed to stage artifacts file: {exc}", path=artifacts_file, reason="staging_failed"
            ) from exc
        except ArchiveError as exc:
            raise ArtifactError(
                f"Compression failed: {exc}", path=artifacts_file, reason=exc.reason
            ) from exc

    if report.metadata.file_count != 1:
        raise ArtifactError(
            f"Artifacts file could not be compressed: {artifacts_file}",
            path=artifacts_file,
            reason="compression_failed",
        )

    metadata = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source_file": artifacts_file,
        "status": status,
        "message": message,
        "file_name": os.path.basename(artifacts_file),
        "compressed_file_path": report.archive_path,
        "original_size": original_size,
        "original_size_formatted": format_bytes(original_size),
        "compressed_size": report.archive_size,
        "compressed_size_formatted": format_bytes(report.archive_size),
        "file_count": report.metadata.file_count,
        "compression_ratio": report.metadata.overall_compression_ratio,
    }
    logger.info(
        "Test artifacts compressed successfully: %s (original: %s)",
        metadata["compressed_size_formatted"],
        metadata["original_size_formatted"],
    )
    return ArtifactBundle(report.archive_path, metadata, message=message)


def find_test_artifacts_file(working_dir: str, file_name: str = ARTIFACT_FILE_NAME) -> Optional[str]:
    """Locate ``file_name`` in ``working_dir`` or one of its common output folders.

    The working directory itself is searched first, then each existing entry
    of :data:`COMMON_ARTIFACT_DIRS` (recursively, in that order).

    Returns:
        Path of the first match, or None
    """
    try:
        with os.scandir(working_dir) as it:
            for entry in it:
                if entry.name == file_name and entry.is_file():
                    logger.debug("Found test artifacts file: %s", entry.path)
                    return entry.path
    except OSError as exc:
        logger.error("Error searching for %s in %s: %s", file_name, working_dir, exc)
        return None

    for sub_dir in COMMON_ARTIFACT_DIRS:
        candidate_dir = os.path.join(working_dir, sub_dir)
        if os.path.isdir(candidate_dir):
            found = find_test_artifacts_file(candidate_dir, file_name)
            if found:
                return found
    return None


def check_file_content(path: str, parse_limit: int = ARTIFACT_PARSE_LIMIT) -> None:
    """Make sure ``path`` holds a JSON object or array.

    Files up to ``parse_limit`` bytes are parsed; larger ones only have to
    start like one.

    Raises:
        ArtifactError: The file is empty, unreadable or not a JSON document.
    """
    try:
        size = os.path.getsize(path)
        if size == 0:
            raise ArtifactError(f"Artifacts file is empty: {path}", path=path, reason="empty")

        if size > parse_limit:
            logger.info("Large file detected (%s), skipping JSON parsing", format_bytes(size))
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                head = f.read(_SNIFF_SIZE).lstrip()
            if not head.startswith(("{", "[")):
                raise ArtifactError(
                    f"Artifacts file does not start with a JSON object or array: {path}",
                    path=path,
                    reason="invalid_content",
                )
            return

        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ArtifactError(
            f"Invalid JSON in artifacts file: {exc}", path=path, reason="invalid_json"
        ) from exc
    except OSError as exc:
        raise ArtifactError(
            f"Artifacts file not readable: {path}: {exc}", path=path, reason="read_error"
        ) from exc

    if not isinstance(document, (dict, list)):
        raise ArtifactError(
            f"Artifacts file holds no test data (a JSON {type(document).__name__}): {path}",
            path=path,
            reason="invalid_content",
        )


def validate_file_content(path: str, parse_limit: int = ARTIFACT_PARSE_LIMIT) -> bool:
    """Return True when ``path`` passes :func:`check_file_content`."""
    try:
        check_file_content(path, parse_limit)
    except ArtifactError as exc:
        logger.debug("Artifacts file rejected: %s", exc)
        return False
    return True


def process_test_artifacts(
    working_dir: str,
    file_name: str = ARTIFACT_FILE_NAME,
    output_dir: Optional[str] = None,
    options: Optional[CompressionOptions] = None,
    status: str = "success",
    message: str = "Test artifacts processed",
    parse_limit: int = ARTIFACT_PARSE_LIMIT,
    builder: Optional[ArchiveBuilder] = None,
) -> ArtifactBundle:
    """Find, check and compress the test artifacts of a CI run.

    A missing, empty or unusable artifacts file is not an error for the run:
    the returned bundle has ``success=False`` and a message saying why.
    """
    logger.info("Processing test resimulation artifacts in %s", working_dir)
    artifacts_file = find_test_artifacts_file(working_dir, file_name)
    if artifacts_file is None:
        logger.info("No %s file found. Skipping test artifact processing.", file_name)
        return ArtifactBundle(None, success=False, message=f"No {file_name} file found")

    if not validate_file_content(artifacts_file, parse_limit):
        logger.warning("%s file is empty or contains no valid test data", file_name)
        return ArtifactBundle(None, success=False, message=f"{file_name} file is empty")

    try:
        return compress_test_artifacts(
            artifacts_file,
            output_dir=output_dir,
            options=options,
            status=status,
            message=message,
            parse_limit=parse_limit,
            builder=builder,
        )
    except ArtifactError as exc:
        log_exception(exc, logger, component="artifacts", operation="process_test_artifacts")
        return ArtifactBundle(None, success=False, message=str(exc))
