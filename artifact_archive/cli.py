"""Command-line interface for artifact-archive."""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from artifact_archive.builder import ArchiveBuilder
from artifact_archive.codecs import Algorithm
from artifact_archive.config import Config
from artifact_archive.errors import ArchiveError, ArchiveValidationError
from artifact_archive.extractor import ArchiveExtractor
from artifact_archive.logging_utils import format_bytes, redact_tokens
from artifact_archive.progress_tracker import ProgressTracker
from artifact_archive.validator import ArchiveValidator, read_archive

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False, level_name: Optional[str] = None) -> None:
    """Configure the logging system.

    Args:
        verbose: Whether to enable verbose logging
        level_name: Explicit level name (e.g. ``info``); ``verbose`` wins
    """
    level = logging.DEBUG if verbose else getattr(logging, (level_name or "info").upper(), logging.INFO)
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[logging.StreamHandler()]
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="artifact-archive",
        description="Build, inspect, extract and upload deduplicated artifact archives.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", help="Path to a JSON configuration file")
    sub = parser.add_subparsers(dest="command", required=True)

    compress = sub.add_parser("compress", help="Compress a directory into an archive")
    compress.add_argument("source", help="Directory to compress")
    compress.add_argument("-o", "--output-dir", help="Directory to write the archive to")
    compress.add_argument("--level", type=int, choices=range(1, 10), metavar="1-9",
                          help="Compression level")
    compress.add_argument("--algorithm", choices=[a.value for a in Algorithm],
                          help="Compression algorithm")
    compress.add_argument("--no-dedup", action="store_true", help="Disable deduplication")
    compress.add_argument("--no-delta", action="store_true", help="Disable dictionary compression")
    compress.add_argument("--lossy", action="store_true",
                          help="Normalize whitespace and strip comments from text files")
    compress.add_argument("--no-validate", action="store_true", help="Skip post-build validation")
    compress.add_argument("--strict", action="store_true", help="Abort on the first file that fails")
    compress.add_argument("--progress-log", help="Append progress updates to this JSON lines file")

    extract = sub.add_parser("extract", help="Extract an archive")
    extract.add_argument("archive", help="Archive file")
    extract.add_argument("output_dir", help="Directory to extract into")

    validate = sub.add_parser("validate", help="Validate an archive against its source directory")
    validate.add_argument("archive", help="Archive file")
    validate.add_argument("source", help="Directory the archive was built from")

    info = sub.add_parser("info", help="Show archive metadata")
    info.add_argument("archive", help="Archive file")
    info.add_argument("--files", action="store_true", help="List every record")

    artifacts = sub.add_parser("artifacts", help="Find and compress the test artifacts file of a run")
    artifacts.add_argument("-d", "--working-dir", default=".",
                           help="Directory to search for the artifacts file (default: current directory)")
    artifacts.add_argument("--file-name", help="Artifacts file name (default: bbOut.json)")
    artifacts.add_argument("-o", "--output-dir", help="Directory to write the archive to")
    artifacts.add_argument("--upload", action="store_true", help="Upload the archive afterwards")
    artifacts.add_argument("--status", default="success", help="Status recorded with the artifacts")
    artifacts.add_argument("--message", default="Test artifacts processed",
                           help="Message recorded with the artifacts")

    upload = sub.add_parser("upload", help="Upload an archive to the backend")
    upload.add_argument("archive", help="Archive file")
    upload.add_argument("--status", default="success", help="Status reported with the upload")
    upload.add_argument("--message", help="Message reported with the upload")

    return parser


def _compression_options(args, settings):
    updates = {}
    if args.level is not None:
        updates["compression_level"] = args.level
    if args.algorithm:
        updates["algorithm"] = Algorithm(args.algorithm)
    if args.no_dedup:
        updates["deduplication"] = False
    if args.no_delta:
        updates["delta_compression"] = False
    if args.lossy:
        updates["lossy_text_normalization"] = True
    if args.no_validate:
        updates["validate_after_compression"] = False
    if args.strict:
        updates["strict"] = True
    return settings.compression.model_copy(update=updates)


def _cmd_compress(args, settings) -> int:
    options = _compression_options(args, settings)
    progress_log = args.progress_log or settings.progress_log
    tracker = ProgressTracker(progress_log) if progress_log else None
    report = ArchiveBuilder(options).build(
        args.source,
        args.output_dir or settings.output_dir,
        on_progress=tracker.update_progress if tracker else None,
    )
    for failure in report.failures:
        print(f"skipped: {failure.path} ({failure.reason})", file=sys.stderr)
    print(report.archive_path)
    return 0


def _cmd_extract(args, settings) -> int:
    print(ArchiveExtractor(settings.compression.stream_chunk_size).decompress_archive(
        args.archive, args.output_dir
    ))
    return 0


def _cmd_validate(args, settings) -> int:
    builder = ArchiveBuilder(settings.compression)
    builder.validate_source_directory(os.path.abspath(args.source))
    files = builder.get_all_files(args.source)
    ArchiveValidator(settings.compression.stream_chunk_size).validate(args.archive, files, args.source)
    print(f"OK: {len(files)} files validated")
    return 0


def _cmd_info(args, settings) -> int:
    archive = read_archive(args.archive)
    meta = archive.metadata
    print(f"Source:          {meta.source_directory}")
    print(f"Created:         {meta.timestamp}")
    print(f"Format version:  {meta.format_version}")
    print(f"Algorithm:       {meta.algorithm.value}")
    print(f"Files:           {meta.file_count}")
    print(f"Original size:   {format_bytes(meta.total_original_size)}")
    print(f"Compressed size: {format_bytes(meta.total_compressed_size)}")
    print(f"Ratio:           {meta.overall_compression_ratio:.2f}%")
    if args.files:
        for path, record in sorted(archive.files.items()):
            target = f" -> {record.reference_file}" if record.is_duplicate else ""
            print(f"  {record.type.value:<10} {record.original_size:>12} {path}{target}")
    return 0


def _upload(path, metadata, settings) -> dict:
    from artifact_archive.uploader import ArtifactUploader

    uploader = ArtifactUploader.from_config(settings.api)
    return uploader.upload_test_artifacts(path, metadata)


def _cmd_artifacts(args, settings) -> int:
    from artifact_archive.artifacts import process_test_artifacts

    bundle = process_test_artifacts(
        args.working_dir,
        file_name=args.file_name or settings.artifact_file_name,
        output_dir=args.output_dir or settings.output_dir,
        options=settings.compression,
        status=args.status,
        message=args.message,
        parse_limit=settings.artifact_parse_limit,
    )
    if not bundle.success:
        print(f"Skipped: {bundle.message}", file=sys.stderr)
        return 0
    print(bundle.compressed_file_path)
    if args.upload:
        result = _upload(bundle.compressed_file_path, bundle.metadata, settings)
        print(json.dumps({k: v for k, v in result.items() if k != "metadata"}))
    return 0


def _cmd_upload(args, settings) -> int:
    metadata = {"status": args.status}
    if args.message:
        metadata["message"] = args.message
    try:
        archive = read_archive(args.archive)
        metadata.update(
            original_size=archive.metadata.total_original_size,
            file_count=archive.metadata.file_count,
            timestamp=archive.metadata.timestamp,
        )
    except ArchiveError as exc:
        logger.warning("Uploading without archive metadata: %s", exc)
    result = _upload(args.archive, metadata, settings)
    print(json.dumps({k: v for k, v in result.items() if k != "metadata"}))
    return 0


_COMMANDS = {
    "compress": _cmd_compress,
    "extract": _cmd_extract,
    "validate": _cmd_validate,
    "info": _cmd_info,
    "artifacts": _cmd_artifacts,
    "upload": _cmd_upload,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the ``artifact-archive`` command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Config(args.config).load()
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    configure_logging(args.verbose, settings.log_level)

    try:
        return _COMMANDS[args.command](args, settings)
    except ArchiveValidationError as exc:
        print(f"Validation failed: {exc}", file=sys.stderr)
        return 1
    except ArchiveError as exc:
        print(f"Error: {redact_tokens(str(exc), settings.api.api_token)}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
