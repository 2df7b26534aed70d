"""artifact-archive: deduplicating, self-verifying archives for CI build artifacts."""

# Components are loaded on first access so that importing the package stays
# cheap and optional pieces (the HTTP uploader) pull in their dependencies
# only when used.
from importlib import import_module
from typing import Any

__version__ = "0.1.0"

_MODULE_MAP = {
    "ArchiveBuilder": "artifact_archive.builder",
    "BuildReport": "artifact_archive.builder",
    "compress_directory": "artifact_archive.builder",
    "ultra_compress_directory": "artifact_archive.builder",
    "ArchiveExtractor": "artifact_archive.extractor",
    "decompress_archive": "artifact_archive.extractor",
    "ArchiveValidator": "artifact_archive.validator",
    "validate_archive": "artifact_archive.validator",
    "read_archive": "artifact_archive.validator",
    "Archive": "artifact_archive.models",
    "ArchiveMetadata": "artifact_archive.models",
    "ArchiveRecord": "artifact_archive.models",
    "RecordKind": "artifact_archive.models",
    "Algorithm": "artifact_archive.codecs",
    "CompressionOptions": "artifact_archive.config",
    "Config": "artifact_archive.config",
    "calculate_hash": "artifact_archive.hashing",
    "compress_test_artifacts": "artifact_archive.artifacts",
    "process_test_artifacts": "artifact_archive.artifacts",
    "find_test_artifacts_file": "artifact_archive.artifacts",
    "ArtifactUploader": "artifact_archive.uploader",
    "ArchiveError": "artifact_archive.errors",
    "SourceNotFoundError": "artifact_archive.errors",
    "CompressionFailure": "artifact_archive.errors",
    "ArchiveWriteError": "artifact_archive.errors",
    "ArchiveValidationError": "artifact_archive.errors",
    "ExtractionError": "artifact_archive.errors",
}

__all__ = list(_MODULE_MAP.keys())


def __getattr__(name: str) -> Any:
    """Dynamically import objects on first access."""
    module_path = _MODULE_MAP.get(name)
    if module_path is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(module_path)
    return getattr(module, name)
