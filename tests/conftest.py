from datetime import datetime, timezone
from pathlib import Path
import sys

import pytest

# Add project root to sys.path for module resolution
project_root = Path(__file__).parent.parent.resolve()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from artifact_archive.builder import ArchiveBuilder  # noqa: E402
from artifact_archive.config import CompressionOptions  # noqa: E402


FIXED_MOMENT = datetime(2024, 5, 17, 12, 30, 45, 123000, tzinfo=timezone.utc)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_MOMENT


@pytest.fixture
def fast_options():
    """Low level keeps the suite quick; every feature stays on."""
    return CompressionOptions(compression_level=1)


@pytest.fixture
def builder(fast_options, fixed_clock):
    return ArchiveBuilder(fast_options, clock=fixed_clock)


@pytest.fixture
def source_tree(tmp_path):
    """A small project-like tree with duplicates, text and binary files."""
    root = tmp_path / "bbOut"
    (root / "src" / "lib").mkdir(parents=True)
    (root / "assets").mkdir()

    (root / "a.txt").write_bytes(b"hello")
    (root / "b.txt").write_bytes(b"hello")
    (root / "c.txt").write_bytes(b"world")
    (root / "src" / "main.js").write_text(
        "import { x } from './x'\n// entry point\nfunction main(a, b) {\n  return a + b\n}\n"
    )
    (root / "src" / "util.js").write_text(
        "import { x } from './x'\nfunction helper(a) {\n  return a * 2\n}\r\n\n\n\n"
    )
    (root / "src" / "lib" / "deep.js").write_text(
        "import { x } from './x'\nfunction deep() {}\nfunction helper(a) {}\n"
    )
    (root / "assets" / "logo.bin").write_bytes(bytes(range(256)) * 8)
    (root / "assets" / "copy.bin").write_bytes(bytes(range(256)) * 8)
    return root


def read_tree(root: Path):
    """Relative POSIX path -> bytes for every file below ``root``."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


@pytest.fixture
def tree_reader():
    return read_tree
