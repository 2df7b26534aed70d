import pytest

from artifact_archive.codecs import get_codec
from artifact_archive.dictionary import (
    Dictionary,
    DictionaryOptimizer,
    create_dictionary,
    extract_patterns,
)

JS = "import { x } from './x'\nconst y = require('y')\nfunction run(a, b) {\n  return a\n}\n"


def test_extract_patterns():
    patterns = extract_patterns(JS)
    assert "require('y')" in patterns
    assert "import { x } from './x'" in patterns
    assert "function run(a, b)" in patterns


def test_create_dictionary_ranks_by_frequency():
    contents = [
        "import('a')\nfunction f(x)",
        "import('a')",
        "require('b')",
    ]
    assert create_dictionary(contents).split("\n") == [
        "import('a')",
        "function f(x)",
        "require('b')",
    ]


def test_create_dictionary_caps_pattern_count():
    contents = [f"function f{i}()" for i in range(80)]
    assert len(create_dictionary(contents).split("\n")) == 50


def test_create_dictionary_without_patterns():
    assert create_dictionary(["plain text", "more text"]) == ""


def test_dictionary_group_accumulates():
    group = Dictionary(extension=".js")
    group.add(JS)
    group.add(JS)
    assert len(group) == 2
    assert group.pattern_counts["require('y')"] == 2
    assert group.text.split("\n")[0] == "require('y')"


@pytest.fixture
def lzma_codec():
    return get_codec("lzma")


def test_try_compress_needs_a_full_group(lzma_codec):
    optimizer = DictionaryOptimizer()
    assert optimizer.try_compress(JS, "a.js", lzma_codec, 1) is None
    assert optimizer.try_compress(JS, "b.js", lzma_codec, 1) is None

    result = optimizer.try_compress(JS, "c.js", lzma_codec, 1)
    assert result is not None
    restored = lzma_codec.decompress(result.compressed).decode("utf-8")
    assert restored == result.dictionary + "\n" + JS


def test_groups_are_per_extension(lzma_codec):
    optimizer = DictionaryOptimizer(min_group_size=2)
    assert optimizer.try_compress(JS, "a.js", lzma_codec, 1) is None
    assert optimizer.try_compress(JS, "a.ts", lzma_codec, 1) is None
    assert optimizer.try_compress(JS, "b.js", lzma_codec, 1) is not None
    assert set(optimizer.groups) == {".js", ".ts"}


def test_no_dictionary_when_group_has_no_patterns(lzma_codec):
    optimizer = DictionaryOptimizer(min_group_size=1)
    assert optimizer.try_compress("plain notes", "notes.txt", lzma_codec, 1) is None


def test_codec_failure_yields_no_dictionary():
    class BrokenCodec:
        def compress(self, data, level):
            raise RuntimeError("boom")

    optimizer = DictionaryOptimizer(min_group_size=1)
    assert optimizer.try_compress(JS, "a.js", BrokenCodec(), 1) is None
