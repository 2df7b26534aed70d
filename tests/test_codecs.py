import pytest

from artifact_archive.codecs import (
    CODEC_ERRORS,
    Algorithm,
    detect_codec,
    get_codec,
)
from artifact_archive.errors import CompressionFailure

DATA = b"contract Token { function transfer(address to) public {} }\n" * 200


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_round_trip(algorithm):
    codec = get_codec(algorithm)
    compressed = codec.compress(DATA, 6)
    assert len(compressed) < len(DATA)
    assert codec.decompress(compressed) == DATA


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_empty_input(algorithm):
    codec = get_codec(algorithm)
    assert codec.decompress(codec.compress(b"", 1)) == b""


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_stream_compressor_output_is_decodable(algorithm):
    codec = get_codec(algorithm)
    stream = codec.compressor(5)
    parts = [stream.compress(DATA[i:i + 1000]) for i in range(0, len(DATA), 1000)]
    parts.append(stream.flush())
    assert codec.decompress(b"".join(parts)) == DATA


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_iter_decompress_small_chunks(algorithm):
    codec = get_codec(algorithm)
    compressed = codec.compress(DATA, 9)
    assert b"".join(codec.iter_decompress(compressed, 16)) == DATA


@pytest.mark.parametrize("algorithm", list(Algorithm))
def test_truncated_stream_is_an_error(algorithm):
    codec = get_codec(algorithm)
    compressed = codec.compress(DATA, 9)
    with pytest.raises(CODEC_ERRORS):
        b"".join(codec.iter_decompress(compressed[: len(compressed) // 2], 64))


def test_gzip_output_is_deterministic():
    codec = get_codec("gzip")
    assert codec.compress(DATA, 9) == codec.compress(DATA, 9)


def test_extensions():
    assert get_codec(Algorithm.LZMA).extension == ".lzma"
    assert get_codec(Algorithm.GZIP).extension == ".gz"
    assert get_codec(Algorithm.BROTLI).extension == ".br"


def test_detect_codec_by_magic_and_extension():
    lzma_blob = get_codec("lzma").compress(DATA, 1)
    gzip_blob = get_codec("gzip").compress(DATA, 1)
    brotli_blob = get_codec("brotli").compress(DATA, 1)

    assert detect_codec(lzma_blob, "x.gz").algorithm == Algorithm.LZMA
    assert detect_codec(gzip_blob).algorithm == Algorithm.GZIP
    assert detect_codec(brotli_blob, "out/archive_1.br").algorithm == Algorithm.BROTLI
    assert detect_codec(b"????").algorithm == Algorithm.LZMA


def test_unknown_algorithm():
    with pytest.raises(CompressionFailure) as excinfo:
        get_codec("zip")
    assert excinfo.value.reason == "unsupported_algorithm"
