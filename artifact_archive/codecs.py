"""Byte-level compression codecs.

Every codec compresses deterministically (no timestamps in headers) so that
building the same tree twice yields identical per-file payloads. Each codec
also offers incremental objects for files too large to hold in memory.
"""

from __future__ import annotations

import lzma
import zlib
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Iterator, Optional

import brotli

from .errors import CompressionFailure


class Algorithm(str, Enum):
    """Compression algorithms understood by the archive format."""

    LZMA = "lzma"
    GZIP = "gzip"
    BROTLI = "brotli"


class StreamCompressor(ABC):
    """Incremental compressor."""

    @abstractmethod
    def compress(self, chunk: bytes) -> bytes:
        """Feed ``chunk`` and return whatever output is ready."""

    @abstractmethod
    def flush(self) -> bytes:
        """Finish the stream and return the remaining output."""


class StreamDecompressor(ABC):
    """Incremental decompressor."""

    @abstractmethod
    def decompress(self, chunk: bytes) -> bytes:
        """Feed ``chunk`` and return whatever output is ready."""

    @abstractmethod
    def finish(self) -> bytes:
        """Return remaining output; raise EOFError if the stream is truncated."""


class Codec(ABC):
    """A compress/decompress primitive parameterized by level."""

    algorithm: Algorithm
    extension: str
    content_type: str = "application/octet-stream"
    magic: Optional[bytes] = None

    def compress(self, data: bytes, level: int) -> bytes:
        """Compress ``data`` at ``level`` (1-9)."""
        stream = self.compressor(level)
        return stream.compress(data) + stream.flush()

    @abstractmethod
    def decompress(self, data: bytes) -> bytes:
        """Decompress a payload produced by :meth:`compress`."""

    @abstractmethod
    def compressor(self, level: int) -> StreamCompressor:
        """Return an incremental compressor producing :meth:`compress` output."""

    @abstractmethod
    def decompressor(self) -> StreamDecompressor:
        """Return an incremental decompressor."""

    def iter_decompress(self, data: bytes, chunk_size: int) -> Iterator[bytes]:
        """Decompress ``data`` feeding at most ``chunk_size`` input bytes at a time."""
        stream = self.decompressor()
        view = memoryview(data)
        for start in range(0, len(view), chunk_size):
            out = stream.decompress(bytes(view[start:start + chunk_size]))
            if out:
                yield out
        tail = stream.finish()
        if tail:
            yield tail

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class _LzmaCompressStream(StreamCompressor):
    def __init__(self, level: int):
        self._obj = lzma.LZMACompressor(format=lzma.FORMAT_XZ, preset=level)

    def compress(self, chunk: bytes) -> bytes:
        return self._obj.compress(chunk)

    def flush(self) -> bytes:
        return self._obj.flush()


class _LzmaDecompressStream(StreamDecompressor):
    def __init__(self):
        self._obj = lzma.LZMADecompressor(format=lzma.FORMAT_XZ)

    def decompress(self, chunk: bytes) -> bytes:
        if self._obj.eof:
            return b""
        return self._obj.decompress(chunk)

    def finish(self) -> bytes:
        if not self._obj.eof:
            raise EOFError("Compressed data ended before the end-of-stream marker was reached")
        return b""


class LzmaCodec(Codec):
    algorithm = Algorithm.LZMA
    extension = ".lzma"
    content_type = "application/x-lzma"
    magic = b"\xfd7zXZ\x00"

    def compress(self, data: bytes, level: int) -> bytes:
        return lzma.compress(data, format=lzma.FORMAT_XZ, preset=level)

    def decompress(self, data: bytes) -> bytes:
        return lzma.decompress(data, format=lzma.FORMAT_XZ)

    def compressor(self, level: int) -> StreamCompressor:
        return _LzmaCompressStream(level)

    def decompressor(self) -> StreamDecompressor:
        return _LzmaDecompressStream()


class _GzipCompressStream(StreamCompressor):
    def __init__(self, level: int):
        # wbits=31 selects the gzip container with a zeroed mtime
        self._obj = zlib.compressobj(level, zlib.DEFLATED, 31)

    def compress(self, chunk: bytes) -> bytes:
        return self._obj.compress(chunk)

    def flush(self) -> bytes:
        return self._obj.flush()


class _GzipDecompressStream(StreamDecompressor):
    def __init__(self):
        self._obj = zlib.decompressobj(31)

    def decompress(self, chunk: bytes) -> bytes:
        if self._obj.eof:
            return b""
        return self._obj.decompress(chunk)

    def finish(self) -> bytes:
        tail = self._obj.flush()
        if not self._obj.eof:
            raise EOFError("Compressed data ended before the end-of-stream marker was reached")
        return tail


class GzipCodec(Codec):
    algorithm = Algorithm.GZIP
    extension = ".gz"
    content_type = "application/gzip"
    magic = b"\x1f\x8b"

    def decompress(self, data: bytes) -> bytes:
        return zlib.decompress(data, 31)

    def compressor(self, level: int) -> StreamCompressor:
        return _GzipCompressStream(level)

    def decompressor(self) -> StreamDecompressor:
        return _GzipDecompressStream()


class _BrotliCompressStream(StreamCompressor):
    def __init__(self, level: int):
        self._obj = brotli.Compressor(quality=level)

    def compress(self, chunk: bytes) -> bytes:
        return self._obj.process(chunk)

    def flush(self) -> bytes:
        return self._obj.finish()


class _BrotliDecompressStream(StreamDecompressor):
    def __init__(self):
        self._obj = brotli.Decompressor()

    def decompress(self, chunk: bytes) -> bytes:
        return self._obj.process(chunk)

    def finish(self) -> bytes:
        if not self._obj.is_finished():
            raise EOFError("Compressed data ended before the end-of-stream marker was reached")
        return b""


class BrotliCodec(Codec):
    algorithm = Algorithm.BROTLI
    extension = ".br"
    content_type = "application/x-brotli"

    def compress(self, data: bytes, level: int) -> bytes:
        return brotli.compress(data, quality=level)

    def decompress(self, data: bytes) -> bytes:
        return brotli.decompress(data)

    def compressor(self, level: int) -> StreamCompressor:
        return _BrotliCompressStream(level)

    def decompressor(self) -> StreamDecompressor:
        return _BrotliDecompressStream()


_CODECS: Dict[Algorithm, Codec] = {
    Algorithm.LZMA: LzmaCodec(),
    Algorithm.GZIP: GzipCodec(),
    Algorithm.BROTLI: BrotliCodec(),
}

# Errors raised by the underlying libraries on corrupt input
CODEC_ERRORS = (lzma.LZMAError, zlib.error, brotli.error, EOFError)


def get_codec(algorithm) -> Codec:
    """Return the codec for ``algorithm`` (an :class:`Algorithm` or its name)."""
    try:
        return _CODECS[Algorithm(algorithm)]
    except ValueError as exc:
        raise CompressionFailure(
            f"Unsupported compression algorithm: {algorithm}",
            reason="unsupported_algorithm",
        ) from exc


def detect_codec(data: bytes, path: Optional[str] = None) -> Codec:
    """Pick the codec for an archive envelope.

    Magic bytes win; brotli streams carry none, so the file extension decides
    for them. Defaults to the canonical lzma codec.
    """
    for codec in _CODECS.values():
        if codec.magic and data.startswith(codec.magic):
            return codec
    if path:
        for codec in _CODECS.values():
            if path.endswith(codec.extension):
                return codec
    return _CODECS[Algorithm.LZMA]
