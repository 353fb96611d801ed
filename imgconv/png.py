"""PNG writer with a small built-in DEFLATE compressor."""

from __future__ import annotations

import struct
import zlib
from bisect import bisect_right
from os import PathLike
from typing import Callable, Optional, Union

from imgconv.simple_formats import ImageWriteError

PathType = Union[str, "PathLike[str]"]

PNG_SIGNATURE = bytes((137, 80, 78, 71, 13, 10, 26, 10))

_HASH_SIZE = 16384
_WINDOW = 32768
_MAX_MATCH = 258

_LENGTH_BASE = (
    3, 4, 5, 6, 7, 8, 9, 10, 11, 13, 15, 17, 19, 23, 27, 31, 35, 43, 51, 59,
    67, 83, 99, 115, 131, 163, 195, 227, 258, 259,
)
_LENGTH_EXTRA = (
    0, 0, 0, 0, 0, 0, 0, 0, 1, 1, 1, 1, 2, 2, 2, 2, 3, 3, 3, 3,
    4, 4, 4, 4, 5, 5, 5, 5, 0,
)
_DIST_BASE = (
    1, 2, 3, 4, 5, 7, 9, 13, 17, 25, 33, 49, 65, 97, 129, 193, 257, 385, 513,
    769, 1025, 1537, 2049, 3073, 4097, 6145, 8193, 12289, 16385, 24577, 32768,
)
_DIST_EXTRA = (
    0, 0, 0, 0, 1, 1, 2, 2, 3, 3, 4, 4, 5, 5, 6, 6, 7, 7, 8, 8,
    9, 9, 10, 10, 11, 11, 12, 12, 13, 13,
)

# PNG colour type for each channel count.
_COLOR_TYPES = {1: 0, 2: 4, 3: 2, 4: 6}

# Filter types used for the first row, where there is no row above.
_FIRST_ROW_FILTER = (0, 1, 0, 5, 6)

_U32 = 0xFFFFFFFF


def _bit_reverse(code: int, bits: int) -> int:
    result = 0
    for _ in range(bits):
        result = (result << 1) | (code & 1)
        code >>= 1
    return result


class _BitWriter:
    """Least-significant-bit-first bit stream appended to a byte buffer."""

    def __init__(self, out: bytearray) -> None:
        self.out = out
        self.buffer = 0
        self.count = 0

    def add(self, code: int, bits: int) -> None:
        self.buffer |= code << self.count
        self.count += bits
        while self.count >= 8:
            self.out.append(self.buffer & 0xFF)
            self.buffer >>= 8
            self.count -= 8

    def huffman(self, symbol: int) -> None:
        """Emit a symbol with the fixed literal/length Huffman code."""
        if symbol <= 143:
            code, bits = 0x30 + symbol, 8
        elif symbol <= 255:
            code, bits = 0x190 + symbol - 144, 9
        elif symbol <= 279:
            code, bits = symbol - 256, 7
        else:
            code, bits = 0xC0 + symbol - 280, 8
        self.add(_bit_reverse(code, bits), bits)

    def pad(self) -> None:
        while self.count:
            self.add(0, 1)


def _zhash(data: bytes, i: int) -> int:
    h = data[i] + (data[i + 1] << 8) + (data[i + 2] << 16)
    h ^= (h << 3) & _U32
    h = (h + (h >> 5)) & _U32
    h ^= (h << 4) & _U32
    h = (h + (h >> 17)) & _U32
    h ^= (h << 25) & _U32
    h = (h + (h >> 6)) & _U32
    return h & (_HASH_SIZE - 1)


def _match_length(data: bytes, earlier: int, here: int, limit: int) -> int:
    limit = min(limit, _MAX_MATCH)
    length = 0
    while length < limit and data[earlier + length] == data[here + length]:
        length += 1
    return length


def zlib_compress(data, quality: int = 8) -> bytes:
    """Compress ``data`` into a zlib stream using fixed Huffman codes.

    ``quality`` bounds the length of the hash chains searched for matches;
    values below 5 are raised to 5.
    """
    data = bytes(data)
    size = len(data)
    quality = max(quality, 5)

    out = bytearray(b"\x78\x5e")
    bits = _BitWriter(out)
    bits.add(1, 1)  # final block
    bits.add(1, 2)  # fixed Huffman codes

    chains: dict[int, list[int]] = {}
    i = 0
    while i < size - 3:
        chain = chains.setdefault(_zhash(data, i), [])
        best = 3
        best_pos: Optional[int] = None
        for pos in chain:
            if pos > i - _WINDOW:
                length = _match_length(data, pos, i, size - i)
                if length >= best:
                    best, best_pos = length, pos
        if len(chain) == 2 * quality:
            del chain[:quality]
        chain.append(i)

        if best_pos is not None:
            # Lazy matching: prefer a literal if the next byte starts a longer match.
            for pos in chains.get(_zhash(data, i + 1), ()):
                if pos > i - (_WINDOW - 1):
                    if _match_length(data, pos, i + 1, size - i - 1) > best:
                        best_pos = None
                        break

        if best_pos is None:
            bits.huffman(data[i])
            i += 1
            continue

        distance = i - best_pos
        j = bisect_right(_LENGTH_BASE, best) - 1
        bits.huffman(j + 257)
        if _LENGTH_EXTRA[j]:
            bits.add(best - _LENGTH_BASE[j], _LENGTH_EXTRA[j])
        j = bisect_right(_DIST_BASE, distance) - 1
        bits.add(_bit_reverse(j, 5), 5)
        if _DIST_EXTRA[j]:
            bits.add(distance - _DIST_BASE[j], _DIST_EXTRA[j])
        i += best

    for value in data[i:]:
        bits.huffman(value)
    bits.huffman(256)
    bits.pad()

    out += struct.pack(">I", zlib.adler32(data) & _U32)
    return bytes(out)


def crc32(data) -> int:
    """Return the CRC-32 checksum used by PNG chunks."""
    return zlib.crc32(bytes(data)) & _U32


def paeth(a: int, b: int, c: int) -> int:
    """Return the Paeth predictor of left ``a``, above ``b`` and upper-left ``c``."""
    p = a + b - c
    pa, pb, pc = abs(p - a), abs(p - b), abs(p - c)
    if pa <= pb and pa <= pc:
        return a & 0xFF
    if pb <= pc:
        return b & 0xFF
    return c & 0xFF


_Predictor = Callable[[int, int, int], int]

_PREDICTORS: dict[int, _Predictor] = {
    1: lambda left, up, up_left: left,
    2: lambda left, up, up_left: up,
    3: lambda left, up, up_left: (left + up) >> 1,
    4: paeth,
    5: lambda left, up, up_left: left >> 1,
    6: lambda left, up, up_left: paeth(left, 0, 0),
}


def _filter_row(row: bytes, prev: bytes, channels: int, kind: int) -> bytes:
    if kind == 0:
        return bytes(row)
    predict = _PREDICTORS[kind]
    out = bytearray(len(row))
    for i, value in enumerate(row):
        left = row[i - channels] if i >= channels else 0
        up_left = prev[i - channels] if i >= channels else 0
        out[i] = (value - predict(left, prev[i], up_left)) & 0xFF
    return bytes(out)


def _estimate(line: bytes) -> int:
    return sum(256 - value if value >= 128 else value for value in line)


def _chunk(tag: bytes, payload: bytes) -> bytes:
    body = tag + payload
    return struct.pack(">I", len(payload)) + body + struct.pack(">I", crc32(body))


def encode_png(
    width: int,
    height: int,
    channels: int,
    data,
    stride: Optional[int] = None,
    compression_level: int = 8,
    force_filter: int = -1,
    flip: bool = False,
) -> bytes:
    """Encode 8-bit interleaved pixels as a PNG image.

    ``stride`` is the byte distance between rows (defaults to packed rows).
    ``force_filter`` 0..4 forces one filter; any other value picks the
    filter per row that minimises the summed absolute residuals.
    """
    if width < 0 or height < 0:
        raise ImageWriteError(f"invalid image size {width}x{height}")
    if channels not in _COLOR_TYPES:
        raise ImageWriteError(f"unsupported channel count {channels}")
    if data is None:
        raise ImageWriteError("no pixel data")
    row_bytes = width * channels
    if not stride:
        stride = row_bytes
    if stride < row_bytes:
        raise ImageWriteError(f"stride {stride} is shorter than a row of {row_bytes} bytes")
    pixels = bytes(data)
    needed = (height - 1) * stride + row_bytes if height and width else 0
    if len(pixels) < needed:
        raise ImageWriteError(f"pixel data holds {len(pixels)} bytes, {needed} are needed")
    if force_filter >= 5:
        force_filter = -1

    def source_row(y: int) -> bytes:
        start = stride * (height - 1 - y if flip else y)
        return pixels[start:start + row_bytes]

    filtered = bytearray()
    zero_row = bytes(row_bytes)
    prev = zero_row
    for y in range(height):
        row = source_row(y)
        mapping = _FIRST_ROW_FILTER if y == 0 else range(5)

        if force_filter > -1:
            chosen = force_filter
            line = _filter_row(row, prev, channels, mapping[chosen])
        else:
            candidates = (
                (filter_type, _filter_row(row, prev, channels, mapping[filter_type]))
                for filter_type in range(5)
            )
            chosen, line = min(candidates, key=lambda item: _estimate(item[1]))
        filtered.append(chosen)
        filtered += line
        prev = row

    compressed = zlib_compress(bytes(filtered), compression_level)
    header = struct.pack(">IIBBBBB", width, height, 8, _COLOR_TYPES[channels], 0, 0, 0)
    return (
        PNG_SIGNATURE
        + _chunk(b"IHDR", header)
        + _chunk(b"IDAT", compressed)
        + _chunk(b"IEND", b"")
    )


def write_png(
    path: PathType,
    width: int,
    height: int,
    channels: int,
    data,
    stride: Optional[int] = None,
    compression_level: int = 8,
    force_filter: int = -1,
    flip: bool = False,
) -> None:
    """Write pixels to ``path`` as a PNG file."""
    payload = encode_png(
        width, height, channels, data, stride, compression_level, force_filter, flip
    )
    with open(path, "wb") as handle:
        handle.write(payload)