import struct
import zlib

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from imgconv.png import crc32, encode_png, paeth, write_png, zlib_compress
from imgconv.simple_formats import ImageWriteError

SIGNATURE = bytes((137, 80, 78, 71, 13, 10, 26, 10))


def _chunks(png: bytes):
    assert png[:8] == SIGNATURE
    pos = 8
    chunks = []
    while pos < len(png):
        (length,) = struct.unpack(">I", png[pos:pos + 4])
        tag = png[pos + 4:pos + 8]
        payload = png[pos + 8:pos + 8 + length]
        (crc,) = struct.unpack(">I", png[pos + 8 + length:pos + 12 + length])
        chunks.append((tag, payload, crc))
        pos += 12 + length
    return chunks


def _predictor(a, b, c):
    p = a + b - c
    pa, pb, pc = abs(p - a), abs(p - b), abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    if pb <= pc:
        return b
    return c


def _decode(png: bytes):
    chunks = _chunks(png)
    width, height, depth, color_type, _, _, _ = struct.unpack(">IIBBBBB", chunks[0][1])
    channels = {0: 1, 4: 2, 2: 3, 6: 4}[color_type]
    raw = zlib.decompress(b"".join(p for tag, p, _ in chunks if tag == b"IDAT"))
    row_bytes = width * channels
    prev = bytearray(row_bytes)
    rows = []
    filters = []
    pos = 0
    for _ in range(height):
        kind = raw[pos]
        filters.append(kind)
        line = bytearray(raw[pos + 1:pos + 1 + row_bytes])
        pos += 1 + row_bytes
        for i in range(row_bytes):
            a = line[i - channels] if i >= channels else 0
            b = prev[i]
            c = prev[i - channels] if i >= channels else 0
            pred = {0: 0, 1: a, 2: b, 3: (a + b) // 2, 4: _predictor(a, b, c)}[kind]
            line[i] = (line[i] + pred) & 0xFF
        rows.append(bytes(line))
        prev = line
    return width, height, channels, b"".join(rows), filters


def test_crc32_check_value():
    assert crc32(b"123456789") == 0xCBF43926
    assert crc32(b"") == 0


@given(st.binary(max_size=200))
def test_crc32_matches_standard(data):
    assert crc32(data) == zlib.crc32(data)


def test_paeth_picks_closest_neighbour():
    assert paeth(1, 2, 3) == 1
    assert paeth(10, 20, 10) == 20
    assert paeth(0, 0, 0) == 0


def test_zlib_header_bytes():
    assert zlib_compress(b"abc")[:2] == b"\x78\x5e"


def test_zlib_empty_round_trip():
    assert zlib.decompress(zlib_compress(b"")) == b""


@settings(max_examples=60, deadline=None)
@given(st.binary(max_size=600), st.integers(min_value=0, max_value=12))
def test_zlib_round_trip(data, quality):
    assert zlib.decompress(zlib_compress(data, quality)) == data


def test_zlib_compresses_repetitive_data():
    data = b"ab" * 1000 + bytes(700) + b"xyz" * 300
    compressed = zlib_compress(data)
    assert len(compressed) < len(data) // 4
    assert zlib.decompress(compressed) == data


def test_zlib_trailer_is_adler32():
    data = b"hello hello hello"
    assert zlib_compress(data)[-4:] == struct.pack(">I", zlib.adler32(data))


@pytest.mark.parametrize("channels, color_type", [(1, 0), (2, 4), (3, 2), (4, 6)])
def test_png_header(channels, color_type):
    png = encode_png(3, 2, channels, bytes(range(3 * 2 * channels)))
    chunks = _chunks(png)
    assert [tag for tag, _, _ in chunks] == [b"IHDR", b"IDAT", b"IEND"]
    assert chunks[0][1] == struct.pack(">IIBBBBB", 3, 2, 8, color_type, 0, 0, 0)
    assert chunks[2][1] == b""


def test_png_chunk_crcs_are_valid():
    png = encode_png(4, 4, 3, bytes(range(48)))
    for tag, payload, crc in _chunks(png):
        assert crc == zlib.crc32(tag + payload)


@settings(max_examples=60, deadline=None)
@given(
    st.integers(min_value=1, max_value=5),
    st.integers(min_value=1, max_value=5),
    st.integers(min_value=1, max_value=4),
    st.integers(min_value=-1, max_value=5),
    st.data(),
)
def test_png_round_trip(width, height, channels, force_filter, data):
    pixels = data.draw(st.binary(min_size=width * height * channels,
                                 max_size=width * height * channels))
    png = encode_png(width, height, channels, pixels, force_filter=force_filter)
    w, h, c, decoded, filters = _decode(png)
    assert (w, h, c) == (width, height, channels)
    assert decoded == pixels
    assert all(0 <= f <= 4 for f in filters)


@pytest.mark.parametrize("force_filter", [0, 1, 2, 3, 4])
def test_forced_filter_is_recorded(force_filter):
    pixels = bytes((i * 7) & 0xFF for i in range(4 * 3 * 3))
    png = encode_png(4, 3, 3, pixels, force_filter=force_filter)
    *_, decoded, filters = _decode(png)
    assert filters == [force_filter] * 3
    assert decoded == pixels


def test_flip_reverses_rows():
    rows = [bytes([r * 40 + i for i in range(6)]) for r in range(3)]
    png = encode_png(2, 3, 3, b"".join(rows), flip=True)
    *_, decoded, _ = _decode(png)
    assert decoded == b"".join(reversed(rows))


def test_stride_skips_padding():
    rows = [bytes([r * 10 + i for i in range(6)]) for r in range(3)]
    padded = b"".join(row + b"\xee\xee" for row in rows)
    assert encode_png(2, 3, 3, padded, stride=8) == encode_png(2, 3, 3, b"".join(rows))


@pytest.mark.parametrize("channels", [0, 5])
def test_bad_channel_count(channels):
    with pytest.raises(ImageWriteError):
        encode_png(2, 2, channels, bytes(40))


def test_short_data_rejected():
    with pytest.raises(ImageWriteError):
        encode_png(2, 2, 3, bytes(11))


def test_short_stride_rejected():
    with pytest.raises(ImageWriteError):
        encode_png(2, 2, 3, bytes(12), stride=4)


def test_write_png_matches_encoding(tmp_path):
    pixels = bytes(range(2 * 2 * 4))
    path = tmp_path / "out.png"
    write_png(path, 2, 2, 4, pixels)
    assert path.read_bytes() == encode_png(2, 2, 4, pixels)