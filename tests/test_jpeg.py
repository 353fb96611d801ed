import random
import struct

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from imgconv.jpeg import encode_jpeg, write_jpeg
from imgconv.simple_formats import ImageWriteError


def _random_pixels(width, height, channels, seed=1):
    rng = random.Random(seed)
    return bytes(rng.randrange(256) for _ in range(width * height * channels))


def _scan_data(encoded):
    start = encoded.index(b"\xff\xda\x00\x0c") + 14
    return encoded[start:-2]


def test_markers_at_start_and_end():
    out = encode_jpeg(8, 8, 3, _random_pixels(8, 8, 3))
    assert out[:4] == b"\xff\xd8\xff\xe0"
    assert out[6:11] == b"JFIF\x00"
    assert out[-2:] == b"\xff\xd9"


def test_frame_header_holds_dimensions():
    out = encode_jpeg(13, 5, 3, _random_pixels(13, 5, 3))
    sof = out.index(b"\xff\xc0")
    assert out[sof + 5:sof + 9] == struct.pack(">HH", 5, 13)


def test_huffman_segment_length_matches_layout():
    out = encode_jpeg(8, 8, 1, _random_pixels(8, 8, 1))
    dht = out.index(b"\xff\xc4")
    assert out[dht + 2:dht + 4] == b"\x01\xa2"
    assert out.index(b"\xff\xda") == dht + 2 + 0x01A2


def test_quality_fifty_uses_standard_tables():
    out = encode_jpeg(8, 8, 3, _random_pixels(8, 8, 3), quality=50)
    assert out[25] == 16
    assert out[25 + 64] == 1
    assert out[25 + 64 + 1] == 17


def test_quality_hundred_uses_unit_tables():
    out = encode_jpeg(8, 8, 3, _random_pixels(8, 8, 3), quality=100)
    assert set(out[25:25 + 64]) == {1}
    assert set(out[90:90 + 64]) == {1}


def test_quality_zero_means_ninety():
    data = _random_pixels(16, 8, 3)
    assert encode_jpeg(16, 8, 3, data, quality=0) == encode_jpeg(16, 8, 3, data, quality=90)


def test_quality_is_clamped():
    data = _random_pixels(8, 8, 3)
    assert encode_jpeg(8, 8, 3, data, quality=150) == encode_jpeg(8, 8, 3, data, quality=100)
    assert encode_jpeg(8, 8, 3, data, quality=-5) == encode_jpeg(8, 8, 3, data, quality=1)


def test_lower_quality_gives_smaller_file():
    data = _random_pixels(32, 32, 3)
    assert len(encode_jpeg(32, 32, 3, data, quality=10)) < len(
        encode_jpeg(32, 32, 3, data, quality=95)
    )


def test_grey_equals_replicated_rgb():
    grey = _random_pixels(10, 9, 1)
    rgb = bytes(value for value in grey for _ in range(3))
    assert encode_jpeg(10, 9, 1, grey) == encode_jpeg(10, 9, 3, rgb)


def test_alpha_is_ignored():
    grey = _random_pixels(8, 8, 1)
    grey_alpha = bytes(b for value in grey for b in (value, 7))
    assert encode_jpeg(8, 8, 2, grey_alpha) == encode_jpeg(8, 8, 1, grey)

    rgb = _random_pixels(8, 8, 3, seed=2)
    rgba = b"".join(rgb[i:i + 3] + b"\x80" for i in range(0, len(rgb), 3))
    assert encode_jpeg(8, 8, 4, rgba) == encode_jpeg(8, 8, 3, rgb)


def test_flip_matches_reversed_rows():
    width, height, channels = 9, 11, 3
    data = _random_pixels(width, height, channels)
    stride = width * channels
    rows = [data[i:i + stride] for i in range(0, len(data), stride)]
    flipped = b"".join(reversed(rows))
    assert encode_jpeg(width, height, channels, data, flip=True) == encode_jpeg(
        width, height, channels, flipped
    )


def test_edge_pixels_are_replicated_into_padding():
    narrow = _random_pixels(5, 8, 1)
    rows = [narrow[i:i + 5] for i in range(0, len(narrow), 5)]
    wide = b"".join(row + bytes([row[-1]]) * 3 for row in rows)
    assert _scan_data(encode_jpeg(5, 8, 1, narrow)) == _scan_data(encode_jpeg(8, 8, 1, wide))


def test_uniform_image_is_deterministic_and_compact():
    data = bytes([200, 100, 50]) * 64
    first = encode_jpeg(8, 8, 3, data)
    assert first == encode_jpeg(8, 8, 3, data)
    assert len(_scan_data(first)) < len(_scan_data(encode_jpeg(8, 8, 3, _random_pixels(8, 8, 3))))


@settings(max_examples=15, deadline=None)
@given(
    width=st.integers(1, 12),
    height=st.integers(1, 12),
    channels=st.integers(1, 4),
    seed=st.integers(0, 1000),
)
def test_scan_data_is_byte_stuffed(width, height, channels, seed):
    out = encode_jpeg(width, height, channels, _random_pixels(width, height, channels, seed))
    scan = _scan_data(out)
    for index, value in enumerate(scan):
        if value == 0xFF:
            assert scan[index + 1] == 0


@pytest.mark.parametrize("channels", [0, 5])
def test_bad_channel_count(channels):
    with pytest.raises(ImageWriteError):
        encode_jpeg(4, 4, channels, bytes(100))


@pytest.mark.parametrize("width,height", [(0, 4), (4, 0), (-1, 4)])
def test_bad_dimensions(width, height):
    with pytest.raises(ImageWriteError):
        encode_jpeg(width, height, 3, bytes(100))


def test_missing_or_short_data():
    with pytest.raises(ImageWriteError):
        encode_jpeg(4, 4, 3, None)
    with pytest.raises(ImageWriteError):
        encode_jpeg(4, 4, 3, bytes(47))


def test_write_jpeg_matches_encode(tmp_path):
    data = _random_pixels(12, 7, 3)
    target = tmp_path / "out.jpg"
    write_jpeg(target, 12, 7, 3, data, quality=75)
    assert target.read_bytes() == encode_jpeg(12, 7, 3, data, quality=75)