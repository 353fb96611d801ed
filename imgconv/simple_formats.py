"""Writers for BMP, TGA and Radiance HDR images.

Pixel data is interleaved, one byte per channel (one float per channel for
HDR), stored left to right and top to bottom.  The channel layout follows
the channel count: 1 = grey, 2 = grey + alpha, 3 = RGB, 4 = RGBA.
"""

from __future__ import annotations

import math
import struct
from collections.abc import Iterator, Sequence
from os import PathLike
from typing import Union

PathType = Union[str, "PathLike[str]"]

_BACKGROUND = (255, 0, 255)
_BMP_HEADER = struct.Struct("<2sIHHIIIIHH6I")
_TGA_HEADER = struct.Struct("<BBBHHBHHHHBB")
_FLOAT32 = struct.Struct("<f")
_HDR_HEADER = b"#?RADIANCE\n# Written by imgconv\nFORMAT=32-bit_rle_rgbe\n"
_HDR_TINY = _FLOAT32.unpack(_FLOAT32.pack(1e-32))[0]


class ImageWriteError(ValueError):
    """Raised when an image cannot be encoded."""


def _trunc_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // denominator
    return quotient if numerator >= 0 else -quotient


def _check_dimensions(width: int, height: int, channels: int) -> None:
    if width < 0 or height < 0:
        raise ImageWriteError(f"invalid image size {width}x{height}")
    if not 1 <= channels <= 4:
        raise ImageWriteError(f"unsupported channel count {channels}")


def _check_pixels(width: int, height: int, channels: int, data) -> bytes:
    _check_dimensions(width, height, channels)
    if data is None:
        raise ImageWriteError("no pixel data")
    pixels = bytes(data)
    needed = width * height * channels
    if len(pixels) < needed:
        raise ImageWriteError(
            f"pixel data holds {len(pixels)} bytes, {needed} are needed"
        )
    return pixels


def _rows(
    values: Sequence, width: int, height: int, channels: int, bottom_up: bool
) -> Iterator[Sequence]:
    stride = width * channels
    order = range(height - 1, -1, -1) if bottom_up else range(height)
    for j in order:
        yield values[j * stride:(j + 1) * stride]


def _split_pixels(row: bytes, channels: int) -> list[bytes]:
    return [row[start:start + channels] for start in range(0, len(row), channels)]


def _encode_pixel(pixel: bytes, write_alpha: bool, expand_mono: bool) -> bytes:
    """Encode one pixel in BGR order, optionally followed by its alpha."""
    channels = len(pixel)
    if channels <= 2:
        color = bytes((pixel[0],) * 3) if expand_mono else pixel[:1]
    elif channels == 4 and not write_alpha:
        alpha = pixel[3]
        red, green, blue = (
            bg + _trunc_div((value - bg) * alpha, 255)
            for value, bg in zip(pixel[:3], _BACKGROUND)
        )
        color = bytes((blue, green, red))
    else:
        color = bytes((pixel[2], pixel[1], pixel[0]))
    if write_alpha:
        color += pixel[-1:]
    return color


def encode_bmp(width: int, height: int, channels: int, data, flip: bool = False) -> bytes:
    """Encode pixels as a 24-bit BMP; alpha is blended onto a magenta background."""
    pixels = _check_pixels(width, height, channels, data)
    pad = (-width * 3) & 3
    file_size = (14 + 40 + (width * 3 + pad) * height) & 0xFFFFFFFF
    out = bytearray(
        _BMP_HEADER.pack(
            b"BM", file_size, 0, 0, 14 + 40,
            40, width, height, 1, 24, 0, 0, 0, 0, 0, 0,
        )
    )
    padding = bytes(pad)
    for row in _rows(pixels, width, height, channels, bottom_up=not flip):
        for pixel in _split_pixels(row, channels):
            out += _encode_pixel(pixel, write_alpha=False, expand_mono=True)
        out += padding
    return bytes(out)


def _tga_rle_row(pixels: list[bytes], write_alpha: bool) -> bytes:
    out = bytearray()
    count = len(pixels)
    i = 0
    while i < count:
        begin = pixels[i]
        differs = True
        length = 1
        if i < count - 1:
            length += 1
            differs = begin != pixels[i + 1]
            k = i + 2
            if differs:
                prev = i
                while k < count and length < 128:
                    if pixels[prev] != pixels[k]:
                        prev += 1
                        length += 1
                    else:
                        length -= 1
                        break
                    k += 1
            else:
                while k < count and length < 128 and pixels[k] == begin:
                    length += 1
                    k += 1
        if differs:
            out.append((length - 1) & 0xFF)
            for pixel in pixels[i:i + length]:
                out += _encode_pixel(pixel, write_alpha, expand_mono=False)
        else:
            out.append((length - 129) & 0xFF)
            out += _encode_pixel(begin, write_alpha, expand_mono=False)
        i += length
    return bytes(out)


def encode_tga(
    width: int, height: int, channels: int, data, rle: bool = True, flip: bool = False
) -> bytes:
    """Encode pixels as a TGA image, run-length encoded unless ``rle`` is false."""
    pixels = _check_pixels(width, height, channels, data)
    has_alpha = channels in (2, 4)
    color_bytes = channels - 1 if has_alpha else channels
    image_type = 3 if color_bytes < 2 else 2
    if rle:
        image_type += 8
    out = bytearray(
        _TGA_HEADER.pack(
            0, 0, image_type, 0, 0, 0, 0, 0,
            width & 0xFFFF, height & 0xFFFF,
            (color_bytes + has_alpha) * 8, has_alpha * 8,
        )
    )
    for row in _rows(pixels, width, height, channels, bottom_up=not flip):
        row_pixels = _split_pixels(row, channels)
        if rle:
            out += _tga_rle_row(row_pixels, has_alpha)
        else:
            for pixel in row_pixels:
                out += _encode_pixel(pixel, has_alpha, expand_mono=False)
    return bytes(out)


def _f32(value: float) -> float:
    return _FLOAT32.unpack(_FLOAT32.pack(value))[0]


def _linear_to_rgbe(red: float, green: float, blue: float) -> bytes:
    max_component = max(red, max(green, blue))
    if max_component < _HDR_TINY:
        return bytes(4)
    mantissa, exponent = math.frexp(max_component)
    normalize = _f32(mantissa * 256.0 / max_component)
    return bytes(
        (
            int(_f32(red * normalize)) & 0xFF,
            int(_f32(green * normalize)) & 0xFF,
            int(_f32(blue * normalize)) & 0xFF,
            (exponent + 128) & 0xFF,
        )
    )


def _rle_component(component: bytes) -> bytes:
    out = bytearray()
    width = len(component)
    x = 0
    while x < width:
        r = x
        while r + 2 < width:
            if component[r] == component[r + 1] == component[r + 2]:
                break
            r += 1
        if r + 2 >= width:
            r = width
        while x < r:
            length = min(r - x, 128)
            out.append(length)
            out += component[x:x + length]
            x += length
        if r + 2 < width:
            while r < width and component[r] == component[x]:
                r += 1
            while x < r:
                length = min(r - x, 127)
                out.append(length + 128)
                out.append(component[x])
                x += length
    return bytes(out)


def _hdr_scanline(row: Sequence[float], width: int, channels: int) -> bytes:
    if channels >= 3:
        triples = (row[start:start + 3] for start in range(0, width * channels, channels))
        encoded = [_linear_to_rgbe(*triple) for triple in triples]
    else:
        encoded = [
            _linear_to_rgbe(value, value, value) for value in row[::channels][:width]
        ]
    if width < 8 or width >= 32768:
        return b"".join(encoded)
    out = bytearray((2, 2, (width >> 8) & 0xFF, width & 0xFF))
    for index in range(4):
        out += _rle_component(bytes(pixel[index] for pixel in encoded))
    return bytes(out)


def encode_hdr(
    width: int, height: int, channels: int, data: Sequence[float], flip: bool = False
) -> bytes:
    """Encode linear float pixels as a Radiance RGBE image."""
    if data is None or width <= 0 or height <= 0:
        raise ImageWriteError(f"invalid image size {width}x{height}")
    _check_dimensions(width, height, channels)
    needed = width * height * channels
    values = list(data)
    if len(values) < needed:
        raise ImageWriteError(
            f"pixel data holds {len(values)} values, {needed} are needed"
        )
    values = [_f32(float(value)) for value in values[:needed]]
    out = bytearray(_HDR_HEADER)
    out += f"EXPOSURE=          1.0000000000000\n\n-Y {height} +X {width}\n".encode("ascii")
    for row in _rows(values, width, height, channels, bottom_up=flip):
        out += _hdr_scanline(row, width, channels)
    return bytes(out)


def _write(path: PathType, payload: bytes) -> None:
    with open(path, "wb") as handle:
        handle.write(payload)


def write_bmp(path: PathType, width: int, height: int, channels: int, data, flip: bool = False) -> None:
    """Write pixels to ``path`` as a BMP file."""
    _write(path, encode_bmp(width, height, channels, data, flip))


def write_tga(
    path: PathType, width: int, height: int, channels: int, data,
    rle: bool = True, flip: bool = False,
) -> None:
    """Write pixels to ``path`` as a TGA file."""
    _write(path, encode_tga(width, height, channels, data, rle, flip))


def write_hdr(
    path: PathType, width: int, height: int, channels: int,
    data: Sequence[float], flip: bool = False,
) -> None:
    """Write float pixels to ``path`` as a Radiance HDR file."""
    _write(path, encode_hdr(width, height, channels, data, flip))