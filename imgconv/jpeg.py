"""Baseline JPEG writer (4:4:4 YCbCr, standard Huffman tables)."""

from __future__ import annotations

import struct
from os import PathLike
from typing import Union

from imgconv.simple_formats import ImageWriteError

PathType = Union[str, "PathLike[str]"]

_F32 = struct.Struct("<f")


def _f32(value: float) -> float:
    """Round a Python float to single precision."""
    return _F32.unpack(_F32.pack(value))[0]


_ZIGZAG = (
    0, 1, 5, 6, 14, 15, 27, 28, 2, 4, 7, 13, 16, 26, 29, 42, 3, 8, 12, 17, 25, 30, 41, 43,
    9, 11, 18, 24, 31, 40, 44, 53, 10, 19, 23, 32, 39, 45, 52, 54, 20, 22, 33, 38, 46, 51,
    55, 60, 21, 34, 37, 47, 50, 56, 59, 61, 35, 36, 48, 49, 57, 58, 62, 63,
)

_DC_LUMINANCE_COUNTS = (0, 1, 5, 1, 1, 1, 1, 1, 1, 0, 0, 0, 0, 0, 0, 0)
_DC_LUMINANCE_VALUES = tuple(range(12))
_AC_LUMINANCE_COUNTS = (0, 2, 1, 3, 3, 2, 4, 3, 5, 5, 4, 4, 0, 0, 1, 0x7D)
_AC_LUMINANCE_VALUES = (
    0x01, 0x02, 0x03, 0x00, 0x04, 0x11, 0x05, 0x12, 0x21, 0x31, 0x41, 0x06, 0x13, 0x51, 0x61, 0x07,
    0x22, 0x71, 0x14, 0x32, 0x81, 0x91, 0xA1, 0x08, 0x23, 0x42, 0xB1, 0xC1, 0x15, 0x52, 0xD1, 0xF0,
    0x24, 0x33, 0x62, 0x72, 0x82, 0x09, 0x0A, 0x16, 0x17, 0x18, 0x19, 0x1A, 0x25, 0x26, 0x27, 0x28,
    0x29, 0x2A, 0x34, 0x35, 0x36, 0x37, 0x38, 0x39, 0x3A, 0x43, 0x44, 0x45, 0x46, 0x47, 0x48, 0x49,
    0x4A, 0x53, 0x54, 0x55, 0x56, 0x57, 0x58, 0x59, 0x5A, 0x63, 0x64, 0x65, 0x66, 0x67, 0x68, 0x69,
    0x6A, 0x73, 0x74, 0x75, 0x76, 0x77, 0x78, 0x79, 0x7A, 0x83, 0x84, 0x85, 0x86, 0x87, 0x88, 0x89,
    0x8A, 0x92, 0x93, 0x94, 0x95, 0x96, 0x97, 0x98, 0x99, 0x9A, 0xA2, 0xA3, 0xA4, 0xA5, 0xA6, 0xA7,
    0xA8, 0xA9, 0xAA, 0xB2, 0xB3, 0xB4, 0xB5, 0xB6, 0xB7, 0xB8, 0xB9, 0xBA, 0xC2, 0xC3, 0xC4, 0xC5,
    0xC6, 0xC7, 0xC8, 0xC9, 0xCA, 0xD2, 0xD3, 0xD4, 0xD5, 0xD6, 0xD7, 0xD8, 0xD9, 0xDA, 0xE1, 0xE2,
    0xE3, 0xE4, 0xE5, 0xE6, 0xE7, 0xE8, 0xE9, 0xEA, 0xF1, 0xF2, 0xF3, 0xF4, 0xF5, 0xF6, 0xF7, 0xF8,
    0xF9, 0xFA,
)
_DC_CHROMINANCE_COUNTS = (0, 3, 1, 1, 1, 1, 1, 1, 1, 1, 1, 0, 0, 0, 0, 0)
_DC_CHROMINANCE_VALUES = tuple(range(12))
_AC_CHROMINANCE_COUNTS = (0, 2, 1, 2, 4, 4, 3, 4, 7, 5, 4, 4, 0, 1, 2, 0x77)
_AC_CHROMINANCE_VALUES = (
    0x00, 0x01, 0x02, 0x03, 0x11, 0x04, 0x05, 0x21, 0x31, 0x06, 0x12, 0x41, 0x51, 0x07, 0x61, 0x71,
    0x13, 0x22, 0x32, 0x81, 0x08, 0x14, 0x42, 0x91, 0xA1, 0xB1, 0xC1, 0x09, 0x23, 0x33, 0x52, 0xF0,
    0x15, 0x62, 0x72, 0xD1, 0x0A, 0x16, 0x24, 0x34, 0xE1, 0x25, 0xF1, 0x17, 0x18, 0x19, 0x1A, 0x26,
    0x27, 0x28, 0x29, 0x2A, 0x35, 0x36, 0x37, 0x38, 0x39, 0x3A, 0x43, 0x44, 0x45, 0x46, 0x47, 0x48,
    0x49, 0x4A, 0x53, 0x54, 0x55, 0x56, 0x57, 0x58, 0x59, 0x5A, 0x63, 0x64, 0x65, 0x66, 0x67, 0x68,
    0x69, 0x6A, 0x73, 0x74, 0x75, 0x76, 0x77, 0x78, 0x79, 0x7A, 0x82, 0x83, 0x84, 0x85, 0x86, 0x87,
    0x88, 0x89, 0x8A, 0x92, 0x93, 0x94, 0x95, 0x96, 0x97, 0x98, 0x99, 0x9A, 0xA2, 0xA3, 0xA4, 0xA5,
    0xA6, 0xA7, 0xA8, 0xA9, 0xAA, 0xB2, 0xB3, 0xB4, 0xB5, 0xB6, 0xB7, 0xB8, 0xB9, 0xBA, 0xC2, 0xC3,
    0xC4, 0xC5, 0xC6, 0xC7, 0xC8, 0xC9, 0xCA, 0xD2, 0xD3, 0xD4, 0xD5, 0xD6, 0xD7, 0xD8, 0xD9, 0xDA,
    0xE2, 0xE3, 0xE4, 0xE5, 0xE6, 0xE7, 0xE8, 0xE9, 0xEA, 0xF2, 0xF3, 0xF4, 0xF5, 0xF6, 0xF7, 0xF8,
    0xF9, 0xFA,
)

_YQT = (
    16, 11, 10, 16, 24, 40, 51, 61, 12, 12, 14, 19, 26, 58, 60, 55, 14, 13, 16, 24, 40, 57, 69, 56,
    14, 17, 22, 29, 51, 87, 80, 62, 18, 22, 37, 56, 68, 109, 103, 77, 24, 35, 55, 64, 81, 104, 113,
    92, 49, 64, 78, 87, 103, 121, 120, 101, 72, 92, 95, 98, 112, 100, 103, 99,
)
_UVQT = (
    17, 18, 24, 47, 99, 99, 99, 99, 18, 21, 26, 66, 99, 99, 99, 99, 24, 26, 56, 99, 99, 99, 99, 99,
    47, 66, 99, 99, 99, 99, 99, 99, *([99] * 32),
)

_SQRT8 = _f32(2.828427125)
_AASF = tuple(
    _f32(_f32(factor) * _SQRT8)
    for factor in (1.0, 1.387039845, 1.306562965, 1.175875602,
                   1.0, 0.785694958, 0.541196100, 0.275899379)
)

_C4 = _f32(0.707106781)
_C6 = _f32(0.382683433)
_C2_MINUS_C6 = _f32(0.541196100)
_C2_PLUS_C6 = _f32(1.306562965)

_Y_R, _Y_G, _Y_B = _f32(0.29900), _f32(0.58700), _f32(0.11400)
_U_R, _U_G, _U_B = _f32(-0.16874), _f32(0.33126), _f32(0.50000)
_V_R, _V_G, _V_B = _f32(0.50000), _f32(0.41869), _f32(0.08131)

_HEAD0 = bytes((
    0xFF, 0xD8, 0xFF, 0xE0, 0, 0x10, ord("J"), ord("F"), ord("I"), ord("F"), 0, 1, 1, 0, 0, 1, 0, 1,
    0, 0, 0xFF, 0xDB, 0, 0x84, 0,
))
_HEAD2 = bytes((0xFF, 0xDA, 0, 0xC, 3, 1, 0, 2, 0x11, 3, 0x11, 0, 0x3F, 0))

_Code = tuple[int, int]


def _huffman_table(counts: tuple[int, ...], values: tuple[int, ...]) -> list[_Code]:
    """Build a 256-entry (code, length) table from canonical Huffman counts."""
    table: list[_Code] = [(0, 0)] * 256
    code = 0
    symbols = iter(values)
    for length, count in enumerate(counts, start=1):
        for _ in range(count):
            table[next(symbols)] = (code, length)
            code += 1
        code <<= 1
    return table


_YDC_HT = _huffman_table(_DC_LUMINANCE_COUNTS, _DC_LUMINANCE_VALUES)
_UVDC_HT = _huffman_table(_DC_CHROMINANCE_COUNTS, _DC_CHROMINANCE_VALUES)
_YAC_HT = _huffman_table(_AC_LUMINANCE_COUNTS, _AC_LUMINANCE_VALUES)
_UVAC_HT = _huffman_table(_AC_CHROMINANCE_COUNTS, _AC_CHROMINANCE_VALUES)


class _BitWriter:
    """Most-significant-bit-first bit stream with JPEG 0xFF byte stuffing."""

    def __init__(self, out: bytearray) -> None:
        self.out = out
        self.buffer = 0
        self.count = 0

    def write(self, code: int, length: int) -> None:
        self.count += length
        self.buffer |= code << (24 - self.count)
        while self.count >= 8:
            byte = (self.buffer >> 16) & 0xFF
            self.out.append(byte)
            if byte == 0xFF:
                self.out.append(0)
            self.buffer = (self.buffer << 8) & 0xFFFFFF
            self.count -= 8


def _calc_bits(value: int) -> _Code:
    magnitude = abs(value)
    length = max(magnitude.bit_length(), 1)
    if value < 0:
        value -= 1
    return value & ((1 << length) - 1), length


def _dct(d: list[float]) -> list[float]:
    d0, d1, d2, d3, d4, d5, d6, d7 = d
    tmp0 = _f32(d0 + d7)
    tmp7 = _f32(d0 - d7)
    tmp1 = _f32(d1 + d6)
    tmp6 = _f32(d1 - d6)
    tmp2 = _f32(d2 + d5)
    tmp5 = _f32(d2 - d5)
    tmp3 = _f32(d3 + d4)
    tmp4 = _f32(d3 - d4)

    tmp10 = _f32(tmp0 + tmp3)
    tmp13 = _f32(tmp0 - tmp3)
    tmp11 = _f32(tmp1 + tmp2)
    tmp12 = _f32(tmp1 - tmp2)

    out0 = _f32(tmp10 + tmp11)
    out4 = _f32(tmp10 - tmp11)
    z1 = _f32(_f32(tmp12 + tmp13) * _C4)
    out2 = _f32(tmp13 + z1)
    out6 = _f32(tmp13 - z1)

    tmp10 = _f32(tmp4 + tmp5)
    tmp11 = _f32(tmp5 + tmp6)
    tmp12 = _f32(tmp6 + tmp7)

    z5 = _f32(_f32(tmp10 - tmp12) * _C6)
    z2 = _f32(_f32(tmp10 * _C2_MINUS_C6) + z5)
    z4 = _f32(_f32(tmp12 * _C2_PLUS_C6) + z5)
    z3 = _f32(tmp11 * _C4)
    z11 = _f32(tmp7 + z3)
    z13 = _f32(tmp7 - z3)

    return [
        out0, _f32(z11 + z4), out2, _f32(z13 - z2),
        out4, _f32(z13 + z2), out6, _f32(z11 - z4),
    ]


def _process_block(
    bits: _BitWriter,
    block: list[float],
    scale: list[float],
    previous_dc: int,
    dc_table: list[_Code],
    ac_table: list[_Code],
) -> int:
    """Transform, quantise and entropy-code one 8x8 block; return its DC value."""
    for offset in range(0, 64, 8):
        block[offset:offset + 8] = _dct(block[offset:offset + 8])
    for offset in range(8):
        block[offset::8] = _dct(block[offset::8])

    coefficients = [0] * 64
    for index, (value, factor) in enumerate(zip(block, scale)):
        v = _f32(value * factor)
        coefficients[_ZIGZAG[index]] = int(_f32(v - 0.5) if v < 0 else _f32(v + 0.5))

    diff = coefficients[0] - previous_dc
    if diff == 0:
        bits.write(*dc_table[0])
    else:
        code = _calc_bits(diff)
        bits.write(*dc_table[code[1]])
        bits.write(*code)

    end = 63
    while end > 0 and coefficients[end] == 0:
        end -= 1
    if end == 0:
        bits.write(*ac_table[0x00])
        return coefficients[0]

    i = 1
    while i <= end:
        start = i
        while coefficients[i] == 0:
            i += 1
        zeroes = i - start
        if zeroes >= 16:
            for _ in range(zeroes >> 4):
                bits.write(*ac_table[0xF0])
            zeroes &= 15
        code = _calc_bits(coefficients[i])
        bits.write(*ac_table[(zeroes << 4) + code[1]])
        bits.write(*code)
        i += 1
    if end != 63:
        bits.write(*ac_table[0x00])
    return coefficients[0]


def _quant_table(base: tuple[int, ...], scale: int) -> bytes:
    table = bytearray(64)
    for index, value in enumerate(base):
        table[_ZIGZAG[index]] = min(max((value * scale + 50) // 100, 1), 255)
    return bytes(table)


def _divisors(table: bytes) -> list[float]:
    return [
        _f32(1.0 / _f32(_f32(table[_ZIGZAG[row * 8 + col]] * _AASF[row]) * _AASF[col]))
        for row in range(8)
        for col in range(8)
    ]


def encode_jpeg(
    width: int, height: int, channels: int, data, quality: int = 90, flip: bool = False
) -> bytes:
    """Encode 8-bit pixels as a baseline JPEG.

    Alpha channels are ignored.  A quality of 0 means 90; other values are
    clamped to 1..100.
    """
    if data is None or width <= 0 or height <= 0:
        raise ImageWriteError(f"invalid image size {width}x{height}")
    if not 1 <= channels <= 4:
        raise ImageWriteError(f"unsupported channel count {channels}")
    pixels = bytes(data)
    needed = width * height * channels
    if len(pixels) < needed:
        raise ImageWriteError(f"pixel data holds {len(pixels)} bytes, {needed} are needed")

    quality = quality or 90
    quality = min(max(quality, 1), 100)
    scale = 5000 // quality if quality < 50 else 200 - quality * 2

    y_table = _quant_table(_YQT, scale)
    uv_table = _quant_table(_UVQT, scale)
    y_scale = _divisors(y_table)
    uv_scale = _divisors(uv_table)

    out = bytearray(_HEAD0)
    out += y_table
    out.append(1)
    out += uv_table
    out += bytes((
        0xFF, 0xC0, 0, 0x11, 8, (height >> 8) & 0xFF, height & 0xFF,
        (width >> 8) & 0xFF, width & 0xFF,
        3, 1, 0x11, 0, 2, 0x11, 1, 3, 0x11, 1, 0xFF, 0xC4, 0x01, 0xA2, 0,
    ))
    out += bytes(_DC_LUMINANCE_COUNTS) + bytes(_DC_LUMINANCE_VALUES)
    out.append(0x10)
    out += bytes(_AC_LUMINANCE_COUNTS) + bytes(_AC_LUMINANCE_VALUES)
    out.append(1)
    out += bytes(_DC_CHROMINANCE_COUNTS) + bytes(_DC_CHROMINANCE_VALUES)
    out.append(0x11)
    out += bytes(_AC_CHROMINANCE_COUNTS) + bytes(_AC_CHROMINANCE_VALUES)
    out += _HEAD2

    bits = _BitWriter(out)
    green_offset = 1 if channels > 2 else 0
    blue_offset = 2 if channels > 2 else 0
    dc_y = dc_u = dc_v = 0
    for top in range(0, height, 8):
        for left in range(0, width, 8):
            y_block: list[float] = []
            u_block: list[float] = []
            v_block: list[float] = []
            for row in range(top, top + 8):
                clamped = min(row, height - 1)
                base = (height - 1 - clamped if flip else clamped) * width * channels
                for col in range(left, left + 8):
                    p = base + min(col, width - 1) * channels
                    r = float(pixels[p])
                    g = float(pixels[p + green_offset])
                    b = float(pixels[p + blue_offset])
                    y_block.append(_f32(_f32(_f32(_f32(_Y_R * r) + _f32(_Y_G * g))
                                             + _f32(_Y_B * b)) - 128))
                    u_block.append(_f32(_f32(_f32(_U_R * r) - _f32(_U_G * g))
                                        + _f32(_U_B * b)))
                    v_block.append(_f32(_f32(_f32(_V_R * r) - _f32(_V_G * g))
                                        - _f32(_V_B * b)))
            dc_y = _process_block(bits, y_block, y_scale, dc_y, _YDC_HT, _YAC_HT)
            dc_u = _process_block(bits, u_block, uv_scale, dc_u, _UVDC_HT, _UVAC_HT)
            dc_v = _process_block(bits, v_block, uv_scale, dc_v, _UVDC_HT, _UVAC_HT)

    bits.write(0x7F, 7)
    out += b"\xff\xd9"
    return bytes(out)


def write_jpeg(
    path: PathType, width: int, height: int, channels: int, data,
    quality: int = 90, flip: bool = False,
) -> None:
    """Write pixels to ``path`` as a JPEG file."""
    payload = encode_jpeg(width, height, channels, data, quality, flip)
    with open(path, "wb") as handle:
        handle.write(payload)