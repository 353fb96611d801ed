"""In-memory 8-bit images with grey and sepia conversions and file output."""

from __future__ import annotations

from dataclasses import dataclass
from os import PathLike
from typing import Union

from imgconv.jpeg import write_jpeg
from imgconv.png import write_png
from imgconv.simple_formats import write_bmp, write_tga

PathType = Union[str, "PathLike[str]"]

# Sepia coefficients, one row per output channel (red, green, blue).
_SEPIA = (
    (0.393, 0.769, 0.189),
    (0.349, 0.686, 0.168),
    (0.272, 0.534, 0.131),
)


@dataclass
class Image:
    """Interleaved 8-bit pixels, left to right and top to bottom.

    The channel layout follows the channel count: 1 = grey, 2 = grey + alpha,
    3 = RGB, 4 = RGBA.
    """

    width: int
    height: int
    channels: int
    data: bytes = b""

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(f"invalid image size {self.width}x{self.height}")
        if not 1 <= self.channels <= 4:
            raise ValueError(f"unsupported channel count {self.channels}")
        self.data = bytes(self.data)
        if len(self.data) != self.size:
            raise ValueError(
                f"pixel data holds {len(self.data)} bytes, {self.size} are expected"
            )

    @property
    def size(self) -> int:
        """Number of bytes of pixel data."""
        return self.width * self.height * self.channels

    def pixels(self):
        """Yield each pixel as a bytes object of ``channels`` bytes."""
        step = self.channels
        for start in range(0, self.size, step):
            yield self.data[start:start + step]

    def to_gray(self) -> "Image":
        """Return a grey copy; an alpha channel is kept only for RGBA input."""
        return to_gray(self)

    def to_sepia(self) -> "Image":
        """Return a sepia-toned copy with the same channels."""
        return to_sepia(self)

    def save_png(self, path: PathType) -> None:
        """Write the image as a PNG file."""
        write_png(path, self.width, self.height, self.channels, self.data,
                  self.width * self.channels)

    def save_jpg(self, path: PathType, quality: int) -> None:
        """Write the image as a JPEG file, ``quality`` clamped to 0..100."""
        quality = max(min(quality, 100), 0)
        write_jpeg(path, self.width, self.height, self.channels, self.data, quality)

    def save_bmp(self, path: PathType) -> None:
        """Write the image as a BMP file."""
        write_bmp(path, self.width, self.height, self.channels, self.data)

    def save_tga(self, path: PathType) -> None:
        """Write the image as a run-length encoded TGA file."""
        write_tga(path, self.width, self.height, self.channels, self.data)


def to_gray(image: Image) -> Image:
    """Average red, green and blue into one grey channel.

    RGBA input yields grey + alpha; every other input yields plain grey.
    Grey input keeps its grey value.
    """
    has_alpha = image.channels == 4
    out = bytearray()
    for pixel in image.pixels():
        if image.channels >= 3:
            out.append(int((pixel[0] + pixel[1] + pixel[2]) / 3.0))
        else:
            out.append(pixel[0])
        if has_alpha:
            out.append(pixel[3])
    return Image(image.width, image.height, 2 if has_alpha else 1, bytes(out))


def to_sepia(image: Image) -> Image:
    """Apply the classic sepia matrix to an RGB or RGBA image."""
    if image.channels < 3:
        raise ValueError("sepia toning needs an RGB or RGBA image")
    out = bytearray()
    for pixel in image.pixels():
        red, green, blue = pixel[0], pixel[1], pixel[2]
        for kr, kg, kb in _SEPIA:
            out.append(int(min(kr * red + kg * green + kb * blue, 255.0)))
        if image.channels == 4:
            out.append(pixel[3])
    return Image(image.width, image.height, image.channels, bytes(out))