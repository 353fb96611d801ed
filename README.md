# imgconv

Image encoders written in pure Python with no third-party dependencies,
together with a small `Image` type that offers grey and sepia filters.

Output formats:

- PNG: built-in deflate compressor with fixed Huffman codes, and scanline
  filters chosen per row or forced
- baseline JPEG: 4:4:4 YCbCr, standard Huffman tables, quality 1–100
- BMP: 24-bit; alpha is blended onto a magenta (255, 0, 255) background
- TGA: run-length encoded by default, or uncompressed
- Radiance HDR: RGBE, from floating-point samples

## Installation

```
pip install .
```

## Pixel data

Pixels are interleaved 8-bit samples (floats for HDR), stored left to right and
top to bottom. The channel count selects the layout: 1 = grey, 2 = grey +
alpha, 3 = RGB, 4 = RGBA.

## The `Image` type

```python
from imgconv.image import Image

img = Image(width=2, height=1, channels=3, data=bytes([255, 0, 0, 0, 255, 0]))

img.size                  # 6: bytes of pixel data
gray = img.to_gray()      # 1 channel; RGBA input gives grey + alpha
sepia = img.to_sepia()    # same channels; needs RGB or RGBA input

gray.save_png("gray.png")
sepia.save_jpg("sepia.jpg", 90)   # quality is clamped to 0..100; 0 means 90
img.save_bmp("plain.bmp")
img.save_tga("plain.tga")         # run-length encoded
```

`Image` checks its size, channel count and data length when it is created and
raises `ValueError` if they do not agree. `Image.pixels()` yields each pixel as
a `bytes` object.

`to_gray` averages red, green and blue; grey input keeps its grey value, and
only RGBA input keeps its alpha channel. `to_sepia` raises `ValueError` for
grey or grey + alpha images.

The module-level functions `to_gray(image)` and `to_sepia(image)` do the same
as the methods.

## Encoding to bytes or files

Each format module offers `encode_*` functions returning `bytes` and `write_*`
functions that write a file:

```python
from imgconv.png import encode_png, write_png
from imgconv.jpeg import encode_jpeg, write_jpeg
from imgconv.simple_formats import encode_bmp, encode_tga, encode_hdr

pixels = bytes([10, 20, 30] * 4)
png_bytes = encode_png(2, 2, 3, pixels)
jpg_bytes = encode_jpeg(2, 2, 3, pixels, quality=75)
bmp_bytes = encode_bmp(2, 2, 3, pixels)
tga_bytes = encode_tga(2, 2, 3, pixels, rle=False)
hdr_bytes = encode_hdr(1, 1, 3, [0.5, 0.25, 1.0])
```

Options:

- every encoder takes `flip=True` to write the image upside down;
- `encode_png` takes `stride` (bytes between rows, packed by default),
  `compression_level` (hash-chain length, at least 5; default 8) and
  `force_filter` (0..4 forces a filter; any other value picks the filter per
  row that gives the smallest summed residuals);
- `encode_tga` takes `rle` (default `True`);
- `encode_jpeg` takes `quality` (0 means 90, otherwise clamped to 1..100);
  alpha is ignored.

Invalid sizes, channel counts or too little pixel data raise
`imgconv.simple_formats.ImageWriteError`, a subclass of `ValueError`.

The PNG module also exposes its building blocks: `zlib_compress(data, quality)`,
`crc32(data)` and `paeth(a, b, c)`.

## What it does not do

The package only writes images. It cannot read or decode image files, so an
`Image` has to be built from pixel data you already hold. There is no
command-line tool.

## Running the tests

```
pip install .[test]
pytest
```