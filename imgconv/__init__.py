"""Pure-Python PNG, JPEG, BMP, TGA and HDR encoders with grey and sepia filters."""

__version__ = "0.1.0"
__all__ = ["image", "jpeg", "png", "simple_formats"]