[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "imgconv"
version = "0.1.0"
description = "Pure-Python image encoders (PNG, JPEG, BMP, TGA, HDR) with grey and sepia filters"
requires-python = ">=3.10"
dependencies = []
keywords = ["image", "png", "jpeg", "bmp", "tga", "hdr", "grayscale", "sepia", "encoder"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Graphics :: Graphics Conversion",
]

[project.optional-dependencies]
test = ["pytest", "hypothesis"]

[tool.hatch.build.targets.wheel]
packages = ["imgconv"]

[tool.pytest.ini_options]
addopts = "-ra"
