# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
dpifix - Pixel density normalization for JPEG and PNG images

Reads the density declared in JFIF APP0 segments and PNG pHYs chunks,
and writes 96 DPI copies of images that declare none, so that viewers
and printers render them at a predictable physical size. Other metadata
(EXIF, ICC profiles, text chunks, comments) is carried over unchanged.

Copyright 2025 DNAi inc.
"""

__version__ = "0.1.0"
__author__ = "DNAi inc."

from dpifix.config import ResetConfig
from dpifix.core import batch_reset_density, get_density, inspect_file, reset_density
from dpifix.density import (
    DEFAULT_DPI,
    DPI_72,
    DPI_96,
    DPI_120,
    PNG_PHYS_PIXELS_PER_UNIT,
    DensityDeclaration,
    DensityUnit,
    inspect_density,
    is_density_specified,
    rewrite_density,
)
from dpifix.exceptions import (
    DpiFixError,
    EncodeInstabilityError,
    MalformedMetadataTreeError,
    MetadataReadError,
    MetadataWriteError,
    UnsupportedFormatError,
)
from dpifix.format_detector import JPEG_MAGIC, PNG_MAGIC, FormatDetector, FormatTag
from dpifix.metadata_tree import MetadataNode, find_node

__all__ = [
    "ResetConfig",
    "batch_reset_density",
    "get_density",
    "inspect_file",
    "reset_density",
    "DEFAULT_DPI",
    "DPI_72",
    "DPI_96",
    "DPI_120",
    "PNG_PHYS_PIXELS_PER_UNIT",
    "DensityDeclaration",
    "DensityUnit",
    "inspect_density",
    "is_density_specified",
    "rewrite_density",
    "DpiFixError",
    "EncodeInstabilityError",
    "MalformedMetadataTreeError",
    "MetadataReadError",
    "MetadataWriteError",
    "UnsupportedFormatError",
    "JPEG_MAGIC",
    "PNG_MAGIC",
    "FormatDetector",
    "FormatTag",
    "MetadataNode",
    "find_node",
]
