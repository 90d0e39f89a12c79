# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
File format detector

This module maps codec-reported format names to the format tags the
density logic understands, and offers signature-based sniffing for
callers that need to classify files before decoding them.

Copyright 2025 DNAi inc.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from dpifix.exceptions import UnsupportedFormatError

# JPEG magic number (SOI marker)
JPEG_MAGIC_CODE_0 = 0xFF
JPEG_MAGIC_CODE_1 = 0xD8
JPEG_MAGIC = bytes((JPEG_MAGIC_CODE_0, JPEG_MAGIC_CODE_1))

PNG_MAGIC = b'\x89PNG\r\n\x1a\n'

# Metadata tree format names
JPEG_NATIVE_FORMAT = 'dpifix_jpeg_image_1.0'
PNG_NATIVE_FORMAT = 'dpifix_png_image_1.0'
STANDARD_FORMAT = 'dpifix_standard_image_1.0'


class FormatTag(Enum):
    JPEG = 'JPEG'
    PNG = 'PNG'
    UNSUPPORTED = 'UNSUPPORTED'

    @property
    def extension(self) -> str:
        """File extension used for output files of this format."""
        if self is FormatTag.JPEG:
            return 'jpg'
        if self is FormatTag.PNG:
            return 'png'
        raise UnsupportedFormatError("Unsupported image format")

    def require_supported(self) -> 'FormatTag':
        if self is FormatTag.UNSUPPORTED:
            raise UnsupportedFormatError("Unsupported image format: only JPEG and PNG are supported")
        return self


def resolve_format(native_format_name: Optional[str], format_name: Optional[str]) -> FormatTag:
    """
    Resolve the format tag of a decoded image.

    JPEG is recognised by the native metadata format name of its metadata
    object, PNG by the codec's format name (case-insensitive).

    Args:
        native_format_name: Native metadata format name, if metadata was read
        format_name: Format name reported by the codec (e.g. 'JPEG', 'PNG', 'BMP')

    Returns:
        FormatTag (UNSUPPORTED if neither matches)
    """
    if native_format_name == JPEG_NATIVE_FORMAT:
        return FormatTag.JPEG
    if format_name and format_name.lower() == 'png':
        return FormatTag.PNG
    return FormatTag.UNSUPPORTED


class FormatDetector:
    """
    Detects JPEG and PNG files from file signatures and extensions.
    """

    FORMAT_SIGNATURES: Dict[bytes, FormatTag] = {
        JPEG_MAGIC: FormatTag.JPEG,
        PNG_MAGIC: FormatTag.PNG,
    }

    EXTENSION_FORMATS: Dict[str, FormatTag] = {
        '.jpg': FormatTag.JPEG, '.jpeg': FormatTag.JPEG,
        '.jpe': FormatTag.JPEG, '.jfif': FormatTag.JPEG,
        '.png': FormatTag.PNG,
    }

    @classmethod
    def detect_format(cls, file_path: Optional[str] = None, file_data: Optional[bytes] = None) -> FormatTag:
        """
        Detect file format from file data and/or path.

        The signature wins over the extension when both are available.

        Args:
            file_path: Path to file
            file_data: File data (first few bytes are enough)

        Returns:
            FormatTag (UNSUPPORTED if not detected)
        """
        if file_data:
            for signature, tag in cls.FORMAT_SIGNATURES.items():
                if file_data.startswith(signature):
                    return tag
            return FormatTag.UNSUPPORTED

        if file_path:
            ext = Path(file_path).suffix.lower()
            return cls.EXTENSION_FORMATS.get(ext, FormatTag.UNSUPPORTED)

        return FormatTag.UNSUPPORTED

    @classmethod
    def is_supported_format(cls, file_path: str) -> bool:
        return cls.detect_format(file_path=file_path) is not FormatTag.UNSUPPORTED
