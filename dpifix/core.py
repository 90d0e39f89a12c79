# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Density reset operations

This module provides the main API: reading the declared pixel density of
a JPEG or PNG file, and writing a copy with a 96 DPI equivalent density
when the source does not declare one.

The source file is never modified. Unsupported formats raise
UnsupportedFormatError; every other failure is logged and reported as a
None result so that batch runs keep going.

Copyright 2025 DNAi inc.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from dpifix.codec import decode, encode
from dpifix.config import ResetConfig
from dpifix.density import (
    DEFAULT_DPI,
    PNG_UNIT_METER,
    DensityDeclaration,
    density_tree,
    inspect_density,
    rewrite_density,
)
from dpifix.exceptions import (
    EncodeInstabilityError,
    MalformedMetadataTreeError,
    MetadataReadError,
    UnsupportedFormatError,
)
from dpifix.format_detector import FormatTag, resolve_format
from dpifix.tempfiles import create_temp_file

logger = logging.getLogger(__name__)


def inspect_file(image_file: Union[str, Path]) -> Tuple[FormatTag, Optional[DensityDeclaration]]:
    """
    Read the declared pixel density of an image file.

    Args:
        image_file: Path to a JPEG or PNG file

    Returns:
        (format tag, declaration) - declaration is None when unspecified

    Raises:
        FileNotFoundError: If the file does not exist
        MetadataReadError: If the file or its metadata cannot be read
        UnsupportedFormatError: If the file is neither JPEG nor PNG
    """
    with decode(image_file) as decoded:
        format_tag = resolve_format(decoded.native_format_name, decoded.format_name).require_supported()
        return format_tag, inspect_density(density_tree(decoded.metadata, format_tag), format_tag)


def get_density(image_file: Union[str, Path]) -> Optional[int]:
    """
    Get the pixel density of an image file.

    For JPEG files this is the horizontal density in DPI, available only
    when the JFIF block declares inches. For PNG files the pHYs unit
    specifier (1) is returned when the density is given in meters; the
    value only signals that a density is specified.

    Args:
        image_file: Path to a JPEG or PNG file

    Returns:
        Density as described above, or None if unspecified or unreadable

    Raises:
        UnsupportedFormatError: If the file is neither JPEG nor PNG
    """
    try:
        format_tag, declaration = inspect_file(image_file)
    except MetadataReadError:
        logger.error("Cannot read density of %s", image_file, exc_info=True)
        return None

    if declaration is None:
        return None
    if format_tag is FormatTag.PNG:
        return PNG_UNIT_METER
    return declaration.dpi


def reset_density(image_file: Union[str, Path], config: Optional[ResetConfig] = None) -> Optional[Path]:
    """
    Write a copy of an image with its density set to 96 DPI.

    Nothing is written when the image already declares a density.

    Args:
        image_file: Path to a JPEG or PNG file
        config: Output options (default: ResetConfig())

    Returns:
        Path of the new file, or None if the density was already specified
        or the image could not be processed

    Raises:
        FileNotFoundError: If the file does not exist
        UnsupportedFormatError: If the file is neither JPEG nor PNG

    Example:
        >>> fixed = reset_density('scan.jpg')
        >>> if fixed is not None:
        ...     print(f"96 DPI copy written to {fixed}")
    """
    config = config or ResetConfig()
    path = Path(image_file)

    try:
        decoded = decode(path)
    except MetadataReadError:
        logger.error("Cannot read metadata of %s", path, exc_info=True)
        return None

    with decoded:
        format_tag = resolve_format(decoded.native_format_name, decoded.format_name).require_supported()
        metadata = decoded.metadata

        try:
            declaration = inspect_density(density_tree(metadata, format_tag), format_tag)
        except MetadataReadError:
            logger.error("Cannot read density of %s", path, exc_info=True)
            return None
        if declaration is not None and declaration.is_specified:
            logger.debug("Density of %s already specified (%s), leaving it untouched", path, declaration)
            return None

        try:
            rewrite_density(metadata, format_tag)
        except MalformedMetadataTreeError:
            logger.error("Cannot rewrite density of %s", path, exc_info=True)
            return None

        output = create_temp_file(format_tag.extension, config.output_dir, config.prefix)
        try:
            encode(decoded, metadata, output, optimize=config.optimize, keep_quality=config.keep_jpeg_quality)
        except (MetadataReadError, MalformedMetadataTreeError, EncodeInstabilityError):
            logger.error("Cannot write density-adjusted copy of %s", path, exc_info=True)
            output.unlink(missing_ok=True)
            return None
        except Exception:
            output.unlink(missing_ok=True)
            raise

    logger.info("Density of %s reset to %d DPI: %s", path, DEFAULT_DPI, output)
    return output


def batch_reset_density(
    file_paths: List[Union[str, Path]],
    config: Optional[ResetConfig] = None,
    error_handler: Optional[Callable[[Path, Exception], None]] = None
) -> Dict[Path, Optional[Path]]:
    """
    Reset the density of multiple files.

    A file that is missing or unsupported does not stop the batch: the
    error goes to error_handler (or the log) and its result is None.

    Args:
        file_paths: Files to process
        config: Output options shared by all files
        error_handler: Optional callback function for handling errors (path, exception)

    Returns:
        Dictionary mapping each input path to its output path (or None)
    """
    results: Dict[Path, Optional[Path]] = {}

    for file_path in file_paths:
        path = Path(file_path)
        try:
            results[path] = reset_density(path, config)
        except (UnsupportedFormatError, FileNotFoundError) as e:
            if error_handler:
                error_handler(path, e)
            else:
                logger.error("Skipping %s: %s", path, e)
            results[path] = None

    return results
