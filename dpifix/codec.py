# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Image codec adapter

This module pairs Pillow's decoders and encoders with the metadata objects
of this package. Pillow owns the pixel data and the bitstream; metadata is
read from the raw file bytes and handed back to Pillow as save parameters
when the image is re-encoded.

Copyright 2025 DNAi inc.
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from PIL import Image, JpegImagePlugin, UnidentifiedImageError

from dpifix.exceptions import (
    EncodeInstabilityError,
    MalformedMetadataTreeError,
    MetadataReadError,
)
from dpifix.jpeg_metadata import JPEGMetadata
from dpifix.png_metadata import PNGMetadata

logger = logging.getLogger(__name__)

ImageMetadata = Union[JPEGMetadata, PNGMetadata]


@dataclass
class DecodedImage:
    """
    A decoded image and its metadata object.

    Use as a context manager, or call close(), to release the Pillow image.
    metadata is None for formats other than JPEG and PNG.
    """
    path: Path
    image: Image.Image
    format_name: Optional[str]
    metadata: Optional[ImageMetadata]

    @property
    def native_format_name(self) -> Optional[str]:
        if self.metadata is None:
            return None
        return self.metadata.native_format_name

    def load_pixels(self) -> None:
        """
        Decode the full pixel data.

        Raises:
            MetadataReadError: If the image data is truncated or corrupt
        """
        try:
            self.image.load()
        except (OSError, SyntaxError) as e:
            raise MetadataReadError(f"Failed to decode image data of {self.path}: {str(e)}") from e

    def close(self) -> None:
        self.image.close()

    def __enter__(self) -> 'DecodedImage':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def decode(file_path: Union[str, Path]) -> DecodedImage:
    """
    Open an image and read its metadata.

    Pixel data is decoded lazily (see DecodedImage.load_pixels).

    Args:
        file_path: Path to the image file

    Returns:
        DecodedImage

    Raises:
        FileNotFoundError: If the file does not exist
        MetadataReadError: If the file is not a readable image or its
            metadata structure is corrupt
    """
    path = Path(file_path)
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")

    data = path.read_bytes()
    try:
        image = Image.open(io.BytesIO(data))
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise MetadataReadError(f"Cannot decode image {path}: {str(e)}") from e

    # Multi-picture files (MPO) are JPEG files with extra frames; only the
    # first frame is read and written back
    format_name = 'JPEG' if isinstance(image, JpegImagePlugin.JpegImageFile) else image.format

    try:
        if format_name == 'JPEG':
            metadata: Optional[ImageMetadata] = JPEGMetadata.from_bytes(data)
        elif format_name == 'PNG':
            metadata = PNGMetadata.from_bytes(data)
        else:
            metadata = None
    except MetadataReadError:
        image.close()
        raise

    logger.debug("Decoded %s as %s", path, image.format)
    return DecodedImage(path, image, format_name, metadata)


def encode(
    decoded: DecodedImage,
    metadata: ImageMetadata,
    output_path: Union[str, Path],
    optimize: bool = True,
    keep_quality: bool = True
) -> Path:
    """
    Re-encode a decoded image with the given metadata into a new file.

    Args:
        decoded: Image returned by decode()
        metadata: Metadata object to write (usually decoded.metadata, adjusted)
        output_path: File to write; never the source file
        optimize: Enable the encoder's optimization flags
        keep_quality: JPEG only - reuse the source quantization tables and subsampling

    Returns:
        Path of the written file

    Raises:
        MetadataReadError: If the source pixel data cannot be decoded
        MalformedMetadataTreeError: If the encoder rejects the metadata
        EncodeInstabilityError: If the encoder fails while writing
    """
    output_path = Path(output_path)
    if output_path.resolve() == decoded.path.resolve():
        raise ValueError("Refusing to overwrite the source image")

    decoded.load_pixels()

    params = metadata.encoder_params()
    params['optimize'] = optimize
    if decoded.format_name == 'JPEG':
        params['progressive'] = bool(decoded.image.info.get('progressive'))
        if keep_quality:
            # Same effect as quality='keep', which Pillow refuses for MPO sources
            params['qtables'] = decoded.image.quantization
            params['subsampling'] = JpegImagePlugin.get_sampling(decoded.image)

    try:
        with open(output_path, 'wb') as f:
            decoded.image.save(f, format=decoded.format_name, **params)
    except ValueError as e:
        raise MalformedMetadataTreeError(f"Encoder rejected metadata for {decoded.path}: {str(e)}") from e
    except OSError as e:
        raise EncodeInstabilityError(f"Encoder failed while writing {output_path}: {str(e)}") from e

    logger.debug("Encoded %s to %s", decoded.path, output_path)
    return output_path
