# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Pixel density inspection and rewriting

This module reads the declared pixel density from a metadata tree and,
when it is unspecified, asserts a fixed 96 DPI equivalent:

- JPEG: the app0JFIF block under JPEGvariety (resUnits, Xdensity, Ydensity),
  rewritten through a merge so that EXIF, ICC and other segments survive.
- PNG: the pHYs node of the standard tree, replaced in place (or appended)
  and written back with set_from_tree.

Copyright 2025 DNAi inc.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union

from dpifix.exceptions import MetadataReadError, UnsupportedFormatError
from dpifix.format_detector import JPEG_NATIVE_FORMAT, STANDARD_FORMAT, FormatTag
from dpifix.jpeg_metadata import JPEGMetadata
from dpifix.metadata_tree import MetadataNode, find_node
from dpifix.png_metadata import PNGMetadata

logger = logging.getLogger(__name__)

# Common DPI values
DPI_72 = 72
DPI_96 = 96
DPI_120 = 120
DEFAULT_DPI = DPI_96

CENTIMETERS_PER_INCH = 2.54

# pHYs unit specifier for meters (0 means aspect ratio only)
PNG_UNIT_METER = 1


class DensityUnit(IntEnum):
    """
    Pixel density units.

    NONE, PIXELS_PER_INCH and PIXELS_PER_CM are the JFIF resUnits codes.
    PIXELS_PER_METER is a PNG-only value used inside this package; it has
    no meaning in a JFIF segment.
    """
    NONE = 0
    PIXELS_PER_INCH = 1
    PIXELS_PER_CM = 2
    PIXELS_PER_METER = 3


def centimeter_to_pixel(centimeters: float, dpi: int = DEFAULT_DPI) -> int:
    """
    Convert a physical length to a pixel count at the given density.

    Args:
        centimeters: Length in centimeters
        dpi: Pixels per inch

    Returns:
        Pixel count, rounded to the nearest integer
    """
    return round(centimeters / CENTIMETERS_PER_INCH * dpi)


# pHYs pixels per meter equivalent to 96 DPI (100 cm at 96 DPI = 3780)
PNG_PHYS_PIXELS_PER_UNIT = centimeter_to_pixel(100)


@dataclass(frozen=True)
class DensityDeclaration:
    """
    Pixel density declared by an image.

    Horizontal and vertical density are assumed equal; value holds the
    horizontal one (Xdensity for JPEG, pixelsPerUnitXAxis for PNG).
    """
    unit: DensityUnit
    value: Optional[int] = None

    @property
    def is_specified(self) -> bool:
        return self.unit is not DensityUnit.NONE

    @property
    def dpi(self) -> Optional[int]:
        """Density in pixels per inch, only available when declared in inches."""
        if self.unit is DensityUnit.PIXELS_PER_INCH:
            return self.value
        return None


def _int_attribute(node: MetadataNode, name: str) -> Optional[int]:
    if not node.has_attribute(name):
        return None
    value = node.get_attribute(name)
    try:
        return int(value)
    except ValueError:
        raise MetadataReadError(f"{node.name} attribute {name}={value!r} is not an integer")


def _find_jfif(tree: MetadataNode) -> Optional[MetadataNode]:
    # Fixed path: <root>/JPEGvariety/app0JFIF, first match in sibling order
    variety = tree.find_child('JPEGvariety')
    if variety is None:
        return None
    return variety.find_child('app0JFIF')


def _inspect_jpeg(tree: MetadataNode) -> Optional[DensityDeclaration]:
    jfif = _find_jfif(tree)
    if jfif is None:
        return None
    res_units = _int_attribute(jfif, 'resUnits')
    if not res_units:
        return None
    if res_units not in (DensityUnit.PIXELS_PER_INCH, DensityUnit.PIXELS_PER_CM):
        raise MetadataReadError(f"Unknown JFIF resUnits value: {res_units}")
    return DensityDeclaration(DensityUnit(res_units), _int_attribute(jfif, 'Xdensity'))


def _inspect_png(tree: MetadataNode) -> Optional[DensityDeclaration]:
    phys = find_node(tree, 'pHYs')
    if phys is None:
        return None
    if _int_attribute(phys, 'unitSpecifier') != PNG_UNIT_METER:
        return None
    return DensityDeclaration(DensityUnit.PIXELS_PER_METER, _int_attribute(phys, 'pixelsPerUnitXAxis'))


def inspect_density(tree: MetadataNode, format_tag: FormatTag) -> Optional[DensityDeclaration]:
    """
    Read the pixel density declared in a metadata tree.

    Args:
        tree: Native tree (JPEG) or standard tree (PNG)
        format_tag: Format of the image the tree belongs to

    Returns:
        DensityDeclaration, or None if the density is unspecified

    Raises:
        MetadataReadError: If a density attribute is not an integer
        UnsupportedFormatError: If format_tag is neither JPEG nor PNG
    """
    if format_tag is FormatTag.JPEG:
        return _inspect_jpeg(tree)
    if format_tag is FormatTag.PNG:
        return _inspect_png(tree)
    raise UnsupportedFormatError(f"Unsupported image format: {format_tag.value}")


def is_density_specified(tree: MetadataNode, format_tag: FormatTag) -> bool:
    declaration = inspect_density(tree, format_tag)
    return declaration is not None and declaration.is_specified


def build_jfif_merge_tree(dpi: int = DEFAULT_DPI) -> MetadataNode:
    """
    Build the JPEG merge subtree asserting a density in pixels per inch.

    Version and thumbnail attributes are cleared so that the merge keeps
    whatever the image already has (or the JFIF defaults).
    """
    root = MetadataNode(JPEG_NATIVE_FORMAT)
    merge_jfif = root.append_child(MetadataNode('mergeJFIFsubNode'))
    merge_jfif.append_child(MetadataNode('jfif', {
        'majorVersion': None,
        'minorVersion': None,
        'thumbWidth': None,
        'thumbHeight': None,
        'resUnits': str(int(DensityUnit.PIXELS_PER_INCH)),
        'Xdensity': str(dpi),
        'Ydensity': str(dpi),
    }))
    root.append_child(MetadataNode('mergeSequenceSubNode'))
    return root


def build_phys_node(pixels_per_unit: int = PNG_PHYS_PIXELS_PER_UNIT) -> MetadataNode:
    return MetadataNode('pHYs', {
        'pixelsPerUnitXAxis': str(pixels_per_unit),
        'pixelsPerUnitYAxis': str(pixels_per_unit),
        'unitSpecifier': str(PNG_UNIT_METER),
        'present': 'true',
    })


def _rewrite_jpeg(metadata: JPEGMetadata) -> None:
    metadata.merge_tree(JPEG_NATIVE_FORMAT, build_jfif_merge_tree())


def _rewrite_png(metadata: PNGMetadata) -> None:
    root = metadata.get_as_tree(STANDARD_FORMAT)
    phys = build_phys_node()

    existing = find_node(root, 'pHYs')
    if existing is not None:
        parent = root.find_parent(existing)
        parent.replace_child(phys, existing)
    else:
        root.append_child(phys)

    metadata.set_from_tree(STANDARD_FORMAT, root)


def rewrite_density(metadata: Union[JPEGMetadata, PNGMetadata], format_tag: FormatTag) -> None:
    """
    Assert a 96 DPI equivalent density on a metadata object, in place.

    Meant to run only after inspect_density reported the density as
    unspecified.

    Args:
        metadata: Metadata object of the decoded image
        format_tag: Format of the image

    Raises:
        MalformedMetadataTreeError: If the metadata object rejects the new tree
        UnsupportedFormatError: If format_tag is neither JPEG nor PNG
    """
    if format_tag is FormatTag.JPEG:
        _rewrite_jpeg(metadata)
    elif format_tag is FormatTag.PNG:
        _rewrite_png(metadata)
    else:
        raise UnsupportedFormatError(f"Unsupported image format: {format_tag.value}")
    logger.debug("Density rewritten for %s image", format_tag.value)


def density_tree(metadata: Union[JPEGMetadata, PNGMetadata], format_tag: FormatTag) -> MetadataNode:
    """Return the tree the inspector reads for this format."""
    if format_tag is FormatTag.JPEG:
        return metadata.get_as_tree(JPEG_NATIVE_FORMAT)
    if format_tag is FormatTag.PNG:
        return metadata.get_as_tree(STANDARD_FORMAT)
    raise UnsupportedFormatError(f"Unsupported image format: {format_tag.value}")
