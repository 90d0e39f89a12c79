# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
JPEG metadata

This module scans the marker segments of a JPEG file and exposes them as
a native metadata tree:

    dpifix_jpeg_image_1.0
        JPEGvariety
            app0JFIF  (majorVersion, minorVersion, resUnits, Xdensity,
                       Ydensity, thumbWidth, thumbHeight)
        markerSequence
            unknown     (MarkerTag, payload in user_object) - APPn segments
            app14Adobe  (version, flags0, flags1, transform)
            com         (comment)

Tables, frame headers and scan data belong to the encoder and are not
part of the tree.

Copyright 2025 DNAi inc.
"""

import struct
from typing import Any, Dict, List, Optional, Tuple

from dpifix.exceptions import MalformedMetadataTreeError, MetadataReadError
from dpifix.format_detector import JPEG_NATIVE_FORMAT
from dpifix.metadata_tree import MetadataNode


class JPEGSegmentReader:
    """
    Reads the metadata segments of a JPEG file.

    Scanning stops at the first SOS marker, since everything after it is
    entropy-coded image data.
    """

    # JPEG markers
    SOI = 0xFFD8  # Start of Image
    EOI = 0xFFD9  # End of Image
    SOS = 0xFFDA  # Start of Scan
    APP0 = 0xFFE0  # APP0 (JFIF)
    APP1 = 0xFFE1  # APP1 (EXIF, XMP)
    APP2 = 0xFFE2  # APP2 (ICC profile)
    APP14 = 0xFFEE  # APP14 (Adobe)
    APP15 = 0xFFEF
    COM = 0xFFFE  # Comment

    def __init__(self, file_data: bytes):
        """
        Initialize the reader.

        Args:
            file_data: Complete JPEG file data

        Raises:
            MetadataReadError: If the data does not start with an SOI marker
        """
        self.file_data = file_data
        self.segments: List[Tuple[int, bytes]] = []  # (marker, payload)
        self._parse_segments()

    def _parse_segments(self) -> None:
        data = self.file_data
        if len(data) < 2 or struct.unpack('>H', data[0:2])[0] != self.SOI:
            raise MetadataReadError("Invalid JPEG file: missing SOI marker")

        i = 2
        while i < len(data) - 1:
            if data[i] != 0xFF:
                i += 1
                continue

            marker_byte = data[i + 1]

            # Fill bytes
            if marker_byte == 0xFF:
                i += 1
                continue
            if marker_byte == 0x00:
                i += 2
                continue

            marker = 0xFF00 | marker_byte
            if marker in (self.EOI, self.SOS):
                break

            if i + 4 > len(data):
                raise MetadataReadError(f"Truncated JPEG segment at offset {i}")
            length = struct.unpack('>H', data[i + 2:i + 4])[0]
            if length < 2 or i + 2 + length > len(data):
                raise MetadataReadError(f"Invalid JPEG segment length {length} at offset {i}")

            self.segments.append((marker, data[i + 4:i + 2 + length]))
            i += 2 + length

    @classmethod
    def is_metadata_marker(cls, marker: int) -> bool:
        return cls.APP0 <= marker <= cls.APP15 or marker == cls.COM


class JPEGMetadata:
    """
    Metadata object for a decoded JPEG image.

    Holds the JFIF density block and the ordered list of metadata segments,
    and converts them to and from the native tree. merge_tree applies a
    partial subtree; set_from_tree replaces everything.

    Example:
        >>> metadata = JPEGMetadata.from_bytes(open('photo.jpg', 'rb').read())
        >>> tree = metadata.get_as_tree(JPEG_NATIVE_FORMAT)
    """

    native_format_name = JPEG_NATIVE_FORMAT

    JFIF_IDENTIFIER = b'JFIF\x00'
    EXIF_IDENTIFIER = b'Exif\x00\x00'
    ICC_IDENTIFIER = b'ICC_PROFILE\x00'
    ADOBE_IDENTIFIER = b'Adobe'
    MPF_IDENTIFIER = b'MPF\x00'

    JFIF_ATTRIBUTES = (
        'majorVersion', 'minorVersion', 'resUnits',
        'Xdensity', 'Ydensity', 'thumbWidth', 'thumbHeight',
    )
    JFIF_DEFAULTS = {
        'majorVersion': '1',
        'minorVersion': '2',
        'resUnits': '0',
        'Xdensity': '1',
        'Ydensity': '1',
        'thumbWidth': '0',
        'thumbHeight': '0',
    }

    def __init__(
        self,
        jfif: Optional[Dict[str, str]] = None,
        markers: Optional[List[Tuple[int, bytes]]] = None
    ):
        self.jfif = jfif
        self.markers: List[Tuple[int, bytes]] = list(markers or [])

    @classmethod
    def from_bytes(cls, file_data: bytes) -> 'JPEGMetadata':
        """
        Build the metadata object from raw JPEG file data.

        Only the first JFIF APP0 segment is used for density; any other APP0
        segment (e.g. a JFXX extension) is kept as an opaque marker.

        Raises:
            MetadataReadError: If the segment structure cannot be parsed
        """
        reader = JPEGSegmentReader(file_data)
        jfif = None
        markers = []
        for marker, payload in reader.segments:
            if not JPEGSegmentReader.is_metadata_marker(marker):
                continue
            if marker == JPEGSegmentReader.APP0 and jfif is None and payload.startswith(cls.JFIF_IDENTIFIER):
                jfif = cls._parse_jfif(payload)
                continue
            markers.append((marker, payload))
        return cls(jfif, markers)

    @classmethod
    def _parse_jfif(cls, payload: bytes) -> Dict[str, str]:
        # JFIF\0, version (2), units (1), Xdensity (2), Ydensity (2), Xthumb (1), Ythumb (1)
        if len(payload) < 14:
            raise MetadataReadError("Truncated JFIF APP0 segment")
        major, minor, units, x_density, y_density, thumb_w, thumb_h = struct.unpack(
            '>BBBHHBB', payload[5:14]
        )
        return {
            'majorVersion': str(major),
            'minorVersion': str(minor),
            'resUnits': str(units),
            'Xdensity': str(x_density),
            'Ydensity': str(y_density),
            'thumbWidth': str(thumb_w),
            'thumbHeight': str(thumb_h),
        }

    def get_as_tree(self, format_name: str) -> MetadataNode:
        """
        Return a fresh copy of the metadata as a native tree.

        Args:
            format_name: Must be the JPEG native format name

        Raises:
            ValueError: If another format name is requested
        """
        self._check_format_name(format_name)
        root = MetadataNode(JPEG_NATIVE_FORMAT)
        variety = root.append_child(MetadataNode('JPEGvariety'))
        if self.jfif is not None:
            variety.append_child(MetadataNode('app0JFIF', self.jfif))
        sequence = root.append_child(MetadataNode('markerSequence'))
        for marker, payload in self.markers:
            sequence.append_child(self._marker_to_node(marker, payload))
        return root

    def merge_tree(self, format_name: str, root: MetadataNode) -> None:
        """
        Merge a partial native tree into this metadata.

        Recognised children of the root:
        - mergeJFIFsubNode / JPEGvariety: a jfif / app0JFIF child whose
          non-None attributes override the current JFIF values. A missing
          JFIF block is created from the defaults first.
        - mergeSequenceSubNode / markerSequence: marker nodes appended after
          the existing segments.

        Nothing else is touched.

        Raises:
            ValueError: If format_name is not the JPEG native format name
            MalformedMetadataTreeError: If the subtree has an unexpected shape
        """
        self._check_format_name(format_name)
        self._check_root(root)

        jfif = dict(self.jfif) if self.jfif is not None else None
        markers = list(self.markers)
        for child in root.children:
            if child.name in ('mergeJFIFsubNode', 'JPEGvariety'):
                for sub in child.children:
                    if sub.name not in ('jfif', 'app0JFIF'):
                        raise MalformedMetadataTreeError(f"Unexpected JFIF node '{sub.name}'")
                    jfif = self._merge_jfif(jfif, sub)
            elif child.name in ('mergeSequenceSubNode', 'markerSequence'):
                markers.extend(self._node_to_marker(sub) for sub in child.children)
            else:
                raise MalformedMetadataTreeError(f"Unexpected merge node '{child.name}'")

        self.jfif = jfif
        self.markers = markers

    def set_from_tree(self, format_name: str, root: MetadataNode) -> None:
        """
        Replace all metadata with the content of a complete native tree.

        Raises:
            ValueError: If format_name is not the JPEG native format name
            MalformedMetadataTreeError: If the tree has an unexpected shape
        """
        self._check_format_name(format_name)
        self._check_root(root)

        jfif = None
        markers: List[Tuple[int, bytes]] = []
        for child in root.children:
            if child.name == 'JPEGvariety':
                for sub in child.children:
                    if sub.name != 'app0JFIF':
                        raise MalformedMetadataTreeError(f"Unexpected JFIF node '{sub.name}'")
                    jfif = self._merge_jfif(None, sub)
            elif child.name == 'markerSequence':
                markers.extend(self._node_to_marker(sub) for sub in child.children)
            else:
                raise MalformedMetadataTreeError(f"Unexpected node '{child.name}'")

        self.jfif = jfif
        self.markers = markers

    def encoder_params(self) -> Dict[str, Any]:
        """
        Translate the metadata into Pillow JPEG save parameters.

        EXIF, ICC and the first comment map to their dedicated parameters;
        every other segment except APP14 (written by the encoder itself) and
        the APP2 MPF index (only the first frame is re-encoded) is passed
        through verbatim in 'extra'.
        """
        params: Dict[str, Any] = {}
        if self.jfif is not None:
            units = int(self.jfif['resUnits'])
            x_density = int(self.jfif['Xdensity'])
            y_density = int(self.jfif['Ydensity'])
            if units == 1:
                params['dpi'] = (x_density, y_density)
            elif units == 2:
                params['dpi'] = (round(x_density * 2.54), round(y_density * 2.54))

        exif = b''
        comment = b''
        icc_parts = []
        extra = bytearray()
        for marker, payload in self.markers:
            if marker == JPEGSegmentReader.APP1 and not exif and payload.startswith(self.EXIF_IDENTIFIER):
                exif = payload
            elif marker == JPEGSegmentReader.APP2 and payload.startswith(self.ICC_IDENTIFIER):
                icc_parts.append(payload)
            elif marker == JPEGSegmentReader.COM and not comment:
                comment = payload
            elif marker == JPEGSegmentReader.APP14:
                continue
            elif marker == JPEGSegmentReader.APP2 and payload.startswith(self.MPF_IDENTIFIER):
                # Offsets point at frames that are not re-encoded
                continue
            else:
                extra.extend(struct.pack('>HH', marker, len(payload) + 2))
                extra.extend(payload)

        params['exif'] = exif
        params['comment'] = comment
        # XMP travels in 'extra' with the other APP1 segments
        params['xmp'] = b''
        params['icc_profile'] = None
        if icc_parts:
            # ICC_PROFILE\0, sequence number (1), count (1), data
            icc_parts.sort(key=lambda part: part[12] if len(part) > 12 else 0)
            params['icc_profile'] = b''.join(part[14:] for part in icc_parts)
        if extra:
            params['extra'] = bytes(extra)
        return params

    def _merge_jfif(self, current: Optional[Dict[str, str]], node: MetadataNode) -> Dict[str, str]:
        merged = dict(current) if current is not None else dict(self.JFIF_DEFAULTS)
        for name, value in node.attributes.items():
            if name not in self.JFIF_ATTRIBUTES:
                raise MalformedMetadataTreeError(f"Unknown JFIF attribute '{name}'")
            if value is None:
                continue
            try:
                number = int(value)
            except ValueError:
                raise MalformedMetadataTreeError(f"JFIF attribute {name}={value!r} is not an integer")
            if name == 'resUnits' and number not in (0, 1, 2):
                raise MalformedMetadataTreeError(f"Invalid JFIF resUnits value: {number}")
            if name in ('Xdensity', 'Ydensity') and not 0 < number <= 0xFFFF:
                raise MalformedMetadataTreeError(f"JFIF {name} out of range: {number}")
            merged[name] = str(number)
        return merged

    def _marker_to_node(self, marker: int, payload: bytes) -> MetadataNode:
        if marker == JPEGSegmentReader.COM:
            return MetadataNode('com', {'comment': payload.decode('latin-1')}, user_object=payload)
        if marker == JPEGSegmentReader.APP14 and payload.startswith(self.ADOBE_IDENTIFIER) and len(payload) >= 12:
            version, flags0, flags1, transform = struct.unpack('>HHHB', payload[5:12])
            return MetadataNode('app14Adobe', {
                'version': str(version),
                'flags0': str(flags0),
                'flags1': str(flags1),
                'transform': str(transform),
            }, user_object=payload)
        return MetadataNode('unknown', {'MarkerTag': str(marker & 0xFF)}, user_object=payload)

    def _node_to_marker(self, node: MetadataNode) -> Tuple[int, bytes]:
        payload = node.user_object
        if node.name == 'com':
            if payload is None:
                payload = (node.get_attribute('comment') or '').encode('latin-1')
            return JPEGSegmentReader.COM, bytes(payload)
        if node.name == 'app14Adobe':
            if payload is None:
                try:
                    payload = self.ADOBE_IDENTIFIER + struct.pack(
                        '>HHHB',
                        int(node.get_attribute('version') or 100),
                        int(node.get_attribute('flags0') or 0),
                        int(node.get_attribute('flags1') or 0),
                        int(node.get_attribute('transform') or 0),
                    )
                except (ValueError, struct.error) as e:
                    raise MalformedMetadataTreeError(f"Invalid app14Adobe node: {e}")
            return JPEGSegmentReader.APP14, bytes(payload)
        if node.name == 'unknown':
            try:
                tag = int(node.get_attribute('MarkerTag') or '')
            except ValueError:
                raise MalformedMetadataTreeError("Marker node without a valid MarkerTag")
            if not JPEGSegmentReader.is_metadata_marker(0xFF00 | tag):
                raise MalformedMetadataTreeError(f"Marker 0x{tag:02X} is not a metadata segment")
            return 0xFF00 | tag, bytes(payload or b'')
        raise MalformedMetadataTreeError(f"Unexpected marker node '{node.name}'")

    @staticmethod
    def _check_format_name(format_name: str) -> None:
        if format_name != JPEG_NATIVE_FORMAT:
            raise ValueError(f"Unsupported metadata format: {format_name}")

    @staticmethod
    def _check_root(root: MetadataNode) -> None:
        if root.name != JPEG_NATIVE_FORMAT:
            raise MalformedMetadataTreeError(
                f"Root node must be named '{JPEG_NATIVE_FORMAT}', got '{root.name}'"
            )
