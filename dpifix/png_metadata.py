# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
PNG metadata

This module reads the ancillary chunks of a PNG file into a metadata
object. The object's canonical form is the standard (format-independent)
tree, where density lives in a pHYs node directly under the root:

    dpifix_standard_image_1.0
        Text
            TextEntry   (keyword, value, language, translatedKeyword,
                         compression, encoding)
        ICCProfile      (name; raw profile in user_object)
        Exif            (raw TIFF block in user_object)
        pHYs            (pixelsPerUnitXAxis, pixelsPerUnitYAxis,
                         unitSpecifier, present)
        UnknownChunk    (type, afterIDAT; chunk data in user_object)

Children appear in the order of the chunks they came from. A read-only
native view (chunk-named nodes plus IHDR) is also available.

Copyright 2025 DNAi inc.
"""

import struct
import zlib
from typing import Any, Dict, List, Optional, Tuple

from PIL import PngImagePlugin

from dpifix.exceptions import MalformedMetadataTreeError, MetadataReadError
from dpifix.format_detector import PNG_MAGIC, PNG_NATIVE_FORMAT, STANDARD_FORMAT
from dpifix.metadata_tree import MetadataNode


class PNGChunkReader:
    """
    Reads the chunks of a PNG file.
    """

    # PNG chunk types
    CHUNK_IHDR = b'IHDR'
    CHUNK_PLTE = b'PLTE'
    CHUNK_IDAT = b'IDAT'
    CHUNK_IEND = b'IEND'
    CHUNK_PHYS = b'pHYs'
    CHUNK_TEXT = b'tEXt'
    CHUNK_ZTXT = b'zTXt'
    CHUNK_ITXT = b'iTXt'
    CHUNK_ICCP = b'iCCP'
    CHUNK_EXIF = b'eXIf'

    # Chunks the encoder writes from the pixel data
    ENCODER_CHUNKS = {
        CHUNK_IHDR, CHUNK_PLTE, CHUNK_IDAT, CHUNK_IEND,
        b'tRNS', b'acTL', b'fcTL', b'fdAT',
    }

    def __init__(self, png_data: bytes):
        """
        Initialize the reader.

        Args:
            png_data: Complete PNG file data

        Raises:
            MetadataReadError: If the signature is missing or a chunk is truncated
        """
        self.png_data = png_data
        self.chunks: List[Tuple[bytes, bytes]] = []  # (chunk_type, chunk_data)
        self._parse_png_chunks()

    def _parse_png_chunks(self) -> None:
        png_data = self.png_data
        if not png_data.startswith(PNG_MAGIC):
            raise MetadataReadError("Invalid PNG file: missing signature")

        offset = 8  # Skip PNG signature
        while offset < len(png_data):
            if offset + 8 > len(png_data):
                raise MetadataReadError(f"Truncated PNG chunk header at offset {offset}")
            chunk_length = struct.unpack('>I', png_data[offset:offset + 4])[0]
            chunk_type = png_data[offset + 4:offset + 8]
            offset += 8

            # Chunk data plus CRC (4 bytes)
            if offset + chunk_length + 4 > len(png_data):
                raise MetadataReadError(f"Truncated PNG chunk {chunk_type!r}")
            chunk_data = png_data[offset:offset + chunk_length]
            offset += chunk_length + 4

            self.chunks.append((chunk_type, chunk_data))
            if chunk_type == self.CHUNK_IEND:
                break


class PNGMetadata:
    """
    Metadata object for a decoded PNG image.

    get_as_tree returns copies; set_from_tree(STANDARD_FORMAT, ...) validates
    a complete standard tree and replaces the current one.

    Example:
        >>> metadata = PNGMetadata.from_bytes(open('chart.png', 'rb').read())
        >>> tree = metadata.get_as_tree(STANDARD_FORMAT)
    """

    native_format_name = PNG_NATIVE_FORMAT

    PHYS_ATTRIBUTES = ('pixelsPerUnitXAxis', 'pixelsPerUnitYAxis', 'unitSpecifier', 'present')
    STANDARD_NODES = ('Text', 'ICCProfile', 'Exif', 'pHYs', 'UnknownChunk')

    def __init__(self, header: Optional[Dict[str, str]] = None, standard_tree: Optional[MetadataNode] = None):
        self.header: Dict[str, str] = dict(header or {})
        self._standard = standard_tree if standard_tree is not None else MetadataNode(STANDARD_FORMAT)

    @classmethod
    def from_bytes(cls, png_data: bytes) -> 'PNGMetadata':
        """
        Build the metadata object from raw PNG file data.

        Raises:
            MetadataReadError: If the chunk structure or a chunk payload cannot be parsed
        """
        reader = PNGChunkReader(png_data)
        header: Dict[str, str] = {}
        root = MetadataNode(STANDARD_FORMAT)
        text_node = None
        seen_idat = False

        try:
            for chunk_type, data in reader.chunks:
                if chunk_type == PNGChunkReader.CHUNK_IHDR:
                    header = cls._parse_ihdr(data)
                elif chunk_type == PNGChunkReader.CHUNK_IDAT:
                    seen_idat = True
                elif chunk_type in PNGChunkReader.ENCODER_CHUNKS:
                    continue
                elif chunk_type == PNGChunkReader.CHUNK_PHYS:
                    root.append_child(cls._parse_phys(data))
                elif chunk_type in (PNGChunkReader.CHUNK_TEXT, PNGChunkReader.CHUNK_ZTXT, PNGChunkReader.CHUNK_ITXT):
                    if text_node is None:
                        text_node = root.append_child(MetadataNode('Text'))
                    text_node.append_child(cls._parse_text(chunk_type, data))
                elif chunk_type == PNGChunkReader.CHUNK_ICCP:
                    name, _, rest = data.partition(b'\x00')
                    root.append_child(MetadataNode(
                        'ICCProfile', {'name': name.decode('latin-1')},
                        user_object=zlib.decompress(rest[1:]),
                    ))
                elif chunk_type == PNGChunkReader.CHUNK_EXIF:
                    root.append_child(MetadataNode('Exif', user_object=data))
                else:
                    root.append_child(MetadataNode('UnknownChunk', {
                        'type': chunk_type.decode('latin-1'),
                        'afterIDAT': 'true' if seen_idat else 'false',
                    }, user_object=data))
        except (zlib.error, struct.error, IndexError, UnicodeDecodeError) as e:
            raise MetadataReadError(f"Failed to parse PNG chunk data: {str(e)}")

        return cls(header, root)

    @staticmethod
    def _parse_ihdr(data: bytes) -> Dict[str, str]:
        width, height, bit_depth, color_type, compression, filter_method, interlace = struct.unpack(
            '>IIBBBBB', data[:13]
        )
        return {
            'width': str(width),
            'height': str(height),
            'bitDepth': str(bit_depth),
            'colorType': str(color_type),
            'compressionMethod': str(compression),
            'filterMethod': str(filter_method),
            'interlaceMethod': str(interlace),
        }

    @staticmethod
    def _parse_phys(data: bytes) -> MetadataNode:
        ppu_x, ppu_y, unit = struct.unpack('>IIB', data[:9])
        return MetadataNode('pHYs', {
            'pixelsPerUnitXAxis': str(ppu_x),
            'pixelsPerUnitYAxis': str(ppu_y),
            'unitSpecifier': str(unit),
            'present': 'true',
        })

    @staticmethod
    def _parse_text(chunk_type: bytes, data: bytes) -> MetadataNode:
        keyword, _, rest = data.partition(b'\x00')
        attributes = {'keyword': keyword.decode('latin-1')}
        if chunk_type == PNGChunkReader.CHUNK_TEXT:
            attributes.update(value=rest.decode('latin-1'), compression='none', encoding='ISO-8859-1')
        elif chunk_type == PNGChunkReader.CHUNK_ZTXT:
            # compression method (1), compressed text
            attributes.update(
                value=zlib.decompress(rest[1:]).decode('latin-1'),
                compression='zip',
                encoding='ISO-8859-1',
            )
        else:
            # compression flag (1), compression method (1), language\0, translated keyword\0, text
            compressed = rest[0] == 1
            language, _, rest = rest[2:].partition(b'\x00')
            translated, _, text = rest.partition(b'\x00')
            if compressed:
                text = zlib.decompress(text)
            attributes.update(
                value=text.decode('utf-8'),
                language=language.decode('latin-1'),
                translatedKeyword=translated.decode('utf-8'),
                compression='zip' if compressed else 'none',
                encoding='UTF-8',
            )
        return MetadataNode('TextEntry', attributes)

    def get_as_tree(self, format_name: str) -> MetadataNode:
        """
        Return a fresh copy of the metadata as a tree.

        Args:
            format_name: STANDARD_FORMAT or the PNG native format name

        Raises:
            ValueError: If another format name is requested
        """
        if format_name == STANDARD_FORMAT:
            return self._standard.deep_copy()
        if format_name == PNG_NATIVE_FORMAT:
            return self._native_tree()
        raise ValueError(f"Unsupported metadata format: {format_name}")

    def set_from_tree(self, format_name: str, root: MetadataNode) -> None:
        """
        Replace the metadata with a complete standard tree.

        Args:
            format_name: Must be STANDARD_FORMAT; the native view is read-only
            root: Tree to take over (copied)

        Raises:
            ValueError: If another format name is given
            MalformedMetadataTreeError: If the tree has an unexpected shape
        """
        if format_name != STANDARD_FORMAT:
            raise ValueError(f"Metadata format {format_name} cannot be set from a tree")
        if root.name != STANDARD_FORMAT:
            raise MalformedMetadataTreeError(
                f"Root node must be named '{STANDARD_FORMAT}', got '{root.name}'"
            )
        for child in root.children:
            self._validate_node(child)
        self._standard = root.deep_copy()

    def _validate_node(self, node: MetadataNode) -> None:
        if node.name not in self.STANDARD_NODES:
            raise MalformedMetadataTreeError(f"Unexpected node '{node.name}'")
        if node.name == 'pHYs':
            for name in node.attributes:
                if name not in self.PHYS_ATTRIBUTES:
                    raise MalformedMetadataTreeError(f"Unknown pHYs attribute '{name}'")
            try:
                values = [int(node.get_attribute(name)) for name in self.PHYS_ATTRIBUTES[:3]]
            except (TypeError, ValueError):
                raise MalformedMetadataTreeError(f"pHYs attributes must be integers: {node.attributes}")
            if values[2] not in (0, 1) or not all(0 <= v <= 0xFFFFFFFF for v in values[:2]):
                raise MalformedMetadataTreeError(f"pHYs attributes out of range: {node.attributes}")
        elif node.name == 'Text':
            for entry in node.children:
                if entry.name != 'TextEntry' or not entry.get_attribute('keyword'):
                    raise MalformedMetadataTreeError("Text entries need a keyword")
        elif node.name in ('ICCProfile', 'Exif', 'UnknownChunk'):
            if not isinstance(node.user_object, (bytes, bytearray)):
                raise MalformedMetadataTreeError(f"Node '{node.name}' has no payload")
            if node.name == 'UnknownChunk' and len(node.get_attribute('type') or '') != 4:
                raise MalformedMetadataTreeError("UnknownChunk needs a four-letter type")

    def _native_tree(self) -> MetadataNode:
        root = MetadataNode(PNG_NATIVE_FORMAT)
        root.append_child(MetadataNode('IHDR', self.header))
        for node in self._standard.children:
            if node.name == 'Text':
                groups: Dict[str, MetadataNode] = {}
                for entry in node.children:
                    if entry.get_attribute('encoding') == 'UTF-8':
                        chunk = 'iTXt'
                    elif entry.get_attribute('compression') == 'zip':
                        chunk = 'zTXt'
                    else:
                        chunk = 'tEXt'
                    if chunk not in groups:
                        groups[chunk] = root.append_child(MetadataNode(chunk))
                    groups[chunk].append_child(MetadataNode(chunk + 'Entry', entry.attributes))
            elif node.name == 'ICCProfile':
                root.append_child(MetadataNode('iCCP', node.attributes, user_object=node.user_object))
            elif node.name == 'Exif':
                root.append_child(MetadataNode('eXIf', user_object=node.user_object))
            else:
                root.append_child(node.deep_copy())
        return root

    def encoder_params(self) -> Dict[str, Any]:
        """
        Translate the metadata into Pillow PNG save parameters.

        A pHYs in meters becomes 'dpi'; text and unknown ancillary chunks go
        through a PngInfo; ICC and EXIF map to their dedicated parameters.
        """
        info = PngImagePlugin.PngInfo()
        params: Dict[str, Any] = {'pnginfo': info, 'icc_profile': None, 'exif': b''}
        for node in self._standard.children:
            if node.name == 'pHYs':
                if node.get_attribute('present') == 'false' or node.get_attribute('unitSpecifier') != '1':
                    continue
                params['dpi'] = (
                    int(node.get_attribute('pixelsPerUnitXAxis')) * 0.0254,
                    int(node.get_attribute('pixelsPerUnitYAxis')) * 0.0254,
                )
            elif node.name == 'Text':
                for entry in node.children:
                    self._add_text(info, entry)
            elif node.name == 'ICCProfile':
                params['icc_profile'] = bytes(node.user_object)
            elif node.name == 'Exif':
                params['exif'] = bytes(node.user_object)
            elif node.name == 'UnknownChunk':
                info.add(
                    node.get_attribute('type').encode('latin-1'),
                    bytes(node.user_object),
                    after_idat=node.get_attribute('afterIDAT') == 'true',
                )
        return params

    @staticmethod
    def _add_text(info: PngImagePlugin.PngInfo, entry: MetadataNode) -> None:
        keyword = entry.get_attribute('keyword')
        value = entry.get_attribute('value') or ''
        compressed = entry.get_attribute('compression') == 'zip'
        if entry.get_attribute('encoding') == 'UTF-8':
            info.add_itxt(
                keyword, value,
                lang=entry.get_attribute('language') or '',
                tkey=entry.get_attribute('translatedKeyword') or '',
                zip=compressed,
            )
        else:
            info.add_text(keyword, value, zip=compressed)
