import struct
import zlib
from pathlib import Path

import pytest
from PIL import Image, PngImagePlugin

JFIF_UNITS_OFFSET = 13  # SOI, APP0 marker, length, 'JFIF\0', version


def make_jpeg(path: Path, dpi=None, exif=None, comment=None, size=(24, 16)) -> Path:
    image = Image.new("RGB", size, (200, 120, 40))
    params = {"quality": 90}
    if dpi is not None:
        params["dpi"] = dpi
    if exif is not None:
        params["exif"] = exif
    if comment is not None:
        params["comment"] = comment
    image.save(path, "JPEG", **params)
    return path


def make_png(path: Path, dpi=None, text=None, size=(24, 16)) -> Path:
    image = Image.new("RGB", size, (10, 90, 200))
    params = {}
    if dpi is not None:
        params["dpi"] = dpi
    if text:
        info = PngImagePlugin.PngInfo()
        for key, value in text.items():
            info.add_text(key, value)
        params["pnginfo"] = info
    image.save(path, "PNG", **params)
    return path


def set_jfif_density(data: bytes, units: int, density: int = 1) -> bytes:
    """Patch the JFIF APP0 segment that Pillow writes right after SOI."""
    assert data[2:4] == b"\xff\xe0" and data[6:11] == b"JFIF\x00"
    patched = bytearray(data)
    patched[JFIF_UNITS_OFFSET] = units
    patched[JFIF_UNITS_OFFSET + 1:JFIF_UNITS_OFFSET + 5] = struct.pack(">HH", density, density)
    return bytes(patched)


def strip_app0(data: bytes) -> bytes:
    assert data[2:4] == b"\xff\xe0"
    length = struct.unpack(">H", data[4:6])[0]
    return data[:2] + data[4 + length:]


def png_chunk(chunk_type: bytes, payload: bytes) -> bytes:
    crc = zlib.crc32(chunk_type + payload) & 0xFFFFFFFF
    return struct.pack(">I", len(payload)) + chunk_type + payload + struct.pack(">I", crc)


def insert_png_chunk(data: bytes, chunk_type: bytes, payload: bytes) -> bytes:
    """Insert a chunk right after IHDR."""
    ihdr_end = 8 + 8 + 13 + 4
    return data[:ihdr_end] + png_chunk(chunk_type, payload) + data[ihdr_end:]


def phys_payload(ppu_x: int, ppu_y: int, unit: int) -> bytes:
    return struct.pack(">IIB", ppu_x, ppu_y, unit)


@pytest.fixture
def out_dir(tmp_path):
    directory = tmp_path / "out"
    directory.mkdir()
    return directory


@pytest.fixture
def plain_jpeg(tmp_path):
    return make_jpeg(tmp_path / "plain.jpg")


@pytest.fixture
def plain_png(tmp_path):
    return make_png(tmp_path / "plain.png")
