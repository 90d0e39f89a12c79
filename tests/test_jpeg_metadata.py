import struct

import pytest
from PIL import Image

from conftest import make_jpeg, set_jfif_density, strip_app0
from dpifix.density import build_jfif_merge_tree
from dpifix.exceptions import MalformedMetadataTreeError, MetadataReadError
from dpifix.format_detector import JPEG_NATIVE_FORMAT, STANDARD_FORMAT
from dpifix.jpeg_metadata import JPEGMetadata, JPEGSegmentReader
from dpifix.metadata_tree import MetadataNode


def exif_bytes(make="Acme"):
    exif = Image.Exif()
    exif[0x010F] = make
    return exif.tobytes()


@pytest.fixture
def exif_jpeg_data(tmp_path):
    path = make_jpeg(tmp_path / "exif.jpg", exif=exif_bytes(), comment=b"scanned")
    return path.read_bytes()


class TestSegmentReader:
    def test_rejects_non_jpeg(self):
        with pytest.raises(MetadataReadError):
            JPEGSegmentReader(b"\x89PNG\r\n\x1a\n")

    def test_rejects_truncated_segment(self):
        with pytest.raises(MetadataReadError):
            JPEGSegmentReader(b"\xff\xd8\xff\xe1\x10\x00Exif")

    def test_stops_at_start_of_scan(self, plain_jpeg):
        reader = JPEGSegmentReader(plain_jpeg.read_bytes())
        markers = [marker for marker, _ in reader.segments]
        assert markers[0] == JPEGSegmentReader.APP0
        assert JPEGSegmentReader.SOS not in markers


class TestNativeTree:
    def test_jfif_attributes(self, plain_jpeg):
        metadata = JPEGMetadata.from_bytes(plain_jpeg.read_bytes())
        tree = metadata.get_as_tree(JPEG_NATIVE_FORMAT)
        assert [child.name for child in tree.children] == ["JPEGvariety", "markerSequence"]
        jfif = tree.find_child("JPEGvariety").find_child("app0JFIF")
        assert jfif.get_attribute("resUnits") == "0"
        assert jfif.get_attribute("majorVersion") == "1"

    def test_marker_sequence(self, exif_jpeg_data):
        tree = JPEGMetadata.from_bytes(exif_jpeg_data).get_as_tree(JPEG_NATIVE_FORMAT)
        sequence = tree.find_child("markerSequence")
        exif_node = next(n for n in sequence.children if n.get_attribute("MarkerTag") == "225")
        assert exif_node.user_object.startswith(b"Exif\x00\x00")
        comment = sequence.find_child("com")
        assert comment.get_attribute("comment") == "scanned"

    def test_missing_app0(self, plain_jpeg):
        metadata = JPEGMetadata.from_bytes(strip_app0(plain_jpeg.read_bytes()))
        assert metadata.jfif is None
        tree = metadata.get_as_tree(JPEG_NATIVE_FORMAT)
        assert tree.find_child("JPEGvariety").children == []

    def test_adobe_segment(self):
        payload = b"Adobe" + struct.pack(">HHHB", 100, 0, 0, 1)
        metadata = JPEGMetadata(markers=[(JPEGSegmentReader.APP14, payload)])
        node = metadata.get_as_tree(JPEG_NATIVE_FORMAT).find_child("markerSequence").children[0]
        assert node.name == "app14Adobe"
        assert node.get_attribute("transform") == "1"

    def test_other_format_name(self, plain_jpeg):
        metadata = JPEGMetadata.from_bytes(plain_jpeg.read_bytes())
        with pytest.raises(ValueError):
            metadata.get_as_tree(STANDARD_FORMAT)


class TestMergeTree:
    def test_merge_sets_density_and_keeps_versions(self, exif_jpeg_data):
        metadata = JPEGMetadata.from_bytes(exif_jpeg_data)
        markers_before = list(metadata.markers)
        version_before = metadata.jfif["minorVersion"]

        metadata.merge_tree(JPEG_NATIVE_FORMAT, build_jfif_merge_tree())

        assert metadata.jfif["resUnits"] == "1"
        assert metadata.jfif["Xdensity"] == "96"
        assert metadata.jfif["Ydensity"] == "96"
        assert metadata.jfif["minorVersion"] == version_before
        assert metadata.markers == markers_before

    def test_merge_creates_missing_jfif(self, plain_jpeg):
        metadata = JPEGMetadata.from_bytes(strip_app0(plain_jpeg.read_bytes()))
        metadata.merge_tree(JPEG_NATIVE_FORMAT, build_jfif_merge_tree())
        assert metadata.jfif == {
            "majorVersion": "1",
            "minorVersion": "2",
            "resUnits": "1",
            "Xdensity": "96",
            "Ydensity": "96",
            "thumbWidth": "0",
            "thumbHeight": "0",
        }

    def test_merge_appends_sequence_nodes(self, plain_jpeg):
        metadata = JPEGMetadata.from_bytes(plain_jpeg.read_bytes())
        subtree = MetadataNode(JPEG_NATIVE_FORMAT)
        sequence = subtree.append_child(MetadataNode("mergeSequenceSubNode"))
        sequence.append_child(MetadataNode("com", {"comment": "hello"}))
        metadata.merge_tree(JPEG_NATIVE_FORMAT, subtree)
        assert metadata.markers[-1] == (JPEGSegmentReader.COM, b"hello")

    def test_merge_rejects_wrong_root(self, plain_jpeg):
        metadata = JPEGMetadata.from_bytes(plain_jpeg.read_bytes())
        with pytest.raises(MalformedMetadataTreeError):
            metadata.merge_tree(JPEG_NATIVE_FORMAT, MetadataNode("root"))

    def test_merge_rejects_unknown_child(self, plain_jpeg):
        metadata = JPEGMetadata.from_bytes(plain_jpeg.read_bytes())
        subtree = MetadataNode(JPEG_NATIVE_FORMAT, children=[MetadataNode("Dimension")])
        with pytest.raises(MalformedMetadataTreeError):
            metadata.merge_tree(JPEG_NATIVE_FORMAT, subtree)

    def test_merge_rejects_bad_values_without_side_effects(self, plain_jpeg):
        metadata = JPEGMetadata.from_bytes(plain_jpeg.read_bytes())
        before = dict(metadata.jfif)
        subtree = build_jfif_merge_tree()
        subtree.children[0].children[0].set_attribute("Xdensity", "ninety-six")
        with pytest.raises(MalformedMetadataTreeError):
            metadata.merge_tree(JPEG_NATIVE_FORMAT, subtree)
        assert metadata.jfif == before

    def test_merge_rejects_other_format_name(self, plain_jpeg):
        metadata = JPEGMetadata.from_bytes(plain_jpeg.read_bytes())
        with pytest.raises(ValueError):
            metadata.merge_tree(STANDARD_FORMAT, build_jfif_merge_tree())


class TestSetFromTree:
    def test_round_trip(self, exif_jpeg_data):
        metadata = JPEGMetadata.from_bytes(exif_jpeg_data)
        jfif, markers = dict(metadata.jfif), list(metadata.markers)
        metadata.set_from_tree(JPEG_NATIVE_FORMAT, metadata.get_as_tree(JPEG_NATIVE_FORMAT))
        assert metadata.jfif == jfif
        assert metadata.markers == markers

    def test_replaces_everything(self, exif_jpeg_data):
        metadata = JPEGMetadata.from_bytes(exif_jpeg_data)
        metadata.set_from_tree(JPEG_NATIVE_FORMAT, MetadataNode(JPEG_NATIVE_FORMAT))
        assert metadata.jfif is None
        assert metadata.markers == []


class TestEncoderParams:
    def test_inch_density(self, exif_jpeg_data):
        metadata = JPEGMetadata.from_bytes(exif_jpeg_data)
        metadata.merge_tree(JPEG_NATIVE_FORMAT, build_jfif_merge_tree())
        params = metadata.encoder_params()
        assert params["dpi"] == (96, 96)
        assert params["exif"].startswith(b"Exif\x00\x00")
        assert params["comment"] == b"scanned"
        assert params["icc_profile"] is None

    def test_centimeter_density_is_converted(self, plain_jpeg):
        data = set_jfif_density(plain_jpeg.read_bytes(), units=2, density=38)
        params = JPEGMetadata.from_bytes(data).encoder_params()
        assert params["dpi"] == (97, 97)

    def test_unspecified_density_has_no_dpi(self, plain_jpeg):
        params = JPEGMetadata.from_bytes(plain_jpeg.read_bytes()).encoder_params()
        assert "dpi" not in params

    def test_other_segments_pass_through(self):
        xmp = b"http://ns.adobe.com/xap/1.0/\x00<x:xmpmeta/>"
        adobe = b"Adobe" + struct.pack(">HHHB", 100, 0, 0, 1)
        metadata = JPEGMetadata(markers=[
            (JPEGSegmentReader.APP1, xmp),
            (JPEGSegmentReader.APP14, adobe),
        ])
        params = metadata.encoder_params()
        assert params["extra"] == b"\xff\xe1" + struct.pack(">H", len(xmp) + 2) + xmp
        assert params["xmp"] == b""

    def test_icc_profile_is_reassembled(self):
        header = b"ICC_PROFILE\x00"
        metadata = JPEGMetadata(markers=[
            (JPEGSegmentReader.APP2, header + b"\x02\x02" + b"second"),
            (JPEGSegmentReader.APP2, header + b"\x01\x02" + b"first-"),
        ])
        assert metadata.encoder_params()["icc_profile"] == b"first-second"

    def test_multi_picture_index_is_dropped(self):
        mpf = b"MPF\x00II*\x00\x08\x00\x00\x00"
        comment = b"first frame"
        metadata = JPEGMetadata(markers=[
            (JPEGSegmentReader.APP2, mpf),
            (JPEGSegmentReader.COM, comment),
        ])
        params = metadata.encoder_params()
        assert "extra" not in params
        assert params["comment"] == comment
