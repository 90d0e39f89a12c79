import json

import pytest

from conftest import make_jpeg, make_png
from dpifix import __version__
from dpifix.cli import collect_files, main


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--version"])
    assert exc.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_collect_files(tmp_path, plain_jpeg, plain_png):
    (tmp_path / "notes.txt").write_text("not an image")
    nested = tmp_path / "sub"
    nested.mkdir()
    deep = make_png(nested / "deep.png")

    assert collect_files([str(tmp_path)]) == [plain_jpeg, plain_png]
    assert deep in collect_files([str(tmp_path)], recurse=True)
    assert collect_files([str(tmp_path / "notes.txt")]) == [tmp_path / "notes.txt"]


class TestCheck:
    def test_text_report(self, tmp_path, plain_jpeg, capsys):
        dpi = make_png(tmp_path / "dpi.png", dpi=(96, 96))
        assert main(["check", str(plain_jpeg), str(dpi)]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out == [f"{plain_jpeg}: unspecified", f"{dpi}: 3780 px/m"]

    def test_json_report(self, tmp_path, capsys):
        dpi = make_jpeg(tmp_path / "dpi.jpg", dpi=(72, 72))
        assert main(["check", "--json", str(dpi)]) == 0
        report = json.loads(capsys.readouterr().out)
        assert report[str(dpi)] == {"specified": True, "unit": "pixels_per_inch", "value": 72}

    def test_unsupported_file(self, tmp_path, capsys):
        garbage = tmp_path / "garbage.png"
        garbage.write_bytes(b"nothing to see")
        assert main(["check", str(garbage)]) == 1


class TestFix:
    def test_writes_copies(self, tmp_path, plain_jpeg, plain_png, capsys):
        out = tmp_path / "fixed"
        assert main(["fix", "-o", str(out), str(plain_jpeg), str(plain_png)]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 2
        assert all(" -> " in line for line in lines)
        assert len(list(out.iterdir())) == 2

    def test_specified_density_is_unchanged(self, tmp_path, capsys):
        dpi = make_jpeg(tmp_path / "dpi.jpg", dpi=(96, 96))
        assert main(["fix", "-o", str(tmp_path / "fixed"), str(dpi)]) == 0
        assert capsys.readouterr().out.strip() == f"{dpi}: unchanged"

    def test_missing_file_fails(self, tmp_path, plain_jpeg):
        assert main(["fix", "-o", str(tmp_path / "fixed"), str(plain_jpeg), str(tmp_path / "missing.jpg")]) == 1


class TestTree:
    def test_jpeg_native_tree(self, plain_jpeg, capsys):
        assert main(["tree", str(plain_jpeg)]) == 0
        tree = json.loads(capsys.readouterr().out)
        assert tree["name"] == "dpifix_jpeg_image_1.0"
        assert tree["children"][0]["children"][0]["name"] == "app0JFIF"

    def test_png_standard_tree(self, tmp_path, capsys):
        dpi = make_png(tmp_path / "dpi.png", dpi=(96, 96))
        assert main(["tree", "--standard", str(dpi)]) == 0
        tree = json.loads(capsys.readouterr().out)
        assert tree["name"] == "dpifix_standard_image_1.0"
        assert tree["children"][0]["attributes"]["unitSpecifier"] == "1"

    def test_missing_file(self, tmp_path):
        assert main(["tree", str(tmp_path / "missing.png")]) == 1
