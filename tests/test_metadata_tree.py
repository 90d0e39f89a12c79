import pytest

from dpifix.exceptions import MalformedMetadataTreeError
from dpifix.metadata_tree import MetadataNode, find_node


def build_tree():
    root = MetadataNode("root")
    first = root.append_child(MetadataNode("Text"))
    first.append_child(MetadataNode("pHYs", {"unitSpecifier": "0"}))
    root.append_child(MetadataNode("pHYs", {"unitSpecifier": "1"}))
    root.append_child(MetadataNode("Exif", user_object=b"II*\x00"))
    return root


class TestFindNode:
    def test_search_is_case_insensitive(self):
        root = build_tree()
        found = find_node(root, "phys")
        assert found is not None
        assert found.name == "pHYs"

    def test_returns_first_preorder_match(self):
        root = build_tree()
        # The nested pHYs comes before the top-level one in pre-order
        assert find_node(root, "pHYs").get_attribute("unitSpecifier") == "0"

    def test_root_is_included(self):
        root = build_tree()
        assert find_node(root, "ROOT") is root

    def test_missing_node(self):
        assert find_node(build_tree(), "tIME") is None
        assert find_node(None, "pHYs") is None


class TestMetadataNode:
    def test_replace_child_keeps_position(self):
        root = build_tree()
        old = root.children[1]
        new = MetadataNode("pHYs", {"unitSpecifier": "1", "present": "true"})
        root.replace_child(new, old)
        assert [child.name for child in root.children] == ["Text", "pHYs", "Exif"]
        assert root.children[1] is new

    def test_replace_child_rejects_foreign_node(self):
        root = build_tree()
        with pytest.raises(MalformedMetadataTreeError):
            root.replace_child(MetadataNode("pHYs"), MetadataNode("pHYs"))

    def test_find_child_is_exact_and_shallow(self):
        root = build_tree()
        assert root.find_child("phys") is None
        assert root.find_child("pHYs") is root.children[1]

    def test_find_parent(self):
        root = build_tree()
        nested = root.children[0].children[0]
        assert root.find_parent(nested) is root.children[0]
        assert root.find_parent(root) is None

    def test_deep_copy_is_independent(self):
        root = build_tree()
        clone = root.deep_copy()
        clone.children[1].set_attribute("unitSpecifier", "0")
        clone.append_child(MetadataNode("extra"))
        assert root.children[1].get_attribute("unitSpecifier") == "1"
        assert len(root.children) == 3

    def test_cleared_attribute(self):
        node = MetadataNode("jfif", {"majorVersion": None, "resUnits": "1"})
        assert not node.has_attribute("majorVersion")
        assert node.has_attribute("resUnits")

    def test_to_dict(self):
        data = build_tree().to_dict()
        assert data["name"] == "root"
        assert data["children"][1] == {"name": "pHYs", "attributes": {"unitSpecifier": "1"}}
        assert data["children"][2]["payload_size"] == 4
