# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Metadata tree

This module provides the generic tree used to exchange image metadata
between the codec adapters and the density logic. A node has a name,
ordered string attributes and ordered children; sibling order is kept
because some formats give it meaning (JPEG marker order, PNG chunk order).

Copyright 2025 DNAi inc.
"""

import copy
from typing import Any, Dict, Iterator, List, Optional

from dpifix.exceptions import MalformedMetadataTreeError


class MetadataNode:
    """
    A single node of a metadata tree.

    Attribute values are strings. A value of None marks the attribute as
    cleared: merge operations treat it as "not asserted". Binary payloads
    (EXIF blocks, ICC profiles, unknown segments) travel in user_object.

    Example:
        >>> root = MetadataNode('root')
        >>> phys = root.append_child(MetadataNode('pHYs', {'unitSpecifier': '1'}))
        >>> find_node(root, 'phys') is phys
        True
    """

    def __init__(
        self,
        name: str,
        attributes: Optional[Dict[str, Optional[str]]] = None,
        children: Optional[List['MetadataNode']] = None,
        user_object: Any = None
    ):
        self.name = name
        self.attributes: Dict[str, Optional[str]] = dict(attributes or {})
        self.children: List['MetadataNode'] = list(children or [])
        self.user_object = user_object

    def __repr__(self) -> str:
        return f"MetadataNode({self.name!r}, {self.attributes!r}, children={len(self.children)})"

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def has_attribute(self, name: str) -> bool:
        return self.attributes.get(name) is not None

    def set_attribute(self, name: str, value: Optional[str]) -> None:
        self.attributes[name] = value

    def append_child(self, node: 'MetadataNode') -> 'MetadataNode':
        self.children.append(node)
        return node

    def replace_child(self, new_node: 'MetadataNode', old_node: 'MetadataNode') -> 'MetadataNode':
        """
        Replace a direct child, keeping its position among the siblings.

        Args:
            new_node: Node to put in place
            old_node: Existing child (matched by identity)

        Returns:
            The replaced node

        Raises:
            MalformedMetadataTreeError: If old_node is not a child of this node
        """
        for index, child in enumerate(self.children):
            if child is old_node:
                self.children[index] = new_node
                return old_node
        raise MalformedMetadataTreeError(
            f"Node '{old_node.name}' is not a child of '{self.name}'"
        )

    def find_child(self, name: str) -> Optional['MetadataNode']:
        """Return the first direct child with exactly this name."""
        for child in self.children:
            if child.name == name:
                return child
        return None

    def find_parent(self, node: 'MetadataNode') -> Optional['MetadataNode']:
        """Return the parent of node within this subtree, or None."""
        for candidate in self.iter():
            for child in candidate.children:
                if child is node:
                    return candidate
        return None

    def iter(self) -> Iterator['MetadataNode']:
        """Iterate over this node and its descendants in pre-order."""
        yield self
        for child in self.children:
            yield from child.iter()

    def deep_copy(self) -> 'MetadataNode':
        return MetadataNode(
            self.name,
            self.attributes,
            [child.deep_copy() for child in self.children],
            copy.copy(self.user_object),
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the subtree to plain dictionaries (for JSON output).

        Binary user objects are reported by size only.
        """
        result: Dict[str, Any] = {'name': self.name}
        attributes = {k: v for k, v in self.attributes.items() if v is not None}
        if attributes:
            result['attributes'] = attributes
        if isinstance(self.user_object, (bytes, bytearray)):
            result['payload_size'] = len(self.user_object)
        if self.children:
            result['children'] = [child.to_dict() for child in self.children]
        return result


def find_node(root: Optional[MetadataNode], name: str) -> Optional[MetadataNode]:
    """
    Find a node by name anywhere in a tree.

    The search is depth-first and pre-order, starts at (and includes) root,
    and compares names case-insensitively. The first match wins.

    Args:
        root: Root of the tree to search
        name: Node name to look for

    Returns:
        Matching node, or None if no node in the tree has that name
    """
    if root is None:
        return None
    wanted = name.lower()
    for node in root.iter():
        if node.name.lower() == wanted:
            return node
    return None
