from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Union

from .config import TCY_CLASS

__all__ = ["TextNode", "GroupedNode", "InlineNode", "nodes_text", "merge_text_nodes"]


@dataclass
class TextNode:
    """Plain text emitted by the scanner or produced by a ``text`` rule."""

    text: str


@dataclass
class GroupedNode:
    """
    A short run typeset upright inside vertical text (tate-chu-yoko).

    The builder materializes it as ``<span class="tcy">``.
    """

    text: str
    css_class: str = TCY_CLASS


InlineNode = Union[TextNode, GroupedNode]


def nodes_text(nodes: Iterable[InlineNode]) -> str:
    return "".join(node.text for node in nodes)


def merge_text_nodes(nodes: Iterable[InlineNode]) -> list[InlineNode]:
    merged: list[InlineNode] = []
    for node in nodes:
        if isinstance(node, TextNode):
            if not node.text:
                continue
            if merged and isinstance(merged[-1], TextNode):
                merged[-1] = TextNode(merged[-1].text + node.text)
                continue
        merged.append(node)
    return merged
