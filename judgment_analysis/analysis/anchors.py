"""
Anchor traceability over parsed step results.

Parsed JSON is first converted into an annotated value tree:

    AnnotatedValue = LeafValue | ListValue | ObjectValue

An ObjectValue carries its "anchor" entry separately when that entry is
truthy. collect_anchors() walks the tree and returns one AnchorReference per
anchored object, with a path such as "admittedFacts[0]" or
"parties.appellant". The root object's path is the empty string.
"""

from dataclasses import dataclass, field
from typing import Any, Union

ANCHOR_KEY = "anchor"


@dataclass(frozen=True)
class LeafValue:
    value: Any


@dataclass(frozen=True)
class ListValue:
    items: tuple["AnnotatedValue", ...]


@dataclass(frozen=True)
class ObjectValue:
    fields: dict[str, "AnnotatedValue"] = field(default_factory=dict)
    anchor: Any = None


AnnotatedValue = Union[LeafValue, ListValue, ObjectValue]


@dataclass(frozen=True)
class AnchorReference:
    path: str
    anchor: Any

    def to_dict(self) -> dict:
        return {"path": self.path, "anchor": self.anchor}


def annotate(value: Any) -> AnnotatedValue:
    """Convert parsed JSON (dicts, lists, scalars) into an annotated tree."""
    if isinstance(value, dict):
        anchor = value.get(ANCHOR_KEY)
        return ObjectValue(
            fields={key: annotate(item) for key, item in value.items()},
            anchor=anchor if anchor else None,
        )
    if isinstance(value, list):
        return ListValue(items=tuple(annotate(item) for item in value))
    return LeafValue(value)


def collect_anchors(node: AnnotatedValue, path: str = "") -> list[AnchorReference]:
    """Depth-first, document-order list of anchored objects under node."""
    if isinstance(node, LeafValue):
        return []

    if isinstance(node, ListValue):
        anchors = []
        for index, item in enumerate(node.items):
            anchors.extend(collect_anchors(item, f"{path}[{index}]"))
        return anchors

    if isinstance(node, ObjectValue):
        anchors = [AnchorReference(path, node.anchor)] if node.anchor is not None else []
        for key, item in node.fields.items():
            anchors.extend(collect_anchors(item, f"{path}.{key}" if path else key))
        return anchors

    raise TypeError(f"Not an annotated value: {type(node).__name__}")


def extract_anchors(parsed: Any) -> list[AnchorReference]:
    """Anchors of a parsed step result."""
    return collect_anchors(annotate(parsed))
