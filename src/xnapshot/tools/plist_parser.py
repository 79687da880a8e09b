"""Parser for the constrained plist documents written by CoreSimulator.

Only the subset used by ``device_set.plist`` is understood: nested ``dict``
elements holding ``string``, ``integer``, ``true`` and ``false`` values.
Entity declarations and external references are rejected while parsing.
"""
from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Optional, Union
from xml.etree.ElementTree import Element

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import ParseError, fromstring

from xnapshot.errors import DeviceSetNotFound, MalformedDocument

PlistNode = Union[Dict[str, "PlistNode"], str, int, bool]

CONTAINER_TAGS = {"dict"}
SCALAR_TAGS = {"string", "integer", "true", "false"}
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
INTEGER_PATTERN = re.compile(r"^[+-]?[0-9]+$")


def parse(data: bytes) -> PlistNode:
    """Decode ``data`` into nested dicts, strings, ints and bools."""
    try:
        root = fromstring(data, forbid_dtd=False, forbid_entities=True, forbid_external=True)
    except DefusedXmlException as exc:
        raise MalformedDocument(f"Forbidden construct in plist: {exc}") from exc
    except ParseError as exc:
        raise MalformedDocument(f"Invalid XML in plist: {exc}") from exc

    container = _root_container(root)
    return _parse_dict(container)


def load_device_set(path: Path) -> PlistNode:
    try:
        data = path.read_bytes()
    except FileNotFoundError as exc:
        raise DeviceSetNotFound(
            f"Simulator device set not found at {path}. Is Xcode installed?"
        ) from exc
    except OSError as exc:
        raise DeviceSetNotFound(f"Failed to read simulator device set {path}: {exc}") from exc
    return parse(data)


def _root_container(root: Element) -> Element:
    if root.tag in CONTAINER_TAGS:
        return root
    if root.tag == "plist":
        children = list(root)
        if len(children) == 1 and children[0].tag in CONTAINER_TAGS:
            return children[0]
        tags = ", ".join(child.tag for child in children) or "<empty>"
        raise MalformedDocument(f"Expected a single dict inside <plist>, found: {tags}")
    raise MalformedDocument(f"Unsupported plist root element <{root.tag}>")


def _parse_node(node: Element) -> Optional[PlistNode]:
    tag = node.tag
    if tag == "dict":
        return _parse_dict(node)
    if tag in SCALAR_TAGS and len(node):
        raise MalformedDocument(f"Element <{tag}> must not contain child elements")
    if tag == "string":
        return node.text or ""
    if tag == "integer":
        return _parse_integer(node)
    if tag in ("true", "false"):
        return tag == "true"
    raise MalformedDocument(f"Unexpected element <{tag}> in plist")


def _parse_integer(node: Element) -> Optional[int]:
    text = (node.text or "").strip()
    if not text:
        # An empty integer element carries no value and its entry is dropped.
        return None
    if not INTEGER_PATTERN.match(text):
        raise MalformedDocument(f"Invalid integer value {text!r} in plist")
    value = int(text, 10)
    if not INT64_MIN <= value <= INT64_MAX:
        raise MalformedDocument(f"Integer value {text} does not fit in 64 bits")
    return value


def _parse_dict(node: Element) -> Dict[str, PlistNode]:
    children = list(node)
    if len(children) % 2 != 0:
        raise MalformedDocument(
            f"Dictionary elements must have an even number of child nodes, was {len(children)}"
        )

    result: Dict[str, PlistNode] = {}
    seen = set()
    for key_node, value_node in zip(children[0::2], children[1::2]):
        if key_node.tag != "key":
            raise MalformedDocument(f"Expected a <key> element, was <{key_node.tag}>")
        if len(key_node):
            raise MalformedDocument("Element <key> must not contain child elements")
        key = key_node.text or ""
        if key in seen:
            raise MalformedDocument(f"Duplicate key {key!r} in plist dictionary")
        seen.add(key)
        value = _parse_node(value_node)
        if value is None:
            continue
        result[key] = value
    return result
