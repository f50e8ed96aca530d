"""Parse SVG garment templates into the layer model and classify editable layers.

Only direct presentation attributes are read: ``fill`` and ``stroke`` inherited
from a parent or set through CSS are not resolved, and bounding boxes ignore
``transform``.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass, field

from lxml import etree

from garment_forge.core.errors import ParseError
from garment_forge.models import (
    BoundingBox,
    EditableLayer,
    GroupLayer,
    ImageLayer,
    LayerNode,
    LayerRole,
    ShapeLayer,
    TextLayer,
)

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"
INKSCAPE_NS = "http://www.inkscape.org/namespaces/inkscape"

LOGO_KEYWORDS = ("logo", "emblem", "badge", "crest")

_GROUP_TAGS = frozenset({"svg", "g"})
_SHAPE_TAGS = frozenset({"rect", "circle", "path"})
_SKIPPED_TAGS = frozenset({"defs", "style", "metadata", "title", "desc", "namedview", "script"})
_NUMBER = re.compile(r"^\s*(-?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


@dataclass
class LayerTree:
    """Parsed layer hierarchy with a single id index and a name index."""

    root: GroupLayer
    by_id: dict[str, LayerNode] = field(default_factory=dict)
    ids_by_name: dict[str, list[str]] = field(default_factory=dict)

    def find(self, ref: str) -> LayerNode | None:
        """Resolve a layer reference: exact id first, then the first layer with that name."""
        node = self.by_id.get(ref)
        if node is not None:
            return node
        ids = self.ids_by_name.get(ref)
        return self.by_id[ids[0]] if ids else None

    def find_all(self, ref: str) -> list[LayerNode]:
        """Every layer a reference addresses: the exact id plus all layers carrying that name."""
        ids = [ref] if ref in self.by_id else []
        ids.extend(i for i in self.ids_by_name.get(ref, []) if i not in ids)
        return [self.by_id[i] for i in ids]

    def prune_children(self, group: GroupLayer) -> list[str]:
        """Drop the descendants of ``group`` from the tree and both indexes. Returns the removed ids."""
        removed: list[str] = []
        stack: list[LayerNode] = list(group.children)
        while stack:
            node = stack.pop()
            removed.append(node.id)
            if isinstance(node, GroupLayer):
                stack.extend(node.children)
        for layer_id in removed:
            node = self.by_id.pop(layer_id)
            names = self.ids_by_name.get(node.name, [])
            if layer_id in names:
                names.remove(layer_id)
            if not names:
                self.ids_by_name.pop(node.name, None)
        group.children = []
        return removed

    def walk(self) -> Iterator[LayerNode]:
        """Yield every layer in document order, root first."""
        stack: list[LayerNode] = [self.root]
        while stack:
            node = stack.pop()
            yield node
            if isinstance(node, GroupLayer):
                stack.extend(reversed(node.children))


@dataclass
class ParsedDocument:
    tree: etree._ElementTree
    layers: LayerTree
    elements: dict[str, etree._Element]
    has_declaration: bool


def local_name(el: etree._Element) -> str:
    return etree.QName(el).localname


def has_visible_fill(value: str | None) -> bool:
    if value is None:
        return False
    stripped = value.strip().lower()
    return stripped not in ("", "none")


def _xml_parser() -> etree.XMLParser:
    return etree.XMLParser(remove_blank_text=False, resolve_entities=False, no_network=True)


def _number(value: str | None) -> float | None:
    if value is None:
        return None
    match = _NUMBER.match(value)
    return float(match.group(1)) if match else None


def _element_bbox(el: etree._Element, tag: str) -> BoundingBox | None:
    if tag in ("rect", "image"):
        width, height = _number(el.get("width")), _number(el.get("height"))
        if width is None or height is None:
            return None
        return BoundingBox(x=_number(el.get("x")) or 0.0, y=_number(el.get("y")) or 0.0, width=width, height=height)
    if tag == "circle":
        r = _number(el.get("r"))
        if r is None:
            return None
        cx, cy = _number(el.get("cx")) or 0.0, _number(el.get("cy")) or 0.0
        return BoundingBox(x=cx - r, y=cy - r, width=2 * r, height=2 * r)
    if tag == "ellipse":
        rx, ry = _number(el.get("rx")), _number(el.get("ry"))
        if rx is None or ry is None:
            return None
        cx, cy = _number(el.get("cx")) or 0.0, _number(el.get("cy")) or 0.0
        return BoundingBox(x=cx - rx, y=cy - ry, width=2 * rx, height=2 * ry)
    return None


class _TreeBuilder:
    def __init__(self) -> None:
        self.index = 0
        self.by_id: dict[str, LayerNode] = {}
        self.ids_by_name: dict[str, list[str]] = {}
        self.elements: dict[str, etree._Element] = {}
        self._taken: set[str] = set()

    def _unique_id(self, base: str) -> str:
        candidate, n = base, 2
        while candidate in self._taken:
            candidate = f"{base}-{n}"
            n += 1
        self._taken.add(candidate)
        return candidate

    def build(self, el: etree._Element) -> LayerNode:
        tag = local_name(el)
        position = self.index
        self.index += 1

        base_id = el.get("id") or el.get("data-name") or el.get(f"{{{INKSCAPE_NS}}}label") or f"element-{position}"
        layer_id = self._unique_id(base_id)
        name = el.get("data-name") or el.get(f"{{{INKSCAPE_NS}}}label") or layer_id
        common = {"id": layer_id, "name": name, "fill": el.get("fill"), "stroke": el.get("stroke")}

        node: LayerNode
        if tag in _GROUP_TAGS:
            children = [self.build(child) for child in el if _is_drawable(child)]
            bbox: BoundingBox | None = None
            for child in children:
                if child.bbox is not None:
                    bbox = child.bbox if bbox is None else bbox.union(child.bbox)
            node = GroupLayer(children=children, bbox=bbox, **common)
        elif tag == "text":
            node = TextLayer(content="".join(el.itertext()), **common)
        elif tag == "image":
            href = el.get("href") or el.get(f"{{{XLINK_NS}}}href")
            node = ImageLayer(href=href, bbox=_element_bbox(el, tag), **common)
        else:
            kind = tag if tag in _SHAPE_TAGS else "unknown"
            node = ShapeLayer(kind=kind, bbox=_element_bbox(el, tag), **common)

        self.by_id[layer_id] = node
        self.ids_by_name.setdefault(name, []).append(layer_id)
        self.elements[layer_id] = el
        return node


def _is_drawable(el: etree._Element) -> bool:
    # Comments and processing instructions carry a non-string tag.
    return isinstance(el.tag, str) and local_name(el) not in _SKIPPED_TAGS


def load_document(text: str) -> ParsedDocument:
    """Parse SVG text into an lxml tree plus its layer model.

    Raises ``ParseError`` if the text is not well-formed XML or the root is not ``<svg>``.
    """
    try:
        root = etree.fromstring(text.encode("utf-8"), _xml_parser())
    except etree.XMLSyntaxError as exc:
        raise ParseError(f"Malformed vector source: {exc}") from exc
    if local_name(root) != "svg":
        raise ParseError(f"Expected an <svg> root element, found <{local_name(root)}>")

    builder = _TreeBuilder()
    layer_root = builder.build(root)
    assert isinstance(layer_root, GroupLayer)
    layers = LayerTree(root=layer_root, by_id=builder.by_id, ids_by_name=builder.ids_by_name)
    return ParsedDocument(
        tree=root.getroottree(),
        layers=layers,
        elements=builder.elements,
        has_declaration=text.lstrip().startswith("<?xml"),
    )


def parse_document(text: str) -> LayerTree:
    return load_document(text).layers


def _any_visible_fill(node: LayerNode) -> bool:
    if has_visible_fill(node.fill):
        return True
    if isinstance(node, GroupLayer):
        return any(_any_visible_fill(child) for child in node.children)
    return False


def classify_layer(node: LayerNode) -> LayerRole | None:
    """Derive the editing role of a layer, or ``None`` if it is not editable."""
    if isinstance(node, TextLayer) or getattr(node, "content", ""):
        return LayerRole.TEXT
    lowered = node.name.lower()
    if any(keyword in lowered for keyword in LOGO_KEYWORDS):
        return LayerRole.LOGO
    if _any_visible_fill(node):
        return LayerRole.GRAPHIC
    return None


def _current_value(node: LayerNode, role: LayerRole) -> str | None:
    if role is LayerRole.TEXT:
        return node.content if isinstance(node, TextLayer) else None
    if role is LayerRole.LOGO:
        if isinstance(node, ImageLayer):
            return node.href
        if isinstance(node, GroupLayer):
            for child in node.children:
                if isinstance(child, ImageLayer):
                    return child.href
        return None
    if has_visible_fill(node.fill):
        return node.fill
    if isinstance(node, GroupLayer):
        for child in node.children:
            value = _current_value(child, role)
            if value is not None:
                return value
    return None


def editable_layers(tree: LayerTree) -> list[EditableLayer]:
    """Return the non-root editable layers in document order."""
    result: list[EditableLayer] = []
    for node in tree.walk():
        if node is tree.root:
            continue
        role = classify_layer(node)
        if role is None:
            continue
        result.append(
            EditableLayer(id=node.id, name=node.name, kind=node.kind, role=role, value=_current_value(node, role))
        )
    return result
