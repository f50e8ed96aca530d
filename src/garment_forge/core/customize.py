"""Apply a variant configuration to a template's original vector source.

The engine never edits a previous output: every call re-parses the original
text, so repeated application of the same configuration yields identical bytes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from lxml import etree

from garment_forge.core.layers import ParsedDocument, has_visible_fill, load_document, local_name
from garment_forge.models import (
    BoundingBox,
    GroupLayer,
    LayerModification,
    LayerNode,
    LayerRole,
    VariantConfiguration,
)

logger = logging.getLogger(__name__)

RECOLORABLE_TAGS = frozenset({"path", "rect", "circle", "ellipse", "polygon", "polyline"})
DEFAULT_LOGO_BOX = BoundingBox(x=0, y=0, width=100, height=100)
EMBELLISHMENT_OPACITY = "0.7"
TEAM_NUMBER_MARKER = "team_number"

_COLOR_LITERAL = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass(frozen=True)
class AssetBundle:
    """Catalog values resolved ahead of rendering: hex colors, font families and asset URLs."""

    colors: dict[str, str] = field(default_factory=dict)
    fonts: dict[str, str] = field(default_factory=dict)
    urls: dict[str, str] = field(default_factory=dict)

    def resolve_color(self, ref: str) -> str | None:
        if ref in self.colors:
            return self.colors[ref]
        literal = ref.strip()
        return literal if _COLOR_LITERAL.match(literal) else None

    def resolve_font(self, ref: str) -> str:
        return self.fonts.get(ref, ref)

    def resolve_url(self, ref: str) -> str | None:
        if ref in self.urls:
            return self.urls[ref]
        if "://" in ref or ref.startswith(("data:", "/")):
            return ref
        return None

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {"colors": dict(self.colors), "fonts": dict(self.fonts), "urls": dict(self.urls)}


def _fmt(value: float) -> str:
    return f"{value:g}"


def _is_element(el: object) -> bool:
    return isinstance(getattr(el, "tag", None), str)


def set_style_property(el: etree._Element, name: str, value: str) -> None:
    """Set one declaration inside an inline ``style`` attribute, keeping the others in order."""
    declarations: list[tuple[str, str]] = []
    for chunk in (el.get("style") or "").split(";"):
        if ":" not in chunk:
            continue
        key, _, val = chunk.partition(":")
        declarations.append((key.strip(), val.strip()))
    for i, (key, _) in enumerate(declarations):
        if key == name:
            declarations[i] = (name, value)
            break
    else:
        declarations.append((name, value))
    el.set("style", ";".join(f"{k}:{v}" for k, v in declarations))


class _DocumentEditor:
    def __init__(self, doc: ParsedDocument, assets: AssetBundle) -> None:
        self.doc = doc
        self.assets = assets
        self._root = doc.tree.getroot()
        self._namespace = etree.QName(self._root).namespace
        self._defs: etree._Element | None = None
        self._patterns: dict[str, str] = {}

    def _tag(self, name: str) -> str:
        return f"{{{self._namespace}}}{name}" if self._namespace else name

    def _resolve(self, ref: str, purpose: str) -> list[tuple[LayerNode, etree._Element]]:
        nodes = self.doc.layers.find_all(ref)
        if not nodes:
            logger.warning("Layer %r not found; skipping %s", ref, purpose)
        return [(node, self.doc.elements[node.id]) for node in nodes]

    def _attached(self, node: LayerNode) -> bool:
        # An earlier edit in the same loop may have pruned this layer.
        return node.id in self.doc.layers.by_id

    # --- text ---

    def set_text(self, ref: str, value: str) -> None:
        for node, el in self._resolve(ref, "text edit"):
            if not self._attached(node):
                continue
            if local_name(el) != "text":
                target = next((d for d in el.iterdescendants() if _is_element(d) and local_name(d) == "text"), None)
                if target is None:
                    logger.warning("Layer %r has no text element; skipping text edit", node.id)
                    continue
                el = target
            tspans = [d for d in el.iterdescendants() if _is_element(d) and local_name(d) == "tspan"]
            if not tspans:
                el.text = value
                continue
            el.text = None
            for i, tspan in enumerate(tspans):
                tspan.text = value if i == 0 else None
                tspan.tail = None

    # --- color ---

    def recolor(self, ref: str, color_ref: str) -> None:
        color = self.assets.resolve_color(color_ref)
        if color is None:
            logger.warning("Color %r could not be resolved; skipping layer %r", color_ref, ref)
            return
        for node, el in self._resolve(ref, "recolor"):
            if not self._attached(node):
                continue
            targets = [d for d in el.iterdescendants() if _is_element(d) and local_name(d) in RECOLORABLE_TAGS]
            if not targets:
                el.set("fill", color)
                continue
            for target in targets:
                if has_visible_fill(target.get("fill")):
                    target.set("fill", color)

    # --- logo ---

    def place_logo(self, ref: str, logo_ref: str, size_percent: int = 100) -> None:
        url = self.assets.resolve_url(logo_ref)
        if url is None:
            logger.warning("Logo %r could not be resolved; skipping layer %r", logo_ref, ref)
            return
        for node, el in self._resolve(ref, "logo placement"):
            if self._attached(node):
                self._place_logo_on(node, el, url, size_percent)

    def _place_logo_on(self, node: LayerNode, el: etree._Element, url: str, size_percent: int) -> None:
        box = (node.bbox or DEFAULT_LOGO_BOX).scaled(size_percent)

        if isinstance(node, GroupLayer):
            container = el
            for child in list(container):
                container.remove(child)
            container.text = None
            for removed in self.doc.layers.prune_children(node):
                self.doc.elements.pop(removed, None)
        else:
            container = etree.Element(self._tag("g"))
            for attr in ("id", "data-name"):
                if el.get(attr) is not None:
                    container.set(attr, el.get(attr))
            container.tail = el.tail
            el.getparent().replace(el, container)
            self.doc.elements[node.id] = container

        container.set("data-logo", url)
        image = etree.SubElement(container, self._tag("image"))
        image.set("href", url)
        image.set("x", _fmt(box.x))
        image.set("y", _fmt(box.y))
        image.set("width", _fmt(box.width))
        image.set("height", _fmt(box.height))
        image.set("preserveAspectRatio", "xMidYMid meet")

    # --- pattern ---

    def _ensure_defs(self) -> etree._Element:
        if self._defs is None:
            existing = next((c for c in self._root if _is_element(c) and local_name(c) == "defs"), None)
            if existing is None:
                existing = etree.Element(self._tag("defs"))
                self._root.insert(0, existing)
            self._defs = existing
        return self._defs

    def _ensure_pattern(self, asset_id: str, url: str) -> str:
        if asset_id in self._patterns:
            return self._patterns[asset_id]
        base = f"pattern-{_UNSAFE_ID_CHARS.sub('-', asset_id)}"
        taken = set(self._patterns.values())
        pattern_id, n = base, 1
        while pattern_id in taken or self._root.xpath("//*[@id=$id]", id=pattern_id):
            n += 1
            pattern_id = f"{base}-{n}"
        pattern = etree.SubElement(self._ensure_defs(), self._tag("pattern"))
        pattern.set("id", pattern_id)
        pattern.set("patternUnits", "userSpaceOnUse")
        pattern.set("width", "100")
        pattern.set("height", "100")
        image = etree.SubElement(pattern, self._tag("image"))
        image.set("href", url)
        image.set("x", "0")
        image.set("y", "0")
        image.set("width", "100")
        image.set("height", "100")
        self._patterns[asset_id] = pattern_id
        return pattern_id

    def apply_pattern(self, ref: str, asset_id: str) -> None:
        url = self.assets.resolve_url(asset_id)
        if url is None:
            logger.warning("Pattern %r could not be resolved; skipping layer %r", asset_id, ref)
            return
        targets = self._resolve(ref, "pattern overlay")
        if not targets:
            return
        pattern_id = self._ensure_pattern(asset_id, url)
        for node, el in targets:
            if not self._attached(node):
                continue
            el.set("fill", f"url(#{pattern_id})")
            el.set("data-pattern", url)

    # --- embellishment ---

    def apply_embellishment(self, ref: str, asset_id: str, size_percent: int) -> None:
        url = self.assets.resolve_url(asset_id)
        if url is None:
            logger.warning("Embellishment %r could not be resolved; skipping layer %r", asset_id, ref)
            return
        for node, el in self._resolve(ref, "embellishment overlay"):
            if not self._attached(node):
                continue
            el.set("data-embellishment", url)
            el.set("data-embellishment-size", str(size_percent))
            el.set("opacity", EMBELLISHMENT_OPACITY)

    # --- font ---

    def set_font(self, ref: str, font_ref: str) -> None:
        family = self.assets.resolve_font(font_ref)
        for node, el in self._resolve(ref, "font change"):
            if not self._attached(node):
                continue
            el.set("font-family", family)
            set_style_property(el, "font-family", family)

    # --- team number ---

    def set_team_number_visibility(self, visible: bool) -> None:
        for node in self.doc.layers.walk():
            if TEAM_NUMBER_MARKER not in node.id.lower() and TEAM_NUMBER_MARKER not in node.name.lower():
                continue
            el = self.doc.elements[node.id]
            el.set("opacity", "1" if visible else "0")
            el.set("visibility", "visible" if visible else "hidden")

    def apply_modification(self, mod: LayerModification) -> None:
        if mod.role is LayerRole.TEXT:
            self.set_text(mod.layer_id, mod.value)
        elif mod.role is LayerRole.GRAPHIC:
            self.recolor(mod.layer_id, mod.value)
        else:
            self.place_logo(mod.layer_id, mod.value)

    def serialize(self) -> str:
        data: bytes = etree.tostring(self.doc.tree, encoding="utf-8", xml_declaration=self.doc.has_declaration)
        return data.decode("utf-8")


def apply_configuration(
    original_text: str,
    configuration: VariantConfiguration,
    assets: AssetBundle | None = None,
) -> str:
    """Render ``configuration`` onto ``original_text`` and return the new SVG text.

    Unresolvable layer or asset references are logged and skipped. Raises
    ``ParseError`` if ``original_text`` is not a valid SVG document.
    """
    editor = _DocumentEditor(load_document(original_text), assets or AssetBundle())

    for mod in configuration.layer_modifications:
        editor.apply_modification(mod)
    for color in configuration.colors:
        editor.recolor(color.layer_name, color.color_id)
    for slot in configuration.logo_slots:
        editor.place_logo(slot.slot_name, slot.logo_id, slot.size_percent)
    for pattern in configuration.pattern_overlays:
        editor.apply_pattern(pattern.target_position, pattern.pattern_asset_id)
    for overlay in configuration.embellishment_overlays:
        editor.apply_embellishment(overlay.target_position, overlay.embellishment_asset_id, overlay.size_percent)
    for font in configuration.fonts:
        editor.set_font(font.layer_name, font.font_id)
    if configuration.team_number_visible is not None:
        editor.set_team_number_visibility(configuration.team_number_visible)

    return editor.serialize()
