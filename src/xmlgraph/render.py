"""Static SVG/PNG snapshots of the graph and tree views.

Both views are first described as a :class:`Scene` of simple shapes (lines,
curves, circles, text). The SVG backend serialises the scene with
ElementTree; the PNG backend rasterises it with Pillow. Label widths come from
Pillow font metrics so the snapshot bounds enclose every label.
"""
from __future__ import annotations

import io
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from PIL import Image, ImageDraw, ImageFont

from .config import ViewConfig
from .force import DRAWN_RADIUS
from .interaction import ZoomTransform
from .models import Classification, GraphModel
from .tree import CollapsibleTreeEngine, ViewNode

SVG_NS = "http://www.w3.org/2000/svg"
ET.register_namespace("", SVG_NS)

DEFAULT_FONT_FAMILY = "sans-serif"
FONT_CANDIDATES = ["DejaVuSans.ttf", "Arial.ttf", "Helvetica.ttc", "LiberationSans-Regular.ttf"]

LEGEND = [
    (Classification.ROOT, "Root Element", "#e74c3c"),
    (Classification.CONTAINER, "Container (4+ children)", "#3498db"),
    (Classification.ELEMENT, "Element", "#2ecc71"),
    (Classification.LEAF, "Leaf (no children)", "#f39c12"),
]
NODE_COLORS = {kind: color for kind, _, color in LEGEND}

TREE_LINK = "#94a3b8"
TREE_DARK = "#1e293b"
TREE_ACCENT = "#38bdf8"
MINUS = "−"

Point = Tuple[float, float]


@dataclass
class Line:
    start: Point
    end: Point
    stroke: str
    width: float = 1.5
    opacity: float = 1.0


@dataclass
class Curve:
    """Cubic Bezier from ``points[0]`` to ``points[3]``."""
    points: Tuple[Point, Point, Point, Point]
    stroke: str
    width: float = 1.5
    opacity: float = 1.0


@dataclass
class Circle:
    center: Point
    r: float
    fill: str
    stroke: str
    stroke_width: float = 2.0
    title: Optional[str] = None
    node_id: Optional[str] = None


@dataclass
class Text:
    origin: Point
    lines: List[str]
    size: float
    anchor: str = "start"  # start | middle | end
    fill: str = "#333"
    line_height: float = 1.2  # em
    weight: str = "normal"
    halo: Optional[str] = None
    css_class: Optional[str] = None


Shape = Union[Line, Curve, Circle, Text]


@dataclass
class Scene:
    width: float
    height: float
    viewbox: Tuple[float, float, float, float]
    content: List[Shape] = field(default_factory=list)
    overlay: List[Shape] = field(default_factory=list)
    transform: Optional[ZoomTransform] = None


class _TextMeasurer:
    """Caches Pillow fonts and exposes width helpers."""

    def __init__(self) -> None:
        self._font_cache: Dict[int, ImageFont.ImageFont] = {}

    def font(self, size: float) -> ImageFont.ImageFont:
        key_size = max(1, int(round(size)))
        if key_size in self._font_cache:
            return self._font_cache[key_size]
        font: Optional[ImageFont.ImageFont] = None
        for candidate in FONT_CANDIDATES:
            try:
                font = ImageFont.truetype(candidate, key_size)
                break
            except OSError:
                continue
        if font is None:
            font = ImageFont.load_default(size=key_size)
        self._font_cache[key_size] = font
        return font

    def measure(self, text: str, size: float) -> float:
        return float(self.font(size).getlength(text))


_TEXT_MEASURER = _TextMeasurer()


def text_width(text: str, size: float) -> float:
    return _TEXT_MEASURER.measure(text, size)


def graph_scene(
    graph: GraphModel,
    view: Optional[ViewConfig] = None,
    transform: Optional[ZoomTransform] = None,
    legend: bool = True,
    padding: float = 20.0,
) -> Scene:
    """Scene for the force-directed view using the nodes' current positions."""
    view = view or ViewConfig()
    by_id = {node.id: node for node in graph.nodes}
    content: List[Shape] = []
    for link in graph.links:
        source, target = by_id[link.source], by_id[link.target]
        content.append(Line((source.x, source.y), (target.x, target.y), "#999", 1.5, 0.6))
    for node in graph.nodes:
        content.append(
            Circle(
                (node.x, node.y),
                DRAWN_RADIUS[node.classification],
                NODE_COLORS[node.classification],
                "#fff",
                2.0,
                title=_tooltip_text(node.tag_name, node.attributes),
                node_id=node.id,
            )
        )
        lines = node.label.split("\n")
        first = -(len(lines) - 1) / 2.0 * 1.2 * 9.0
        content.append(Text((node.x, node.y + first), lines, 9.0, anchor="middle"))

    overlay: List[Shape] = []
    if legend:
        for idx, (_, label, color) in enumerate(LEGEND):
            y = 20.0 + idx * 25.0
            overlay.append(Circle((20.0, y), 8.0, color, color, 0.0))
            overlay.append(Text((35.0, y + 0.35 * 12.0), [label], 12.0))

    viewbox = _union_viewbox((0.0, 0.0, view.width, view.height), content, transform, padding)
    return Scene(view.width, view.height, viewbox, content, overlay, transform)


def tree_scene(
    engine: CollapsibleTreeEngine,
    transform: Optional[ZoomTransform] = None,
    padding: float = 20.0,
) -> Scene:
    """Scene for the collapsible tree at its current (final) layout."""
    content: List[Shape] = []
    for parent, child in engine.visible_links():
        content.append(Curve(_link_horizontal((parent.x, parent.y), (child.x, child.y)),
                             TREE_LINK, 1.5, 0.6))
    for node in engine.visible_nodes():
        fill, stroke, glyph_fill, glyph = _tree_style(node)
        content.append(
            Circle(
                (node.x, node.y),
                node.radius,
                fill,
                stroke,
                2.0,
                title=_tooltip_text(node.name, node.data.attributes),
                node_id=str(node.id),
            )
        )
        if glyph:
            content.append(Text((node.x, node.y + 0.35 * 10.0), [glyph], 10.0, anchor="middle",
                                fill=glyph_fill, weight="bold", css_class="expand-indicator"))
        offset = -15.0 if node.has_children else 15.0
        content.append(
            Text(
                (node.x + offset, node.y + 0.31 * 12.0),
                [node.name],
                12.0,
                anchor="end" if node.has_children else "start",
                fill="#000",
                halo="white",
                css_class="node-label",
            )
        )
    vp = engine.viewport
    viewbox = _union_viewbox((vp.x, vp.y, vp.width, vp.height), content, transform, padding)
    return Scene(vp.width, vp.height, viewbox, content, [], transform)


def _tree_style(node: ViewNode) -> Tuple[str, str, str, str]:
    if node.state == "collapsed":
        return TREE_DARK, TREE_DARK, "#ffffff", "+"
    if node.state == "expanded":
        return "#ffffff", TREE_ACCENT, TREE_ACCENT, MINUS
    return TREE_ACCENT, TREE_ACCENT, "transparent", ""


def _link_horizontal(source: Point, target: Point) -> Tuple[Point, Point, Point, Point]:
    mid = (source[0] + target[0]) / 2.0
    return (source, (mid, source[1]), (mid, target[1]), target)


def _tooltip_text(name: str, attributes: Dict[str, str]) -> str:
    return "\n".join([name] + [f"{key}: {value}" for key, value in attributes.items()])


def _shape_bbox(shape: Shape) -> Tuple[float, float, float, float]:
    if isinstance(shape, Line):
        xs, ys = (shape.start[0], shape.end[0]), (shape.start[1], shape.end[1])
        return min(xs), min(ys), max(xs), max(ys)
    if isinstance(shape, Curve):
        xs = [p[0] for p in shape.points]
        ys = [p[1] for p in shape.points]
        return min(xs), min(ys), max(xs), max(ys)
    if isinstance(shape, Circle):
        cx, cy = shape.center
        r = shape.r + shape.stroke_width / 2.0
        return cx - r, cy - r, cx + r, cy + r
    width = max((text_width(line, shape.size) for line in shape.lines), default=0.0)
    x, y = shape.origin
    if shape.anchor == "middle":
        left = x - width / 2.0
    elif shape.anchor == "end":
        left = x - width
    else:
        left = x
    bottom = y + (len(shape.lines) - 1) * shape.line_height * shape.size + 0.25 * shape.size
    return left, y - shape.size, left + width, bottom


def _merge_bbox(
    a: Optional[Tuple[float, float, float, float]], b: Tuple[float, float, float, float]
) -> Tuple[float, float, float, float]:
    if a is None:
        return b
    return min(a[0], b[0]), min(a[1], b[1]), max(a[2], b[2]), max(a[3], b[3])


def _union_viewbox(
    base: Tuple[float, float, float, float],
    shapes: List[Shape],
    transform: Optional[ZoomTransform],
    padding: float,
) -> Tuple[float, float, float, float]:
    bbox = None
    for shape in shapes:
        bbox = _merge_bbox(bbox, _shape_bbox(shape))
    x, y, w, h = base
    if bbox is None:
        return base
    if transform is not None:
        (l, t), (r, b) = transform.apply(bbox[:2]), transform.apply(bbox[2:])
        bbox = (l, t, r, b)
    left = min(x, bbox[0] - padding)
    top = min(y, bbox[1] - padding)
    right = max(x + w, bbox[2] + padding)
    bottom = max(y + h, bbox[3] + padding)
    return left, top, right - left, bottom - top


def _q(tag: str) -> str:
    return f"{{{SVG_NS}}}{tag}"


def to_svg(scene: Scene) -> str:
    vx, vy, vw, vh = scene.viewbox
    svg_root = ET.Element(_q("svg"))
    svg_root.set("width", _fmt(vw))
    svg_root.set("height", _fmt(vh))
    svg_root.set("viewBox", " ".join(_fmt(v) for v in scene.viewbox))
    svg_root.set("font-family", DEFAULT_FONT_FAMILY)

    container = ET.SubElement(svg_root, _q("g"))
    if scene.transform is not None:
        container.set("transform", scene.transform.to_svg())
    for shape in scene.content:
        _emit_shape(container, shape)
    if scene.overlay:
        legend = ET.SubElement(svg_root, _q("g"))
        legend.set("class", "legend")
        for shape in scene.overlay:
            _emit_shape(legend, shape)
    return _pretty_xml(svg_root)


def _emit_shape(parent: ET.Element, shape: Shape) -> None:
    if isinstance(shape, Line):
        elem = ET.SubElement(parent, _q("line"))
        elem.set("x1", _fmt(shape.start[0]))
        elem.set("y1", _fmt(shape.start[1]))
        elem.set("x2", _fmt(shape.end[0]))
        elem.set("y2", _fmt(shape.end[1]))
        _stroke(elem, shape.stroke, shape.width, shape.opacity)
    elif isinstance(shape, Curve):
        (x0, y0), (x1, y1), (x2, y2), (x3, y3) = shape.points
        elem = ET.SubElement(parent, _q("path"))
        elem.set(
            "d",
            f"M{_fmt(x0)},{_fmt(y0)}C{_fmt(x1)},{_fmt(y1)},{_fmt(x2)},{_fmt(y2)},{_fmt(x3)},{_fmt(y3)}",
        )
        elem.set("fill", "none")
        _stroke(elem, shape.stroke, shape.width, shape.opacity)
    elif isinstance(shape, Circle):
        elem = ET.SubElement(parent, _q("circle"))
        if shape.node_id is not None:
            elem.set("data-id", shape.node_id)
        elem.set("cx", _fmt(shape.center[0]))
        elem.set("cy", _fmt(shape.center[1]))
        elem.set("r", _fmt(shape.r))
        elem.set("fill", shape.fill)
        if shape.stroke_width:
            elem.set("stroke", shape.stroke)
            elem.set("stroke-width", _fmt(shape.stroke_width))
        if shape.title:
            title = ET.SubElement(elem, _q("title"))
            title.text = shape.title
    else:
        if shape.halo:
            halo = _emit_text(parent, shape)
            halo.set("stroke", shape.halo)
            halo.set("stroke-width", "3")
            halo.set("stroke-linejoin", "round")
        _emit_text(parent, shape)


def _emit_text(parent: ET.Element, shape: Text) -> ET.Element:
    elem = ET.SubElement(parent, _q("text"))
    if shape.css_class:
        elem.set("class", shape.css_class)
    elem.set("font-size", f"{_fmt(shape.size)}px")
    elem.set("fill", shape.fill)
    if shape.anchor != "start":
        elem.set("text-anchor", shape.anchor)
    if shape.weight != "normal":
        elem.set("font-weight", shape.weight)
    x, y = shape.origin
    if len(shape.lines) == 1:
        elem.set("x", _fmt(x))
        elem.set("y", _fmt(y))
        elem.text = shape.lines[0]
        return elem
    for idx, line in enumerate(shape.lines):
        tspan = ET.SubElement(elem, _q("tspan"))
        tspan.set("x", _fmt(x))
        tspan.set("y", _fmt(y + idx * shape.line_height * shape.size))
        tspan.text = line
    return elem


def _stroke(elem: ET.Element, color: str, width: float, opacity: float) -> None:
    elem.set("stroke", color)
    elem.set("stroke-width", _fmt(width))
    if opacity < 1.0:
        elem.set("stroke-opacity", _fmt(opacity))


def _pretty_xml(element: ET.Element) -> str:
    ET.indent(element, space="  ")
    return ET.tostring(element, encoding="unicode")


def _fmt(value: float) -> str:
    if math.isclose(value, round(value)):
        return str(int(round(value)))
    return f"{value:.3f}".rstrip("0").rstrip(".")


def to_png(scene: Scene, scale: float = 1.0, background: str = "#ffffff") -> bytes:
    if scale <= 0:
        raise ValueError("scale must be > 0")
    vx, vy, vw, vh = scene.viewbox
    size = (max(1, int(math.ceil(vw * scale))), max(1, int(math.ceil(vh * scale))))
    image = Image.new("RGB", size, background)
    draw = ImageDraw.Draw(image)

    def content_to_pixels(point: Point) -> Point:
        if scene.transform is not None:
            point = scene.transform.apply(point)
        return ((point[0] - vx) * scale, (point[1] - vy) * scale)

    def overlay_to_pixels(point: Point) -> Point:
        return ((point[0] - vx) * scale, (point[1] - vy) * scale)

    zoom = scene.transform.k if scene.transform is not None else 1.0
    for shape in scene.content:
        _draw_shape(draw, shape, content_to_pixels, scale * zoom)
    for shape in scene.overlay:
        _draw_shape(draw, shape, overlay_to_pixels, scale)

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def _draw_shape(draw: ImageDraw.ImageDraw, shape: Shape, to_px, factor: float) -> None:
    if isinstance(shape, Line):
        draw.line(
            [to_px(shape.start), to_px(shape.end)],
            fill=_blend(shape.stroke, shape.opacity),
            width=max(1, int(round(shape.width * factor))),
        )
    elif isinstance(shape, Curve):
        draw.line(
            [to_px(p) for p in _sample_bezier(shape.points)],
            fill=_blend(shape.stroke, shape.opacity),
            width=max(1, int(round(shape.width * factor))),
        )
    elif isinstance(shape, Circle):
        cx, cy = to_px(shape.center)
        r = shape.r * factor
        draw.ellipse(
            [cx - r, cy - r, cx + r, cy + r],
            fill=shape.fill,
            outline=shape.stroke if shape.stroke_width else None,
            width=max(0, int(round(shape.stroke_width * factor))),
        )
    elif shape.fill != "transparent":
        font = _TEXT_MEASURER.font(shape.size * factor)
        anchor = {"start": "ls", "middle": "ms", "end": "rs"}[shape.anchor]
        for idx, line in enumerate(shape.lines):
            x, y = to_px((shape.origin[0], shape.origin[1] + idx * shape.line_height * shape.size))
            if shape.halo:
                draw.text((x, y), line, font=font, anchor=anchor, fill=shape.fill,
                          stroke_width=max(1, int(round(1.5 * factor))), stroke_fill=shape.halo)
            else:
                draw.text((x, y), line, font=font, anchor=anchor, fill=shape.fill)


def _sample_bezier(points, segments: int = 16) -> List[Point]:
    (x0, y0), (x1, y1), (x2, y2), (x3, y3) = points
    out = []
    for i in range(segments + 1):
        t = i / segments
        u = 1.0 - t
        a, b, c, d = u * u * u, 3 * u * u * t, 3 * u * t * t, t * t * t
        out.append((a * x0 + b * x1 + c * x2 + d * x3, a * y0 + b * y1 + c * y2 + d * y3))
    return out


def _blend(color: str, opacity: float) -> Tuple[int, int, int]:
    """Flatten ``color`` at ``opacity`` over a white background."""
    value = color.lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    rgb = [int(value[i:i + 2], 16) for i in (0, 2, 4)]
    return tuple(int(round(c * opacity + 255 * (1.0 - opacity))) for c in rgb)  # type: ignore[return-value]


__all__ = [
    "Scene",
    "graph_scene",
    "text_width",
    "to_png",
    "to_svg",
    "tree_scene",
]
