"""Pointer interaction shared by both views: zoom/pan, hover tooltips, drag, click.

All controllers receive pointer positions in screen space and map them into
content space through the current :class:`ZoomTransform`; node positions are
never changed by zooming or panning.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from .events import NODE_HOVERED, Dispatcher
from .scheduler import Handle, Scheduler

logger = logging.getLogger(__name__)

Point = Tuple[float, float]
T = TypeVar("T")

WHEEL_LINE_FACTOR = 0.05
WHEEL_PIXEL_FACTOR = 0.002


@dataclass(frozen=True)
class ZoomTransform:
    k: float = 1.0
    x: float = 0.0
    y: float = 0.0

    def apply(self, point: Point) -> Point:
        return (point[0] * self.k + self.x, point[1] * self.k + self.y)

    def invert(self, point: Point) -> Point:
        return ((point[0] - self.x) / self.k, (point[1] - self.y) / self.k)

    def to_svg(self) -> str:
        return f"translate({_num(self.x)},{_num(self.y)}) scale({_num(self.k)})"


class ZoomBehavior:
    """Scale + translation constrained to ``[scale_min, scale_max]``."""

    def __init__(self, scale_min: float, scale_max: float, transform: Optional[ZoomTransform] = None):
        if scale_min <= 0 or scale_max < scale_min:
            raise ValueError(f"invalid zoom extent [{scale_min}, {scale_max}]")
        self.scale_min = scale_min
        self.scale_max = scale_max
        self.transform = transform or ZoomTransform()
        self._pan_origin: Optional[Point] = None
        self._listeners: List[Callable[[ZoomTransform], None]] = []

    def on_change(self, listener: Callable[[ZoomTransform], None]) -> None:
        self._listeners.append(listener)

    def clamp(self, k: float) -> float:
        return min(max(k, self.scale_min), self.scale_max)

    def zoom_at(self, point: Point, factor: float) -> ZoomTransform:
        """Scale by ``factor`` keeping the content under ``point`` fixed."""
        anchor = self.transform.invert(point)
        k = self.clamp(self.transform.k * factor)
        return self._set(ZoomTransform(k, point[0] - anchor[0] * k, point[1] - anchor[1] * k))

    def wheel(self, point: Point, delta_y: float, line_mode: bool = False) -> ZoomTransform:
        step = -delta_y * (WHEEL_LINE_FACTOR if line_mode else WHEEL_PIXEL_FACTOR)
        return self.zoom_at(point, 2.0 ** step)

    def scale_to(self, k: float) -> ZoomTransform:
        return self._set(replace(self.transform, k=self.clamp(k)))

    def translate_to(self, x: float, y: float) -> ZoomTransform:
        return self._set(replace(self.transform, x=x, y=y))

    def pan_by(self, dx: float, dy: float) -> ZoomTransform:
        return self._set(replace(self.transform, x=self.transform.x + dx, y=self.transform.y + dy))

    def pan_start(self, point: Point) -> None:
        self._pan_origin = point

    def pan_move(self, point: Point) -> Optional[ZoomTransform]:
        if self._pan_origin is None:
            return None
        dx = point[0] - self._pan_origin[0]
        dy = point[1] - self._pan_origin[1]
        self._pan_origin = point
        return self.pan_by(dx, dy)

    def pan_end(self) -> None:
        self._pan_origin = None

    @property
    def panning(self) -> bool:
        return self._pan_origin is not None

    def _set(self, transform: ZoomTransform) -> ZoomTransform:
        self.transform = transform
        for listener in list(self._listeners):
            listener(transform)
        return transform


@dataclass(frozen=True)
class TooltipContent:
    title: str
    attributes: Tuple[Tuple[str, str], ...] = ()

    def lines(self) -> List[str]:
        return [self.title] + [f"{key}: {value}" for key, value in self.attributes]


class Tooltip:
    """Transient overlay state; fades in on show, hides after a delay."""

    def __init__(
        self,
        scheduler: Scheduler,
        hide_delay_ms: float = 500.0,
        fade_in_ms: float = 200.0,
        offset: Point = (15.0, -15.0),
        opacity: float = 0.9,
    ) -> None:
        self.scheduler = scheduler
        self.hide_delay_ms = hide_delay_ms
        self.fade_in_ms = fade_in_ms
        self.offset = offset
        self.max_opacity = opacity
        self.content: Optional[TooltipContent] = None
        self.position: Point = (0.0, 0.0)
        self.visible = False
        self.destroyed = False
        self._shown_at = 0.0
        self._hide: Optional[Handle] = None

    @property
    def opacity(self) -> float:
        if not self.visible:
            return 0.0
        if self.fade_in_ms <= 0:
            return self.max_opacity
        progress = (self.scheduler.now() - self._shown_at) / self.fade_in_ms
        return self.max_opacity * min(max(progress, 0.0), 1.0)

    def show(self, content: TooltipContent, pointer: Point) -> None:
        if self.destroyed:
            return
        self._cancel_hide()
        if not self.visible:
            self._shown_at = self.scheduler.now()
        self.content = content
        self.visible = True
        self.move(pointer)

    def move(self, pointer: Point) -> None:
        self.position = (pointer[0] + self.offset[0], pointer[1] + self.offset[1])

    def hide(self) -> None:
        if self.destroyed or not self.visible:
            return
        self._cancel_hide()
        self._hide = self.scheduler.after(self.hide_delay_ms, self._finish_hide)

    def destroy(self) -> None:
        self._cancel_hide()
        self.visible = False
        self.content = None
        self.destroyed = True

    def _finish_hide(self) -> None:
        self._hide = None
        self.visible = False

    def _cancel_hide(self) -> None:
        if self._hide is not None:
            self.scheduler.cancel(self._hide)
            self._hide = None


class HoverController(Generic[T]):
    """Pointer-over/out handling that drives a :class:`Tooltip`."""

    def __init__(
        self,
        hit_test: Callable[[float, float], Optional[T]],
        describe: Callable[[T], TooltipContent],
        key: Callable[[T], object],
        tooltip: Tooltip,
        zoom: ZoomBehavior,
        events: Optional[Dispatcher] = None,
    ) -> None:
        self.hit_test = hit_test
        self.describe = describe
        self.key = key
        self.tooltip = tooltip
        self.zoom = zoom
        self.events = events or Dispatcher()
        self.current: Optional[T] = None

    def pointer_move(self, screen: Point) -> Optional[T]:
        content = self.zoom.transform.invert(screen)
        target = self.hit_test(*content)
        if target is None:
            if self.current is not None:
                self.pointer_out()
            return None
        if self.current is None or self.key(self.current) != self.key(target):
            self.current = target
            self.tooltip.show(self.describe(target), screen)
            self.events.emit(NODE_HOVERED, self.key(target))
        else:
            self.tooltip.move(screen)
        return target

    def pointer_out(self) -> None:
        self.current = None
        self.tooltip.hide()
        self.events.emit(NODE_HOVERED, None)


class DragController:
    """Pins force-layout nodes under the pointer; falls back to panning."""

    def __init__(self, engine, zoom: ZoomBehavior) -> None:
        self.engine = engine
        self.zoom = zoom
        self.dragging: Optional[str] = None

    def pointer_down(self, screen: Point) -> Optional[str]:
        content = self.zoom.transform.invert(screen)
        node_id = self.engine.node_at(*content)
        if node_id is None:
            self.zoom.pan_start(screen)
            return None
        self.dragging = node_id
        self.engine.drag_start(node_id)
        logger.debug("drag start on %s", node_id)
        return node_id

    def pointer_move(self, screen: Point) -> None:
        if self.dragging is not None:
            self.engine.drag(self.dragging, *self.zoom.transform.invert(screen))
        elif self.zoom.panning:
            self.zoom.pan_move(screen)

    def pointer_up(self) -> None:
        if self.dragging is not None:
            self.engine.drag_end(self.dragging)
            logger.debug("drag end on %s", self.dragging)
            self.dragging = None
        self.zoom.pan_end()


class PanController:
    """Turns pointer drags anywhere on the canvas into zoom pans."""

    def __init__(self, zoom: ZoomBehavior) -> None:
        self.zoom = zoom

    def pointer_down(self, screen: Point) -> None:
        self.zoom.pan_start(screen)

    def pointer_move(self, screen: Point) -> Optional[ZoomTransform]:
        return self.zoom.pan_move(screen)

    def pointer_up(self) -> None:
        self.zoom.pan_end()


class ClickController:
    """Toggles tree nodes clicked in screen space."""

    def __init__(self, engine, zoom: ZoomBehavior) -> None:
        self.engine = engine
        self.zoom = zoom

    def click(self, screen: Point, *, slow: bool = False):
        return self.engine.click(*self.zoom.transform.invert(screen), slow=slow)


def attribute_pairs(attributes: Dict[str, str]) -> Tuple[Tuple[str, str], ...]:
    return tuple(attributes.items())


def _num(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"


__all__ = [
    "ClickController",
    "DragController",
    "HoverController",
    "PanController",
    "Tooltip",
    "TooltipContent",
    "ZoomBehavior",
    "ZoomTransform",
]
