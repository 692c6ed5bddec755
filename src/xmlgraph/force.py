"""Force-directed layout for the flat graph model.

The simulation state is an immutable :class:`SimulationState` advanced by the
pure :func:`step` function. :class:`ForceLayoutEngine` owns one state, steps it
once per scheduler frame until the energy (``alpha``) falls below
``alpha_min``, mirrors positions onto the graph model nodes and emits
``position-updated`` after every step.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from .config import ForceConfig, ViewConfig
from .events import POSITION_UPDATED, SETTLED, Dispatcher
from .models import Classification, GraphModel
from .scheduler import Handle, Scheduler

logger = logging.getLogger(__name__)

_LCG_A = 1664525
_LCG_C = 1013904223
_LCG_M = 4294967296
_INITIAL_RADIUS = 10.0
_INITIAL_ANGLE = math.pi * (3.0 - math.sqrt(5.0))

DRAWN_RADIUS = {
    Classification.ROOT: 20.0,
    Classification.CONTAINER: 15.0,
    Classification.ELEMENT: 12.0,
    Classification.LEAF: 10.0,
}


@dataclass(frozen=True)
class Body:
    id: str
    classification: Classification
    x: float
    y: float
    vx: float = 0.0
    vy: float = 0.0
    fx: Optional[float] = None
    fy: Optional[float] = None

    @property
    def pinned(self) -> bool:
        return self.fx is not None and self.fy is not None


@dataclass(frozen=True)
class SimulationState:
    bodies: Tuple[Body, ...]
    links: Tuple[Tuple[int, int], ...]
    center: Tuple[float, float]
    alpha: float = 1.0
    alpha_target: float = 0.0
    seed: int = 1

    def index_of(self, node_id: str) -> int:
        for idx, body in enumerate(self.bodies):
            if body.id == node_id:
                return idx
        raise KeyError(node_id)


def initial_state(
    graph: GraphModel, center: Tuple[float, float], config: Optional[ForceConfig] = None
) -> SimulationState:
    """Seed bodies on a phyllotaxis spiral so no two share coordinates."""
    config = config or ForceConfig()
    cx, cy = center
    bodies: List[Body] = []
    for i, node in enumerate(graph.nodes):
        radius = _INITIAL_RADIUS * math.sqrt(0.5 + i)
        angle = i * _INITIAL_ANGLE
        bodies.append(
            Body(
                id=node.id,
                classification=node.classification,
                x=cx + radius * math.cos(angle),
                y=cy + radius * math.sin(angle),
            )
        )
    index = {body.id: idx for idx, body in enumerate(bodies)}
    links = tuple(
        (index[link.source], index[link.target])
        for link in graph.links
        if link.source in index and link.target in index
    )
    return SimulationState(
        bodies=tuple(bodies),
        links=links,
        center=(cx, cy),
        alpha=config.alpha,
        alpha_target=config.alpha_target,
    )


def collision_radius(classification: Classification, config: ForceConfig) -> float:
    if classification is Classification.ROOT:
        return config.radius_root
    if classification is Classification.CONTAINER:
        return config.radius_container
    return config.radius_other


class _Jiggle:
    """Deterministic tiny offsets for coincident points."""

    def __init__(self, seed: int) -> None:
        self.seed = seed

    def __call__(self) -> float:
        self.seed = (_LCG_A * self.seed + _LCG_C) % _LCG_M
        return (self.seed / _LCG_M - 0.5) * 1e-6


def step(state: SimulationState, config: ForceConfig, dt: float = 1.0) -> SimulationState:
    """Advance the simulation by one tick and return the new state."""
    n = len(state.bodies)
    if n == 0:
        return state

    alpha = state.alpha + (state.alpha_target - state.alpha) * config.alpha_decay
    jiggle = _Jiggle(state.seed)
    xs = [b.x for b in state.bodies]
    ys = [b.y for b in state.bodies]
    vxs = [b.vx for b in state.bodies]
    vys = [b.vy for b in state.bodies]

    _apply_links(state.links, n, xs, ys, vxs, vys, alpha, config, jiggle)
    _apply_charge(n, xs, ys, vxs, vys, alpha, config, jiggle)
    _apply_center(n, xs, ys, state.center, config)
    radii = [collision_radius(b.classification, config) for b in state.bodies]
    _apply_collide(n, xs, ys, vxs, vys, radii, config, jiggle)

    keep = 1.0 - config.velocity_decay
    bodies: List[Body] = []
    for i, body in enumerate(state.bodies):
        if body.fx is None:
            vxs[i] *= keep
            xs[i] += vxs[i] * dt
        else:
            xs[i] = body.fx
            vxs[i] = 0.0
        if body.fy is None:
            vys[i] *= keep
            ys[i] += vys[i] * dt
        else:
            ys[i] = body.fy
            vys[i] = 0.0
        bodies.append(replace(body, x=xs[i], y=ys[i], vx=vxs[i], vy=vys[i]))

    return replace(state, bodies=tuple(bodies), alpha=alpha, seed=jiggle.seed)


def _apply_links(links, n, xs, ys, vxs, vys, alpha, config, jiggle) -> None:
    count = [0] * n
    for source, target in links:
        count[source] += 1
        count[target] += 1
    for source, target in links:
        strength = 1.0 / min(count[source], count[target])
        bias = count[source] / (count[source] + count[target])
        dx = xs[target] + vxs[target] - xs[source] - vxs[source] or jiggle()
        dy = ys[target] + vys[target] - ys[source] - vys[source] or jiggle()
        length = math.sqrt(dx * dx + dy * dy)
        length = (length - config.link_distance) / length * alpha * strength
        dx *= length
        dy *= length
        vxs[target] -= dx * bias
        vys[target] -= dy * bias
        vxs[source] += dx * (1.0 - bias)
        vys[source] += dy * (1.0 - bias)


def _apply_charge(n, xs, ys, vxs, vys, alpha, config, jiggle) -> None:
    min2 = config.charge_distance_min * config.charge_distance_min
    for i in range(n):
        for j in range(n):
            if i == j:
                continue
            dx = xs[j] - xs[i]
            dy = ys[j] - ys[i]
            l2 = dx * dx + dy * dy
            if dx == 0:
                dx = jiggle()
                l2 += dx * dx
            if dy == 0:
                dy = jiggle()
                l2 += dy * dy
            if l2 < min2:
                l2 = math.sqrt(min2 * l2)
            vxs[i] += dx * config.charge_strength * alpha / l2
            vys[i] += dy * config.charge_strength * alpha / l2


def _apply_center(n, xs, ys, center, config) -> None:
    sx = (sum(xs) / n - center[0]) * config.center_strength
    sy = (sum(ys) / n - center[1]) * config.center_strength
    for i in range(n):
        xs[i] -= sx
        ys[i] -= sy


def _apply_collide(n, xs, ys, vxs, vys, radii, config, jiggle) -> None:
    for i in range(n):
        ri = radii[i]
        ri2 = ri * ri
        for j in range(i + 1, n):
            rj = radii[j]
            r = ri + rj
            dx = xs[i] + vxs[i] - xs[j] - vxs[j]
            dy = ys[i] + vys[i] - ys[j] - vys[j]
            l2 = dx * dx + dy * dy
            if l2 >= r * r:
                continue
            if dx == 0:
                dx = jiggle()
                l2 += dx * dx
            if dy == 0:
                dy = jiggle()
                l2 += dy * dy
            length = math.sqrt(l2)
            length = (r - length) / length * config.collide_strength
            dx *= length
            dy *= length
            rj2 = rj * rj
            weight = rj2 / (ri2 + rj2)
            vxs[i] += dx * weight
            vys[i] += dy * weight
            vxs[j] -= dx * (1.0 - weight)
            vys[j] -= dy * (1.0 - weight)


class ForceLayoutEngine:
    """Frame-driven owner of one force simulation."""

    def __init__(
        self,
        graph: GraphModel,
        scheduler: Scheduler,
        config: Optional[ForceConfig] = None,
        view: Optional[ViewConfig] = None,
        events: Optional[Dispatcher] = None,
    ) -> None:
        self.graph = graph
        self.scheduler = scheduler
        self.config = config or ForceConfig()
        self.view = view or ViewConfig()
        self.events = events or Dispatcher()
        self.state = initial_state(
            graph, (self.view.width / 2.0, self.view.height / 2.0), self.config
        )
        self._handle: Optional[Handle] = None
        self._sync()

    @property
    def running(self) -> bool:
        return self._handle is not None

    @property
    def settled(self) -> bool:
        return self.state.alpha < self.config.alpha_min

    def start(self) -> None:
        if self._handle is None and self.state.bodies:
            self._handle = self.scheduler.every_frame(self._on_frame)

    def stop(self) -> None:
        if self._handle is not None:
            self.scheduler.cancel(self._handle)
            self._handle = None

    def tick(self) -> None:
        self.state = step(self.state, self.config)
        self._sync()
        self.events.emit(POSITION_UPDATED, self.positions())

    def run_until_settled(self, max_steps: int = 1000) -> int:
        """Step synchronously, without the scheduler; returns steps taken."""
        steps = 0
        while self.state.bodies and not self.settled and steps < max_steps:
            self.tick()
            steps += 1
        logger.debug("force layout ran %d steps (alpha=%.5f)", steps, self.state.alpha)
        return steps

    def positions(self) -> Dict[str, Tuple[float, float]]:
        return {body.id: (body.x, body.y) for body in self.state.bodies}

    def reheat(self, alpha: Optional[float] = None) -> None:
        target = self.config.drag_alpha_target if alpha is None else alpha
        self.state = replace(self.state, alpha=max(self.state.alpha, target))
        self.start()

    def pin(self, node_id: str, x: float, y: float) -> None:
        self._update_body(node_id, fx=x, fy=y)

    def unpin(self, node_id: str) -> None:
        self._update_body(node_id, fx=None, fy=None)

    def drag_start(self, node_id: str) -> None:
        body = self.state.bodies[self.state.index_of(node_id)]
        self.state = replace(self.state, alpha_target=self.config.drag_alpha_target)
        self.pin(node_id, body.x, body.y)
        self.start()

    def drag(self, node_id: str, x: float, y: float) -> None:
        self.pin(node_id, x, y)

    def drag_end(self, node_id: str) -> None:
        self.state = replace(self.state, alpha_target=self.config.alpha_target)
        self.unpin(node_id)
        self.reheat()

    def node_at(self, x: float, y: float) -> Optional[str]:
        """Topmost node whose drawn circle contains the content point."""
        for body in reversed(self.state.bodies):
            radius = DRAWN_RADIUS[body.classification]
            if (body.x - x) ** 2 + (body.y - y) ** 2 <= radius * radius:
                return body.id
        return None

    def teardown(self) -> None:
        self.stop()
        self.events.clear()

    def _on_frame(self, _elapsed: float) -> bool:
        self.tick()
        if self.settled:
            self._handle = None
            logger.debug("force layout settled (alpha=%.5f)", self.state.alpha)
            self.events.emit(SETTLED)
            return False
        return True

    def _update_body(self, node_id: str, **changes) -> None:
        idx = self.state.index_of(node_id)
        bodies = list(self.state.bodies)
        bodies[idx] = replace(bodies[idx], **changes)
        self.state = replace(self.state, bodies=tuple(bodies))
        self._sync()

    def _sync(self) -> None:
        by_id = {node.id: node for node in self.graph.nodes}
        for body in self.state.bodies:
            node = by_id.get(body.id)
            if node is None:
                continue
            node.x, node.y = body.x, body.y
            node.vx, node.vy = body.vx, body.vy
            node.fx, node.fy = body.fx, body.fy


__all__ = [
    "Body",
    "DRAWN_RADIUS",
    "ForceLayoutEngine",
    "SimulationState",
    "collision_radius",
    "initial_state",
    "step",
]
