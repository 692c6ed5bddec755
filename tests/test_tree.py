from __future__ import annotations

import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from xmlgraph.config import TreeConfig
from xmlgraph.events import NODE_TOGGLED, TRANSITION_FRAME
from xmlgraph.resources import load_example
from xmlgraph.scheduler import ManualScheduler
from xmlgraph.transform import parse
from xmlgraph.tree import (
    Collapsed,
    CollapsibleTreeEngine,
    Expanded,
    Leaf,
    build_view_tree,
    ease_cubic_in_out,
)

BALANCED = "<r><a><a1/><a2/></a><b><b1/><b2/></b></r>"


def _engine(doc: str, scheduler: ManualScheduler | None = None) -> CollapsibleTreeEngine:
    return CollapsibleTreeEngine(parse(doc).tree, scheduler)


def _ys(engine: CollapsibleTreeEngine) -> dict:
    return {node.name: node.y for node in engine.visible_nodes()}


class ViewTreeTests(unittest.TestCase):
    def test_ids_are_breadth_first_from_one(self) -> None:
        root = build_view_tree(parse(BALANCED).tree)
        by_name = {node.name: node.id for node in root.descendants()}
        self.assertEqual(
            by_name, {"r": 1, "a": 2, "b": 3, "a1": 4, "a2": 5, "b1": 6, "b2": 7}
        )

    def test_initial_policy_expands_only_the_root(self) -> None:
        root = build_view_tree(parse(BALANCED).tree)
        self.assertIsInstance(root.visibility, Expanded)
        a, b = root.children
        self.assertIsInstance(a.visibility, Collapsed)
        self.assertIsInstance(b.visibility, Collapsed)
        self.assertIsInstance(a.all_children[0].visibility, Leaf)
        self.assertEqual([n.name for n in root.visible()], ["r", "a", "b"])

    def test_text_leaves_are_tree_nodes(self) -> None:
        engine = _engine("<r><t>hello</t></r>")
        engine.expand_all()
        self.assertEqual([n.name for n in engine.visible_nodes()], ["r", "t", '"hello"'])


class LayoutTests(unittest.TestCase):
    def test_siblings_spaced_by_dx(self) -> None:
        engine = _engine("<r><a/><b/><c/></r>")
        self.assertEqual(_ys(engine), {"r": 0.0, "a": -25.0, "b": 0.0, "c": 25.0})

    def test_depth_maps_to_x(self) -> None:
        engine = CollapsibleTreeEngine(parse(BALANCED).tree, config=TreeConfig(dy=180.0))
        engine.expand_all()
        for node in engine.visible_nodes():
            self.assertEqual(node.x, node.depth * 180.0)

    def test_default_depth_spacing_is_quarter_width(self) -> None:
        engine = _engine(BALANCED)
        self.assertEqual(engine.dy, 200.0)

    def test_cousins_are_separated_twice_as_far(self) -> None:
        engine = _engine(BALANCED)
        engine.expand_all()
        self.assertEqual(
            _ys(engine),
            {"r": 0.0, "a": -37.5, "a1": -50.0, "a2": -25.0, "b": 37.5, "b1": 25.0, "b2": 50.0},
        )

    def test_parents_centered_over_children(self) -> None:
        engine = _engine(load_example())
        engine.expand_all()
        for node in engine.visible_nodes():
            if node.children:
                first, last = node.children[0], node.children[-1]
                self.assertAlmostEqual(node.y, (first.y + last.y) / 2.0)

    def test_no_two_nodes_at_same_depth_overlap(self) -> None:
        engine = _engine(load_example())
        engine.expand_all()
        by_depth: dict = {}
        for node in engine.visible_nodes():
            by_depth.setdefault(node.depth, []).append(node.y)
        for ys in by_depth.values():
            ys.sort()
            for lower, upper in zip(ys, ys[1:]):
                self.assertGreaterEqual(upper - lower, 25.0 - 1e-9)


class ToggleTests(unittest.TestCase):
    def test_toggle_leaf_is_no_op(self) -> None:
        engine = _engine("<r><a/></r>")
        self.assertIsNone(engine.toggle(2))
        self.assertEqual(engine.state_of(2), "leaf")

    def test_expand_and_collapse_are_idempotent(self) -> None:
        engine = _engine(BALANCED)
        self.assertIsNone(engine.collapse(2))
        self.assertIsNotNone(engine.expand(2))
        self.assertIsNone(engine.expand(2))
        self.assertEqual(engine.state_of(2), "expanded")
        self.assertIsNotNone(engine.collapse(2))
        self.assertEqual(engine.state_of(2), "collapsed")

    def test_collapse_restores_hidden_subtree(self) -> None:
        engine = _engine(BALANCED)
        engine.expand_all()
        engine.collapse(1)
        self.assertEqual([n.name for n in engine.visible_nodes()], ["r"])
        engine.expand(1)
        self.assertEqual(
            [n.name for n in engine.visible_nodes()], ["r", "a", "a1", "a2", "b", "b1", "b2"]
        )

    def test_collapse_all_returns_to_initial_policy(self) -> None:
        engine = _engine(BALANCED)
        engine.expand_all()
        engine.collapse(1)
        engine.collapse_all()
        self.assertEqual([n.name for n in engine.visible_nodes()], ["r", "a", "b"])

    def test_toggle_emits_event(self) -> None:
        engine = _engine(BALANCED)
        seen = []
        engine.events.on(NODE_TOGGLED, lambda node_id, state: seen.append((node_id, state)))
        engine.toggle(3)
        engine.toggle(3)
        self.assertEqual(seen, [(3, "expanded"), (3, "collapsed")])

    def test_links_follow_visibility(self) -> None:
        engine = _engine(BALANCED)
        engine.expand(3)
        links = [(p.name, c.name) for p, c in engine.visible_links()]
        self.assertEqual(links, [("r", "a"), ("r", "b"), ("b", "b1"), ("b", "b2")])


class TransitionTests(unittest.TestCase):
    def test_entering_nodes_start_at_source_old_position(self) -> None:
        engine = _engine(BALANCED)
        a = engine.node(2)
        old = (a.x, a.y)
        transition = engine.expand(2)
        self.assertEqual(sorted(transition.entering()), [4, 5])
        self.assertEqual(transition.exiting(), [])
        for motion in transition.nodes:
            if motion.kind == "enter":
                self.assertEqual(motion.start, old)
                node = engine.node(motion.node_id)
                self.assertEqual(motion.end, (node.x, node.y))

    def test_exiting_nodes_end_at_source_new_position(self) -> None:
        engine = _engine(BALANCED)
        engine.expand(2)
        transition = engine.collapse(2)
        a = engine.node(2)
        self.assertEqual(sorted(transition.exiting()), [4, 5])
        for motion in transition.nodes:
            if motion.kind == "exit":
                self.assertEqual(motion.end, (a.x, a.y))
        exit_links = [m for m in transition.links if m.kind == "exit"]
        self.assertEqual(sorted(m.target_id for m in exit_links), [4, 5])

    def test_frames_interpolate_and_drop_exits_at_end(self) -> None:
        engine = _engine(BALANCED)
        engine.expand(2)
        transition = engine.collapse(2)
        start = {n.node_id: n for n in transition.at(0.0).nodes}
        self.assertEqual(start[4].opacity, 1.0)
        end = transition.at(1.0)
        self.assertNotIn(4, {n.node_id for n in end.nodes})
        self.assertEqual(end.viewport, transition.viewport_end)
        mid = {n.node_id: n for n in transition.at(0.5).nodes}
        self.assertAlmostEqual(mid[4].opacity, 0.5)

    def test_viewport_tracks_topmost_node(self) -> None:
        engine = _engine(BALANCED)
        transition = engine.expand_all()
        self.assertEqual(transition.viewport_end.y, -50.0 - 25.0)
        self.assertEqual(transition.viewport_end.x, -200.0 / 3.0)
        self.assertEqual(transition.viewport_end.width, 800.0)

    def test_ease_cubic_in_out(self) -> None:
        self.assertEqual(ease_cubic_in_out(0.0), 0.0)
        self.assertEqual(ease_cubic_in_out(0.5), 0.5)
        self.assertEqual(ease_cubic_in_out(1.0), 1.0)
        self.assertLess(ease_cubic_in_out(0.25), 0.25)

    def test_animation_runs_on_scheduler(self) -> None:
        scheduler = ManualScheduler()
        engine = _engine(BALANCED, scheduler)
        frames = []
        engine.events.on(TRANSITION_FRAME, frames.append)
        scheduler.run_until_idle()
        frames.clear()

        engine.toggle(2)
        count = scheduler.run_until_idle()
        self.assertGreater(count, 10)
        self.assertEqual(len(frames), count)
        self.assertEqual(frames[-1].t, 1.0)
        self.assertTrue(scheduler.idle)

    def test_slow_toggle_lasts_longer(self) -> None:
        scheduler = ManualScheduler()
        engine = _engine(BALANCED, scheduler)
        scheduler.run_until_idle()
        engine.toggle(2)
        fast = scheduler.run_until_idle()
        engine.toggle(2, slow=True)
        slow = scheduler.run_until_idle()
        self.assertGreater(slow, fast * 5)

    def test_new_toggle_replaces_running_animation(self) -> None:
        scheduler = ManualScheduler()
        engine = _engine(BALANCED, scheduler)
        engine.toggle(2)
        scheduler.advance(2)
        engine.toggle(3)
        scheduler.run_until_idle()
        self.assertEqual(engine.transition.source_id, 3)
        self.assertTrue(scheduler.idle)


class HitTestTests(unittest.TestCase):
    def test_hit_and_click(self) -> None:
        engine = _engine(BALANCED)
        a = engine.node(2)
        self.assertIs(engine.hit_test(a.x + 3.0, a.y + 3.0), a)
        self.assertIsNone(engine.hit_test(a.x + 50.0, a.y))
        transition = engine.click(a.x, a.y)
        self.assertIsNotNone(transition)
        self.assertEqual(engine.state_of(2), "expanded")

    def test_click_on_empty_space(self) -> None:
        engine = _engine(BALANCED)
        self.assertIsNone(engine.click(-500.0, -500.0))

    def test_teardown_stops_animation(self) -> None:
        scheduler = ManualScheduler()
        engine = _engine(BALANCED, scheduler)
        engine.toggle(2)
        engine.teardown()
        self.assertTrue(scheduler.idle)

    def test_find(self) -> None:
        engine = _engine(BALANCED)
        self.assertEqual([n.id for n in engine.find("b2")], [7])


if __name__ == "__main__":
    unittest.main()
