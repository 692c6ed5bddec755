from __future__ import annotations

import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from xmlgraph.models import Classification, classify, truncate_text
from xmlgraph.resources import load_example
from xmlgraph.transform import MalformedDocument, parse


def _children(count: int) -> str:
    return "".join(f"<c{i}/>" for i in range(count))


class ParseStructureTests(unittest.TestCase):
    def test_small_document_nodes_and_links(self) -> None:
        parsed = parse("<root><a/><b><c/></b></root>")
        graph = parsed.graph
        self.assertEqual([n.tag_name for n in graph.nodes], ["root", "a", "b", "c"])
        self.assertEqual([n.id for n in graph.nodes], ["node-0", "node-1", "node-2", "node-3"])
        self.assertEqual(
            [(l.source, l.target) for l in graph.links],
            [("node-0", "node-1"), ("node-0", "node-2"), ("node-2", "node-3")],
        )
        kinds = {n.tag_name: n.classification for n in graph.nodes}
        self.assertEqual(kinds["root"], Classification.ROOT)
        self.assertEqual(kinds["a"], Classification.LEAF)
        self.assertEqual(kinds["b"], Classification.ELEMENT)
        self.assertEqual(kinds["c"], Classification.LEAF)
        self.assertEqual([n.depth for n in graph.nodes], [0, 1, 1, 2])

    def test_graph_is_a_tree(self) -> None:
        parsed = parse(load_example())
        nodes = parsed.graph.nodes
        links = parsed.graph.links
        self.assertEqual(len(nodes), 12)
        self.assertEqual(len(links), len(nodes) - 1)
        self.assertEqual(len({n.id for n in nodes}), len(nodes))
        targets = [l.target for l in links]
        self.assertEqual(len(set(targets)), len(targets))
        self.assertNotIn(nodes[0].id, targets)

    def test_container_boundary(self) -> None:
        three = parse(f"<r><p>{_children(3)}</p></r>")
        four = parse(f"<r><p>{_children(4)}</p></r>")
        self.assertEqual(three.graph.nodes[1].classification, Classification.ELEMENT)
        self.assertEqual(four.graph.nodes[1].classification, Classification.CONTAINER)

    def test_root_with_five_children_is_still_root(self) -> None:
        parsed = parse(f"<r>{_children(5)}</r>")
        self.assertEqual(parsed.graph.nodes[0].classification, Classification.ROOT)
        for node in parsed.graph.nodes[1:]:
            self.assertEqual(node.classification, Classification.LEAF)

    def test_classify_is_pure_function_of_depth_and_children(self) -> None:
        self.assertEqual(classify(0, 10), Classification.ROOT)
        self.assertEqual(classify(0, 0), Classification.ROOT)
        self.assertEqual(classify(2, 0), Classification.LEAF)
        self.assertEqual(classify(2, 3), Classification.ELEMENT)
        self.assertEqual(classify(2, 4), Classification.CONTAINER)

    def test_namespaced_tags_use_local_names(self) -> None:
        parsed = parse('<x:doc xmlns:x="urn:x" x:kind="a"><x:item/></x:doc>')
        self.assertEqual([n.tag_name for n in parsed.graph.nodes], ["doc", "item"])
        self.assertEqual(parsed.graph.nodes[0].attributes, {"kind": "a"})

    def test_attributes_sharing_a_local_name_are_both_kept(self) -> None:
        parsed = parse('<r xmlns:a="urn:a" xmlns:b="urn:b" a:id="1" b:id="2" kind="k"/>')
        self.assertEqual(
            parsed.graph.nodes[0].attributes,
            {"{urn:a}id": "1", "{urn:b}id": "2", "kind": "k"},
        )
        self.assertEqual(parsed.tree.attributes["{urn:b}id"], "2")

    def test_deeply_nested_document(self) -> None:
        depth = 2000
        parsed = parse("<a>" * depth + "</a>" * depth)
        self.assertEqual(len(parsed.graph.nodes), depth)
        self.assertEqual(len(parsed.graph.links), depth - 1)
        self.assertEqual(parsed.graph.nodes[-1].id, f"node-{depth - 1}")
        self.assertEqual(parsed.graph.nodes[-1].depth, depth - 1)
        self.assertEqual(parsed.tree.count(), depth)

        payload = parsed.to_dict()["tree"]
        levels = 1
        while payload["children"]:
            payload = payload["children"][0]
            levels += 1
        self.assertEqual(levels, depth)

    def test_comments_and_processing_instructions_are_skipped(self) -> None:
        parsed = parse('<!--lead--><r><a>foo<!--c-->bar</a><?pi x?><b/></r>')
        self.assertEqual([n.tag_name for n in parsed.graph.nodes], ["r", "a", "b"])
        self.assertEqual(parsed.graph.nodes[1].label, 'a\n"foo bar"')
        self.assertEqual(parsed.tree.children[0].children[0].name, '"foo bar"')


class LabelTests(unittest.TestCase):
    def test_label_with_attributes_and_text(self) -> None:
        parsed = parse('<r><file name="a.txt" size="2KB">  hello  </file></r>')
        label = parsed.graph.nodes[1].label
        self.assertEqual(label, 'file\n[name="a.txt", size="2KB"]\n"hello"')

    def test_long_text_is_truncated_in_label(self) -> None:
        text = "x" * 13 + "y" * 47
        self.assertEqual(len(text), 60)
        parsed = parse(f"<r><t>{text}</t></r>")
        label = parsed.graph.nodes[1].label
        self.assertEqual(label, f't\n"{text[:47]}..."')

    def test_short_text_is_verbatim(self) -> None:
        text = "a" * 47
        parsed = parse(f"<r><t>{text}</t></r>")
        self.assertEqual(parsed.graph.nodes[1].label, f't\n"{text}"')
        self.assertEqual(truncate_text("b" * 50), "b" * 50)
        self.assertEqual(truncate_text("b" * 51), "b" * 47 + "...")

    def test_text_ignored_for_elements_with_children(self) -> None:
        parsed = parse("<r><p>before<q/>after</p></r>")
        self.assertEqual(parsed.graph.nodes[1].label, "p")
        p_tree = parsed.tree.children[0]
        self.assertEqual([c.name for c in p_tree.children], ["q"])


class TreeModelTests(unittest.TestCase):
    def test_text_leaf_keeps_full_text(self) -> None:
        text = "z" * 60
        parsed = parse(f"<r><t>{text}</t></r>")
        leaf = parsed.tree.children[0].children[0]
        self.assertTrue(leaf.is_text)
        self.assertEqual(leaf.name, f'"{text}"')
        self.assertEqual(leaf.children, ())

    def test_tree_count_is_elements_plus_text_leaves(self) -> None:
        doc = "<r><a>one</a><b><c>two</c><d/></b><e>   </e></r>"
        parsed = parse(doc)
        elements = len(parsed.graph.nodes)
        self.assertEqual(elements, 6)
        self.assertEqual(parsed.tree.count(), elements + 2)

    def test_tree_mirrors_document_order(self) -> None:
        parsed = parse('<root><a k="v"/><b><c/></b></root>')
        tree = parsed.tree
        self.assertEqual(tree.name, "root")
        self.assertEqual([c.name for c in tree.children], ["a", "b"])
        self.assertEqual(tree.children[0].attributes, {"k": "v"})
        self.assertEqual([c.name for c in tree.children[1].children], ["c"])

    def test_to_dict_shapes(self) -> None:
        payload = parse("<root><a/></root>").to_dict()
        self.assertEqual(payload["tree"]["children"][0]["name"], "a")
        self.assertEqual(payload["graph"]["nodes"][1]["type"], "leaf")
        self.assertEqual(payload["graph"]["links"], [{"source": "node-0", "target": "node-1"}])


class MalformedInputTests(unittest.TestCase):
    def test_unclosed_tag(self) -> None:
        with self.assertRaises(MalformedDocument) as ctx:
            parse("<root><a></root>")
        self.assertEqual(ctx.exception.code, "E_PARSE_XML")
        self.assertIsNotNone(ctx.exception.line)

    def test_empty_and_blank_input(self) -> None:
        for source in ("", "   \n"):
            with self.assertRaises(MalformedDocument):
                parse(source)

    def test_text_without_root_element(self) -> None:
        with self.assertRaises(MalformedDocument):
            parse("just some text")

    def test_two_roots(self) -> None:
        with self.assertRaises(MalformedDocument):
            parse("<a/><b/>")


if __name__ == "__main__":
    unittest.main()
