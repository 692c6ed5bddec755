"""Command-line interface for xmlgraph parse/layout/render workflows."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .config import Config, ConfigError, load_config
from .force import ForceLayoutEngine
from .models import ParsedDocument
from .render import graph_scene, to_png, to_svg, tree_scene
from .resources import load_example
from .scheduler import ManualScheduler
from .transform import MalformedDocument, parse
from .tree import CollapsibleTreeEngine

logger = logging.getLogger(__name__)

SUBCOMMANDS = "parse, graph, tree, render, example"


@dataclass
class CliError(Exception):
    code: str
    message: str
    hint: Optional[str] = None
    exit_code: int = 1
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    retryable: bool = True


class UsageError(Exception):
    pass


class FriendlyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # pragma: no cover - argparse callback
        raise UsageError(message)


def _add_input_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", nargs="?", help="Input markup file")
    parser.add_argument("--text", help="Raw markup source")
    parser.add_argument("--stdout", action="store_true", help="Write result to stdout")
    parser.add_argument("-o", "--output", help="Output path")


def _add_view_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--width", type=float, help="Viewport width (default 800)")
    parser.add_argument("--height", type=float, help="Viewport height (default 600)")


def _add_graph_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--max-steps", type=int, default=1000, help="Simulation step limit")
    parser.add_argument("--no-legend", action="store_true", help="Omit the node type legend")


def _add_tree_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--expand-all", action="store_true", help="Expand every node")
    parser.add_argument(
        "--depth",
        type=int,
        help="Expand every node shallower than DEPTH (1 = root only, the default view)",
    )
    parser.add_argument(
        "--expand", type=int, nargs="+", metavar="ID", default=[], help="Toggle nodes open by id"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = FriendlyArgumentParser(
        prog="xmlgraph",
        description="Turn a markup document into a force-directed graph and a collapsible tree.",
    )
    parser.add_argument("--error-format", choices=["text", "json"], default="text")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--config", help="Path to a config.toml overriding the default location")

    subparsers = parser.add_subparsers(dest="command")

    parse_parser = subparsers.add_parser("parse", help="Emit the tree and graph models as JSON")
    _add_input_arguments(parse_parser)

    graph_parser = subparsers.add_parser("graph", help="Lay out the force-directed graph")
    _add_input_arguments(graph_parser)
    _add_view_arguments(graph_parser)
    _add_graph_arguments(graph_parser)
    graph_parser.add_argument("--format", choices=["svg", "json"], default="svg")

    tree_parser = subparsers.add_parser("tree", help="Lay out the collapsible tree")
    _add_input_arguments(tree_parser)
    _add_view_arguments(tree_parser)
    _add_tree_arguments(tree_parser)
    tree_parser.add_argument("--format", choices=["svg", "json"], default="svg")

    render_parser = subparsers.add_parser("render", help="Render a view to PNG")
    render_parser.add_argument("view", choices=["graph", "tree"])
    _add_input_arguments(render_parser)
    _add_view_arguments(render_parser)
    _add_graph_arguments(render_parser)
    _add_tree_arguments(render_parser)
    render_parser.add_argument("--scale", type=float, default=1.0)

    subparsers.add_parser("example", help="Print the bundled example document")

    return parser


def _read_input(path: Optional[str], text: Optional[str]) -> tuple[str, str, Optional[Path]]:
    if path and text is not None:
        raise CliError(
            "E_ARGS",
            "--text cannot be combined with file input",
            hint="Use either FILE or --text.",
            exit_code=2,
        )

    if text is not None:
        return text, "<text>", None

    if path:
        input_path = Path(path)
        if not input_path.exists():
            raise CliError(
                "E_IO_READ",
                f"input file not found: {input_path}",
                exit_code=2,
                file=str(input_path),
            )
        try:
            return input_path.read_text(encoding="utf-8"), str(input_path), input_path
        except (OSError, UnicodeDecodeError) as exc:
            raise CliError(
                "E_IO_READ",
                f"failed to read input file: {input_path}",
                hint=str(exc),
                exit_code=2,
                file=str(input_path),
            )

    if sys.stdin.isatty():
        raise CliError(
            "E_ARGS",
            "no input provided",
            hint="Use a subcommand with FILE, --text, or pipe stdin.",
            exit_code=2,
        )

    data = sys.stdin.read()
    if not data.strip():
        raise CliError(
            "E_ARGS",
            "stdin was empty",
            hint="Pipe a markup document into stdin.",
            exit_code=2,
        )
    return data, "<stdin>", None


def _write_text(path: Path, content: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise CliError(
            "E_IO_WRITE",
            f"failed to write output file: {path}",
            hint=str(exc),
            exit_code=4,
            file=str(path),
        )


def _write_bytes(path: Path, content: bytes) -> None:
    try:
        path.write_bytes(content)
    except OSError as exc:
        raise CliError(
            "E_IO_WRITE",
            f"failed to write output file: {path}",
            hint=str(exc),
            exit_code=4,
            file=str(path),
        )


def _error_from_exception(exc: Exception, source_name: Optional[str] = None) -> CliError:
    if isinstance(exc, CliError):
        return exc
    if isinstance(exc, MalformedDocument):
        return CliError(
            exc.code,
            str(exc),
            hint="Ensure input is well-formed XML with a single root element and escape &, <, > in text.",
            exit_code=2,
            file=source_name,
            line=exc.line,
            column=exc.column,
            retryable=True,
        )
    if isinstance(exc, ConfigError):
        return CliError(
            ConfigError.code,
            str(exc),
            hint="Check config.toml and XMLGRAPH_* environment variables.",
            exit_code=2,
            retryable=True,
        )
    return CliError(
        "E_INTERNAL",
        str(exc) or exc.__class__.__name__,
        hint="Re-run with --debug to see traceback.",
        exit_code=1,
        retryable=False,
    )


def _emit_error(err: CliError, *, error_format: str) -> None:
    if error_format == "json":
        payload = {
            "ok": False,
            "code": err.code,
            "message": err.message,
            "file": err.file,
            "line": err.line,
            "column": err.column,
            "hint": err.hint,
            "retryable": err.retryable,
        }
        sys.stderr.write(json.dumps(payload) + "\n")
        return

    sys.stderr.write(f"error[{err.code}]: {err.message}\n")
    if err.hint:
        sys.stderr.write(f"hint: {err.hint}\n")


def _check_output_args(args: argparse.Namespace) -> None:
    if args.stdout and args.output:
        raise CliError(
            "E_ARGS",
            "--stdout and --output are mutually exclusive",
            hint="Choose either --stdout or --output.",
            exit_code=2,
        )


def _apply_view_flags(config: Config, args: argparse.Namespace) -> None:
    for attr in ("width", "height"):
        value = getattr(args, attr, None)
        if value is None:
            continue
        if value <= 0:
            raise CliError(
                "E_ARGS",
                f"--{attr} must be > 0",
                hint="Use a positive viewport size like 800x600.",
                exit_code=2,
            )
        setattr(config.view, attr, value)


def _load(args: argparse.Namespace) -> tuple[ParsedDocument, str, Optional[Path]]:
    source, source_name, source_path = _read_input(args.input, args.text)
    try:
        parsed = parse(source)
    except MalformedDocument as exc:
        raise _error_from_exception(exc, source_name) from exc
    logger.debug("%s: %d graph nodes", source_name, len(parsed.graph.nodes))
    return parsed, source_name, source_path


def _emit_text(args: argparse.Namespace, source_path: Optional[Path], text: str, suffix: str) -> int:
    if args.stdout or (source_path is None and not args.output):
        sys.stdout.write(text)
        if not text.endswith("\n"):
            sys.stdout.write("\n")
        return 0
    output_path = Path(args.output) if args.output else _default_output(source_path, suffix)
    _write_text(output_path, text)
    print(f"Wrote {output_path}")
    return 0


def _default_output(source_path: Path, suffix: str) -> Path:
    return source_path.with_name(source_path.stem + suffix)


def _settle_graph(parsed: ParsedDocument, config: Config, max_steps: int) -> ForceLayoutEngine:
    if max_steps < 0:
        raise CliError("E_ARGS", "--max-steps must be >= 0", exit_code=2)
    engine = ForceLayoutEngine(parsed.graph, ManualScheduler(), config.force, config.view)
    engine.run_until_settled(max_steps)
    return engine


def _tree_engine(parsed: ParsedDocument, config: Config, args: argparse.Namespace) -> CollapsibleTreeEngine:
    engine = CollapsibleTreeEngine(parsed.tree, None, config.tree, config.view)
    if args.expand_all:
        engine.expand_all()
    elif args.depth is not None:
        if args.depth < 1:
            raise CliError("E_ARGS", "--depth must be >= 1", exit_code=2)
        for node in list(engine.root.descendants()):
            if node.depth < args.depth:
                engine.expand(node.id)
    for node_id in args.expand:
        try:
            engine.expand(node_id)
        except KeyError:
            raise CliError(
                "E_ARGS",
                f"unknown tree node id: {node_id}",
                hint="Tree node ids are assigned breadth-first starting at 1.",
                exit_code=2,
            )
    return engine


def _handle_parse(args: argparse.Namespace, config: Config) -> int:
    _check_output_args(args)
    parsed, _name, source_path = _load(args)
    return _emit_text(args, source_path, json.dumps(parsed.to_dict(), indent=2), ".json")


def _handle_graph(args: argparse.Namespace, config: Config) -> int:
    _check_output_args(args)
    _apply_view_flags(config, args)
    parsed, _name, source_path = _load(args)
    engine = _settle_graph(parsed, config, args.max_steps)
    if args.format == "json":
        payload = {
            "settled": engine.settled,
            "alpha": engine.state.alpha,
            "nodes": [
                {"id": n.id, "type": n.classification.value, "x": n.x, "y": n.y}
                for n in parsed.graph.nodes
            ],
            "links": [{"source": l.source, "target": l.target} for l in parsed.graph.links],
        }
        return _emit_text(args, source_path, json.dumps(payload, indent=2), "-graph.json")
    scene = graph_scene(parsed.graph, config.view, legend=not args.no_legend)
    return _emit_text(args, source_path, to_svg(scene), "-graph.svg")


def _handle_tree(args: argparse.Namespace, config: Config) -> int:
    _check_output_args(args)
    _apply_view_flags(config, args)
    parsed, _name, source_path = _load(args)
    engine = _tree_engine(parsed, config, args)
    if args.format == "json":
        payload = {
            "viewport": list(_viewport_tuple(engine)),
            "nodes": [
                {"id": n.id, "name": n.name, "state": n.state, "depth": n.depth, "x": n.x, "y": n.y}
                for n in engine.visible_nodes()
            ],
            "links": [{"source": p.id, "target": c.id} for p, c in engine.visible_links()],
        }
        return _emit_text(args, source_path, json.dumps(payload, indent=2), "-tree.json")
    return _emit_text(args, source_path, to_svg(tree_scene(engine)), "-tree.svg")


def _viewport_tuple(engine: CollapsibleTreeEngine) -> tuple[float, float, float, float]:
    vp = engine.viewport
    return vp.x, vp.y, vp.width, vp.height


def _handle_render(args: argparse.Namespace, config: Config) -> int:
    _check_output_args(args)
    _apply_view_flags(config, args)
    if args.scale <= 0:
        raise CliError(
            "E_ARGS",
            "--scale must be > 0",
            hint="Use a positive scale factor like 1 or 2.",
            exit_code=2,
        )
    parsed, _name, source_path = _load(args)
    if args.view == "graph":
        _settle_graph(parsed, config, args.max_steps)
        scene = graph_scene(parsed.graph, config.view, legend=not args.no_legend)
    else:
        scene = tree_scene(_tree_engine(parsed, config, args))
    png_bytes = to_png(scene, scale=args.scale)

    if args.stdout or (source_path is None and not args.output):
        sys.stdout.buffer.write(png_bytes)
        return 0

    output_path = (
        Path(args.output) if args.output else _default_output(source_path, f"-{args.view}.png")
    )
    _write_bytes(output_path, png_bytes)
    print(f"Wrote {output_path}")
    return 0


def _load_config(path: Optional[str]) -> Config:
    if path is None:
        return load_config()
    config_path = Path(path)
    if not config_path.exists():
        raise CliError(
            ConfigError.code,
            f"config file not found: {config_path}",
            exit_code=2,
            file=str(config_path),
        )
    return load_config(config_path)


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[Iterable[str]] = None) -> int:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()

    if not raw_argv:
        err = CliError(
            "E_ARGS",
            "missing subcommand",
            hint=f"Use one of: {SUBCOMMANDS}.",
            exit_code=2,
        )
        _emit_error(err, error_format="text")
        return err.exit_code

    debug_enabled = "--debug" in raw_argv or os.getenv("XMLGRAPH_DEBUG") == "1"
    error_format = "text"
    if "--error-format" in raw_argv:
        idx = raw_argv.index("--error-format")
        if idx + 1 < len(raw_argv):
            error_format = raw_argv[idx + 1]

    try:
        args = parser.parse_args(raw_argv)
        error_format = args.error_format
        config = _load_config(args.config)
        debug_enabled = debug_enabled or config.debug
        _configure_logging(debug_enabled)

        if args.command == "parse":
            return _handle_parse(args, config)
        if args.command == "graph":
            return _handle_graph(args, config)
        if args.command == "tree":
            return _handle_tree(args, config)
        if args.command == "render":
            return _handle_render(args, config)
        if args.command == "example":
            print(load_example())
            return 0

        raise CliError(
            "E_ARGS",
            "missing subcommand",
            hint=f"Use one of: {SUBCOMMANDS}.",
            exit_code=2,
        )
    except UsageError as exc:
        err = CliError(
            "E_ARGS",
            str(exc),
            hint=f"Use subcommands: {SUBCOMMANDS}.",
            exit_code=2,
        )
        _emit_error(err, error_format=error_format)
        return err.exit_code
    except Exception as exc:  # pragma: no cover - exercised in integration tests
        err = _error_from_exception(exc)
        _emit_error(err, error_format=error_format)
        if debug_enabled:
            traceback.print_exc(file=sys.stderr)
        return err.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
