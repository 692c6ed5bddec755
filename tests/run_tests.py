"""Run the xmlgraph test suite.

Usage: ``python tests/run_tests.py [-q] [NAME ...]`` where each NAME selects
``test_NAME.py`` (e.g. ``force tree``); no names runs every module.
"""
from __future__ import annotations

import sys
import unittest
from pathlib import Path

TESTS_DIR = Path(__file__).resolve().parent


def _suite(names: list[str]) -> unittest.TestSuite:
    loader = unittest.defaultTestLoader
    if not names:
        return loader.discover(start_dir=str(TESTS_DIR), pattern="test_*.py")
    suite = unittest.TestSuite()
    for name in names:
        suite.addTests(loader.discover(start_dir=str(TESTS_DIR), pattern=f"test_{name}.py"))
    return suite


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    verbosity = 2
    if "-q" in args:
        args.remove("-q")
        verbosity = 1
    result = unittest.TextTestRunner(verbosity=verbosity).run(_suite(args))
    return 0 if result.wasSuccessful() else 1


if __name__ == "__main__":
    raise SystemExit(main())
