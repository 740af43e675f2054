"""
Checks on the distribution metadata declared in setup.py.
"""

from __future__ import annotations

import ast
import os

_SETUP_PY = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "setup.py")


def _setup_kwargs() -> dict:
    with open(_SETUP_PY, encoding="utf-8") as fh:
        tree = ast.parse(fh.read())
    for node in ast.walk(tree):
        if isinstance(node, ast.Call) and getattr(node.func, "id", None) == "setup":
            return {kw.arg: ast.literal_eval(kw.value) for kw in node.keywords
                    if kw.arg != "packages"}
    raise AssertionError("setup() call not found")


class TestSetup:

    def test_python_requires_matches_syntax_in_use(self):
        # config.py evaluates `str | None` annotations at import time
        assert _setup_kwargs()["python_requires"] == ">=3.10"

    def test_runtime_dependencies_declared(self):
        names = {req.split(">")[0].split("=")[0] for req in _setup_kwargs()["install_requires"]}
        assert {"pyyaml", "networkx", "rapidfuzz", "watchdog", "tqdm"} <= names

    def test_console_script(self):
        scripts = _setup_kwargs()["entry_points"]["console_scripts"]
        assert "symfind=symbol_finder.cli:main" in scripts
