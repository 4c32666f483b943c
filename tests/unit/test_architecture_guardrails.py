from __future__ import annotations

import ast
import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
PACKAGE_ROOT = SRC / "townsfolk"
LAYERS = ("domain", "application", "infrastructure", "presentation")

# layer -> layers it must never import at runtime
FORBIDDEN = {
    "domain": {"application", "infrastructure", "presentation"},
    "application": {"infrastructure", "presentation"},
    "infrastructure": {"presentation"},
}


def _module_name(path: Path) -> str:
    return ".".join(path.relative_to(SRC).with_suffix("").parts)


def _layer(module: str) -> str | None:
    parts = module.split(".")
    if len(parts) > 1 and parts[0] == "townsfolk" and parts[1] in LAYERS:
        return parts[1]
    return None


def _imported_modules(module: str, tree: ast.AST) -> set[str]:
    targets: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            targets.update(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            if node.level:
                base = module.split(".")[: -node.level]
                targets.add(".".join(base + ([node.module] if node.module else [])))
            elif node.module:
                targets.add(node.module)
    return {target for target in targets if target.startswith("townsfolk")}


def _import_graph() -> dict[str, set[str]]:
    sources = {_module_name(path): path for path in PACKAGE_ROOT.rglob("*.py")}
    graph: dict[str, set[str]] = {}
    for module, path in sources.items():
        tree = ast.parse(path.read_text(encoding="utf-8-sig"))
        edges: set[str] = set()
        for target in _imported_modules(module, tree):
            while target not in sources and "." in target:
                target = target.rsplit(".", 1)[0]
            if target in sources and target != module:
                edges.add(target)
        graph[module] = edges
    return graph


def _find_cycle(graph: dict[str, set[str]]) -> list[str]:
    visiting: list[str] = []
    done: set[str] = set()

    def visit(node: str) -> list[str]:
        if node in visiting:
            return visiting[visiting.index(node):] + [node]
        if node in done:
            return []
        visiting.append(node)
        for nxt in sorted(graph.get(node, ())):
            cycle = visit(nxt)
            if cycle:
                return cycle
        visiting.pop()
        done.add(node)
        return []

    for node in sorted(graph):
        cycle = visit(node)
        if cycle:
            return cycle
    return []


class ArchitectureGuardrailTests(unittest.TestCase):
    def test_layers_only_import_downstream(self) -> None:
        violations = []
        for source, targets in _import_graph().items():
            forbidden = FORBIDDEN.get(_layer(source) or "", set())
            for target in sorted(targets):
                if _layer(target) in forbidden:
                    violations.append(f"{source} -> {target}")

        self.assertEqual([], violations, "Layer imports an upstream layer")

    def test_runtime_import_graph_has_no_cycles(self) -> None:
        cycle = _find_cycle(_import_graph())
        self.assertEqual([], cycle, f"Import cycle detected: {' -> '.join(cycle)}")

    def test_packages_are_namespace_packages(self) -> None:
        markers = [str(path.relative_to(ROOT)) for path in PACKAGE_ROOT.rglob("__init__.py")]
        self.assertEqual([], markers)

    def test_bundled_scenario_ships_with_the_package(self) -> None:
        data = PACKAGE_ROOT / "infrastructure" / "scenarios" / "data"
        self.assertTrue((data / "mexico-city-1680.json").is_file())


if __name__ == "__main__":
    unittest.main()
