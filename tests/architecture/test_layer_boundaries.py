"""
Layer boundaries between the conflict engine packages.

1. conflict_kernel/** may NOT import conflict_modules, conflict_services or
   conflict_config.  The single exception is the ORM registry hook that
   ``db.engine`` imports lazily, inside a function, at table-creation time.

2. conflict_config/** may import the kernel only.

3. conflict_modules/** may NOT import conflict_services, and the appeal and
   adjustment modules do not import each other.

These tests read source code via AST -- they cannot break anything.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _extract_imports(path: Path, top_level_only: bool = False) -> list[tuple[int, str]]:
    """(line_number, module) for imports in a file.

    With ``top_level_only`` imports nested inside functions are skipped.
    """
    tree = ast.parse(path.read_text(), filename=str(path))
    nodes = tree.body if top_level_only else list(ast.walk(tree))
    results: list[tuple[int, str]] = []
    for node in nodes:
        if isinstance(node, ast.Import):
            results.extend((node.lineno, alias.name) for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...], top_level_only: bool = False) -> list[str]:
    found: list[str] = []
    for path in _python_files(package):
        for lineno, module in _extract_imports(path, top_level_only):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {path.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Kernel
# ---------------------------------------------------------------------------


class TestKernelNoUpwardDependencies:

    FORBIDDEN = ("conflict_modules", "conflict_services", "conflict_config")

    def test_kernel_top_level_imports_stay_in_kernel(self):
        violations = _violations("conflict_kernel", self.FORBIDDEN, top_level_only=True)
        assert not violations, (
            "Kernel boundary violation:\n" + "\n".join(violations)
        )

    def test_only_engine_reaches_the_orm_registry(self):
        """The deferred import in db/engine.py is the one allowed crossing."""
        offenders = [
            v for v in _violations("conflict_kernel", self.FORBIDDEN)
            if "conflict_kernel/db/engine.py" not in v.replace("\\", "/")
            or "conflict_modules._orm_registry" not in v
        ]
        assert not offenders, "\n".join(offenders)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


class TestConfigBoundary:

    def test_config_imports_kernel_only(self):
        violations = _violations("conflict_config", ("conflict_modules", "conflict_services"))
        assert not violations, "\n".join(violations)


# ---------------------------------------------------------------------------
# Modules
# ---------------------------------------------------------------------------


class TestModuleBoundaries:

    def test_modules_do_not_import_services(self):
        violations = _violations("conflict_modules", ("conflict_services",))
        assert not violations, "\n".join(violations)

    def test_appeals_do_not_import_adjustments(self):
        violations = _violations("conflict_modules/appeals", ("conflict_modules.adjustments",))
        assert not violations, "\n".join(violations)

    def test_adjustments_do_not_import_appeals(self):
        violations = _violations("conflict_modules/adjustments", ("conflict_modules.appeals",))
        assert not violations, "\n".join(violations)
