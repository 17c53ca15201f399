"""Layer dependency rules between the courierbill packages."""

from __future__ import annotations

import ast
import importlib.util
from pathlib import Path

_PACKAGE = Path(__file__).resolve().parents[1] / "courierbill"

# Pure code performs no I/O beyond what its caller hands it; Privileged code
# owns files, network and settings; Orchestrators wire the two together.
_ZONES: dict[tuple[str, ...], str] = {
    ("domain",): "Pure",
    ("document",): "Pure",
    ("runtime",): "Privileged",
    ("application",): "Orchestrator",
    ("cli",): "Orchestrator",
}
_ALLOWED_TARGET_ZONES = {
    "Privileged": {"Privileged", "Pure"},
    "Orchestrator": {"Privileged", "Orchestrator", "Pure"},
    "Pure": {"Pure"},
}


def _zone_for_parts(parts: tuple[str, ...]) -> str | None:
    for prefix, zone in sorted(_ZONES.items(), key=lambda item: len(item[0]), reverse=True):
        if parts[: len(prefix)] == prefix:
            return zone
    return None


def _module_name_for_file(path: Path) -> str:
    parts = list(path.relative_to(_PACKAGE).with_suffix("").parts)
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(["courierbill", *parts])


def _imported_modules(path: Path) -> list[str]:
    module_name = _module_name_for_file(path)
    current_package = module_name if path.name == "__init__.py" else module_name.rsplit(".", 1)[0]
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))

    imports: list[str] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            imports.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            if node.level == 0:
                if node.module:
                    imports.append(node.module)
                continue
            rel_name = "." * node.level + (node.module or "")
            imports.append(importlib.util.resolve_name(rel_name, current_package))
    return imports


def test_every_package_has_a_zone() -> None:
    packages = {p.name for p in _PACKAGE.iterdir() if p.is_dir() and (p / "__init__.py").exists()}
    assert packages == {parts[0] for parts in _ZONES}


def test_zone_import_boundaries() -> None:
    violations: list[str] = []

    for path in sorted(_PACKAGE.rglob("*.py")):
        rel_parts = path.relative_to(_PACKAGE).parts
        source_zone = _zone_for_parts(rel_parts)
        if source_zone is None:
            continue

        for module in _imported_modules(path):
            if not module.startswith("courierbill."):
                continue
            target_zone = _zone_for_parts(tuple(module.split(".")[1:]))
            if target_zone is None:
                continue
            if target_zone not in _ALLOWED_TARGET_ZONES[source_zone]:
                violations.append(f"{path.relative_to(_PACKAGE)}: {source_zone} imports {module} ({target_zone})")

    assert not violations, "Zone import violations:\n" + "\n".join(violations)


def test_domain_has_no_third_party_imports() -> None:
    allowed_roots = {"courierbill", "__future__", "dataclasses", "decimal", "enum", "typing", "math", "collections"}
    offenders: list[str] = []
    for path in sorted((_PACKAGE / "domain").rglob("*.py")):
        for module in _imported_modules(path):
            if module.split(".")[0] not in allowed_roots:
                offenders.append(f"{path.name}: {module}")
    assert not offenders, "\n".join(offenders)
