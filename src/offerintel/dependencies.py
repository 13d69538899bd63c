"""Runtime dependency checks for optional engines and CLI commands."""

from __future__ import annotations

import importlib.util
from functools import lru_cache

from offerintel.exceptions import DependencyError


def _is_module_available(module_name: str) -> bool:
    return importlib.util.find_spec(module_name) is not None


def _collect_missing_dependencies(modules_by_package: dict[str, str]) -> list[str]:
    """Collect missing packages for a module mapping.

    Args:
        modules_by_package (dict[str, str]): Mapping of package name -> import module.

    Returns:
        list[str]: Missing package names.
    """
    return [package for package, module in modules_by_package.items() if not _is_module_available(module)]


@lru_cache(maxsize=1)
def raster_engine_available() -> bool:
    """Probe PyMuPDF once per process.

    Returns:
        bool: True when PDF pages can be rasterized.
    """
    return _is_module_available("fitz")


def ensure_cli_dependencies_for_classify() -> None:
    """Validate required runtime dependencies for `offerintel classify`.

    Raises:
        DependencyError: If PyMuPDF is missing.
    """
    missing = _collect_missing_dependencies({"pymupdf": "fitz"})
    if missing:
        raise DependencyError(missing_package=missing, message="classify")


def ensure_cli_dependencies_for_analyze(*, needs_model: bool = True) -> None:
    """Validate required runtime dependencies for `offerintel analyze`.

    Args:
        needs_model (bool): Whether the vision model client is required.

    Raises:
        DependencyError: If one or more required modules are missing.
    """
    modules = {"pymupdf": "fitz", "httpx": "httpx"}
    if needs_model:
        modules["openai"] = "openai"
    missing = _collect_missing_dependencies(modules)
    if missing:
        raise DependencyError(missing_package=missing, message="analyze")
