from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..errors import CatalogError


def _package_root() -> Path:
    # loadstar_installer/lib/manifests.py -> loadstar_installer
    return Path(__file__).resolve().parents[1]


def load_yaml(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogError(f"Cannot read manifest {path}: {e}") from e
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise CatalogError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise CatalogError(f"Manifest must be a mapping/dict: {path}")
    return data


def load_yaml_rel(rel_path: str) -> Dict[str, Any]:
    """Load a YAML file relative to the package root (manifests/...)."""
    return load_yaml(_package_root() / rel_path.lstrip("/"))


def load_catalog_manifest(path: Optional[str] = None) -> Dict[str, Any]:
    return load_yaml(Path(path)) if path else load_yaml_rel("manifests/catalog.yaml")


def load_presets_manifest(path: Optional[str] = None) -> Dict[str, Any]:
    return load_yaml(Path(path)) if path else load_yaml_rel("manifests/presets.yaml")
