from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ValidationError
from .events import PlanSummary

logger = logging.getLogger(__name__)

STATE_VERSION = 1
# Oldest runs are dropped beyond this.
MAX_RUNS = 20


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"yaml", "yml"}:
        return "yaml"
    # Default to JSON for unknown extensions.
    return "json"


def _load_document(p: Path) -> Dict[str, Any]:
    text = p.read_text(encoding="utf-8")
    if _detect_format(p) == "yaml":
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text) if text.strip() else {}
    if not isinstance(data, dict):
        raise ValueError(f"{p} must contain an object/dict, got {type(data).__name__}")
    return data


def load_state(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}
    return _load_document(p)


def save_state(path: str, state: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    if _detect_format(p) == "yaml":
        p.write_text(yaml.safe_dump(state, sort_keys=False), encoding="utf-8")
    else:
        p.write_text(json.dumps(state, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def load_answers(path: str) -> Dict[str, Any]:
    """Read an answers file (json|yaml). Problems surface as ValidationError."""

    p = Path(path)
    if not p.exists():
        raise ValidationError("answers", f"file not found: {path}")
    try:
        return _load_document(p)
    except (ValueError, yaml.YAMLError) as e:
        raise ValidationError("answers", f"cannot parse {path}: {e}") from e


def ensure_defaults(state: Dict[str, Any]) -> Dict[str, Any]:
    """Fill missing or malformed keys with defaults; well-formed values are kept."""

    state.setdefault("version", STATE_VERSION)
    if not isinstance(state.get("last_answers"), dict):
        state["last_answers"] = {}
    if not isinstance(state.get("runs"), list):
        state["runs"] = []
    return state


def record_run(
    state: Dict[str, Any],
    summary: PlanSummary,
    *,
    answers: Optional[Dict[str, Any]] = None,
    dry_run: bool = False,
    log_path: Optional[str] = None,
) -> Dict[str, Any]:
    entry = {
        "finished_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "dry_run": dry_run,
        "log_path": log_path,
        "summary": summary.to_dict(),
    }
    runs = state.setdefault("runs", [])
    runs.append(entry)
    del runs[:-MAX_RUNS]
    if answers is not None and not dry_run:
        state["last_answers"] = answers
    return entry
