from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

PathLike = Union[str, Path]


def ensure_dir(path: PathLike) -> Path:
    out = Path(path)
    out.mkdir(parents=True, exist_ok=True)
    return out


def remove_if_exists(path: PathLike) -> bool:
    target = Path(path)
    if not target.exists():
        return False
    target.unlink()
    return True


def read_text_if_exists(path: PathLike) -> Optional[str]:
    target = Path(path)
    if not target.is_file():
        return None
    with target.open("r", encoding="utf-8", errors="replace") as f:
        return f.read()


def load_yaml(path: PathLike) -> Dict[str, Any]:
    with Path(path).open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML root must be mapping: {path}")
    return data


def save_yaml(data: Dict[str, Any], path: PathLike) -> None:
    target = Path(path)
    if target.parent != Path("."):
        ensure_dir(target.parent)
    with target.open("w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
