from __future__ import annotations

import hashlib
import json
import shutil
from pathlib import Path
from typing import Iterable


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def file_digest(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def compute_key(name: str, input_path: Path, argv: Iterable[str]) -> str:
    """Cache key for one file processed by one tool invocation."""
    payload = {
        "name": name,
        "digest": file_digest(input_path),
        "suffix": input_path.suffix,
        "argv": list(argv),
    }
    data = json.dumps(payload, sort_keys=True).encode("utf-8")
    return sha256_bytes(data)


def _entry(cache_dir: Path, key: str) -> Path:
    return Path(cache_dir) / key[:2] / key


def lookup(cache_dir: Path, key: str) -> Path | None:
    p = _entry(cache_dir, key)
    return p if p.is_file() else None


def store(cache_dir: Path, key: str, produced: Path) -> Path:
    p = _entry(cache_dir, key)
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp = p.with_suffix(".part")
    shutil.copyfile(produced, tmp)
    tmp.replace(p)
    return p


def clear(cache_dir: Path) -> None:
    shutil.rmtree(cache_dir, ignore_errors=True)
