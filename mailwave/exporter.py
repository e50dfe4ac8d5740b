"""
CSV Exporter
Purpose: Write the master collections and every partition as delimited files
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Set, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

_UNSAFE_RE = re.compile(r"[^A-Za-z0-9_.-]+")


def safe_file_stem(name: str) -> str:
    cleaned = _UNSAFE_RE.sub("_", name).strip("_")
    return cleaned or "export"


def write_csv(frame: pd.DataFrame, path: Path, delimiter: str = ";") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(path, sep=delimiter, index=False, encoding="utf-8-sig")
    return path


def export_frames(
    frames: Iterable[Tuple[str, pd.DataFrame]],
    output_folder: Path,
    delimiter: str = ";",
) -> Dict[str, Path]:
    """
    Write each (name, frame) pair to <output_folder>/<name>.csv; empty frames keep their header.

    Names that clean up to the same file stem get a numeric suffix instead of
    overwriting the earlier file.
    """
    output_folder = Path(output_folder)
    written: Dict[str, Path] = {}
    used: Set[str] = set()
    for name, frame in frames:
        stem = safe_file_stem(name)
        candidate, n = stem, 2
        while candidate.lower() in used:
            candidate = f"{stem}_{n}"
            n += 1
        if candidate != stem:
            logger.warning(f"⚠️ File name {stem}.csv already used; writing '{name}' as {candidate}.csv")
        used.add(candidate.lower())
        path = write_csv(frame, output_folder / f"{candidate}.csv", delimiter)
        written[name] = path
        logger.info(f"  Wrote {len(frame):>6,} rows -> {path.name}")
    return written
