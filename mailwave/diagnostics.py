"""
Diagnostics / Validation Harness
Purpose: Time every pipeline stage, check inputs for emptiness and duplicate
keys, count per-record warnings, and fail hard on empty critical inputs.
"""

from __future__ import annotations

import logging
import time
from collections import Counter, OrderedDict
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import pandas as pd
from fuzzywuzzy import fuzz, process

from .exceptions import CriticalInputError
from .indexes import IndexStats, require_records
from .normalizer import normalize_text_key

logger = logging.getLogger(__name__)

MAX_SAMPLES = 5


class Diagnostics:
    """Aggregated warnings and stage timings for one run"""

    def __init__(self):
        self.warnings: Counter = Counter()
        self.samples: Dict[str, List[str]] = {}
        self.timings: "OrderedDict[str, float]" = OrderedDict()

    @property
    def warning_count(self) -> int:
        return sum(self.warnings.values())

    def warn(self, category: str, detail: Optional[str] = None, count: int = 1) -> None:
        if count <= 0:
            return
        self.warnings[category] += count
        if detail is not None:
            bucket = self.samples.setdefault(category, [])
            if len(bucket) < MAX_SAMPLES:
                bucket.append(detail)

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        logger.info(f"[{name}] started")
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self.timings[name] = elapsed
            logger.info(f"[{name}] finished in {elapsed:.2f}s")

    def check_input(self, name: str, frame: Optional[pd.DataFrame], critical: bool) -> bool:
        """False for an empty optional input; CriticalInputError for an empty critical one."""
        try:
            present = require_records(frame, name, critical)
        except CriticalInputError:
            logger.error(f"❌ Critical input '{name}' is missing or empty")
            raise
        if not present:
            logger.warning(f"⚠️ Input '{name}' is missing or empty; continuing without it")
            self.warn("empty_input", name)
            return False
        logger.info(f"  ✅ {name}: {len(frame):,} rows")
        return True

    def check_index(self, stats: IndexStats) -> None:
        if stats.clean:
            logger.info(f"  ✅ {stats.name}: {stats.keys:,} keys from {stats.records:,} records")
            return
        if stats.empty_keys:
            logger.warning(f"⚠️ {stats.name}: {stats.empty_keys:,} records without key skipped")
            self.warn("empty_key", stats.name, stats.empty_keys)
        if stats.duplicates:
            logger.warning(f"⚠️ {stats.name}: {stats.duplicates:,} duplicate keys (last one kept)")
            self.warn("duplicate_key", stats.name, stats.duplicates)
        logger.info(f"  {stats.name}: {stats.keys:,} keys from {stats.records:,} records")

    def record_issues(self, label: str, issues: Iterable[Tuple[str, str]]) -> None:
        """Count (category, handle) pairs raised while enriching records."""
        counted = Counter()
        for category, handle in issues:
            counted[category] += 1
            self.warn(category, handle)
        for category, n in sorted(counted.items()):
            logger.warning(f"⚠️ {label}: {n:,} records with {category.replace('_', ' ')}")

    def check_partitions(self, master: pd.DataFrame, wave_frames: Iterable[pd.DataFrame]) -> bool:
        """Per-wave partitions must cover exactly the master records that have a wave."""
        expected = set(master.loc[master["wave"].fillna("") != "", "handle"]) if not master.empty else set()
        seen: List[str] = []
        for frame in wave_frames:
            if not frame.empty:
                seen.extend(frame["handle"].tolist())
        consistent = len(seen) == len(set(seen)) and set(seen) == expected
        if not consistent:
            logger.error("❌ Wave partitions disagree with the master export")
            self.warn("partition_mismatch", f"{len(seen)} partitioned vs {len(expected)} expected")
        return consistent

    def summary(self) -> None:
        logger.info("=" * 80)
        logger.info("DIAGNOSTICS SUMMARY")
        logger.info("=" * 80)
        for name, elapsed in self.timings.items():
            logger.info(f"  {name:<28} {elapsed:8.2f}s")
        if not self.warnings:
            logger.info("  ✅ No warnings")
            return
        logger.info(f"  ⚠️ {self.warning_count:,} warnings:")
        for category, n in self.warnings.most_common():
            examples = ", ".join(self.samples.get(category, []))
            logger.info(f"    {category}: {n:,}" + (f" (e.g. {examples})" if examples else ""))

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {"category": c, "count": n, "examples": ", ".join(self.samples.get(c, []))}
            for c, n in self.warnings.most_common()
        ]
        return pd.DataFrame(rows, columns=["category", "count", "examples"])


def suggest_departments(
    unresolved: Dict[str, int],
    known_keys: Iterable[str],
    threshold: int = 80,
) -> pd.DataFrame:
    """
    Closest known department key for every department name without a wave.

    unresolved maps the department name as found on the org unit to the
    number of records affected. Suggestions below the threshold are blank.
    """
    choices = sorted({k for k in known_keys if k})
    rows = []
    for name, count in sorted(unresolved.items(), key=lambda kv: (-kv[1], kv[0])):
        suggestion, score = None, None
        if choices:
            best = process.extractOne(normalize_text_key(name), choices, scorer=fuzz.token_sort_ratio)
            if best and best[1] >= threshold:
                suggestion, score = best[0], best[1]
        rows.append(
            {"department_name": name, "record_count": count, "suggested_key": suggestion, "score": score}
        )
    return pd.DataFrame(rows, columns=["department_name", "record_count", "suggested_key", "score"])
