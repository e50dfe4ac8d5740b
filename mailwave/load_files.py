"""
Source File Loader
Purpose: Read every configured CSV extract into a string-typed DataFrame,
keeping every row, and report what was loaded
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, TypeVar

import pandas as pd

from .config import MigrationConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


def read_table(path: Path, delimiter: str = ";") -> pd.DataFrame:
    """Read a delimited file as text; nothing is coerced to numbers or NaN."""
    df = pd.read_csv(
        path,
        sep=delimiter,
        dtype=str,
        encoding="utf-8-sig",
        keep_default_na=False,
        na_filter=False,
    )
    df.columns = df.columns.str.strip()
    return df


class SourceLoader:
    """Load all input extracts with zero row loss"""

    def __init__(self, input_folder, config: MigrationConfig):
        self.input_folder = Path(input_folder)
        self.config = config
        self.load_report: List[Dict] = []

        if not self.input_folder.is_dir():
            raise FileNotFoundError(f"Input folder not found: {self.input_folder}")

    def load_all_files(self) -> Dict[str, pd.DataFrame]:
        logger.info("=" * 80)
        logger.info(f"LOADING SOURCES FROM {self.input_folder}")
        logger.info("=" * 80)

        data = {source: self.load_source(source) for source in self.config.input_sources()}
        self._print_load_report()
        return data

    def load_source(self, source: str) -> pd.DataFrame:
        """Empty frame when the file is absent; criticality is judged by the caller."""
        file_path = self.input_folder / self.config.input_file(source)
        if not file_path.exists():
            level = logging.ERROR if self.config.is_critical(source) else logging.WARNING
            logger.log(level, f"  [{source}] file not found: {file_path.name}")
            self.load_report.append({"source": source, "file": file_path.name, "rows_loaded": 0, "status": "missing"})
            return pd.DataFrame()

        df = read_table(file_path, self.config.csv_delimiter)
        logger.info(f"  [{source}] {file_path.name}: {len(df):,} rows, {len(df.columns)} columns")
        logger.debug(f"  [{source}] columns: {list(df.columns)}")
        self.load_report.append(
            {"source": source, "file": file_path.name, "rows_loaded": len(df), "status": "loaded"}
        )
        return df

    def _print_load_report(self) -> None:
        logger.info("-" * 80)
        total = 0
        for report in self.load_report:
            logger.info(f"  {report['source']:<18} {report['rows_loaded']:>8,}  {report['status']}")
            total += report["rows_loaded"]
        logger.info(f"  Total records loaded: {total:,}")
        logger.info("-" * 80)


def to_records(frame: Optional[pd.DataFrame], factory: Callable[[Dict], T]) -> List[T]:
    """Convert DataFrame rows into typed records, in file order."""
    if frame is None or frame.empty:
        return []
    return [factory(row) for row in frame.to_dict(orient="records")]
