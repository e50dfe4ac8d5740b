"""
Workbook Report
Purpose: Optional multi-sheet Excel workbook over data already computed by
the pipeline (summary, wave counts, masters, exception lists, warnings)
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import pandas as pd
from loguru import logger
from openpyxl import load_workbook
from openpyxl.styles import Alignment, Font, PatternFill

MAX_SHEET_NAME = 31
MAX_COLUMN_WIDTH = 50


class WorkbookReport:
    """Generate the formatted migration workbook"""

    def __init__(self, output_folder):
        self.output_folder = Path(output_folder)
        self.output_folder.mkdir(parents=True, exist_ok=True)

    def generate_report(
        self,
        sheets: Dict[str, pd.DataFrame],
        summary: Dict[str, object],
        report_date: Optional[str] = None,
    ) -> Path:
        """
        Write the workbook.

        Sheets:
        1. Summary (run metrics)
        2..n. the given frames, in order; empty frames get a placeholder row
        """
        if report_date is None:
            report_date = datetime.now().strftime("%Y-%m-%d")
        filepath = self.output_folder / f"migration_report_{report_date}.xlsx"
        logger.info(f"Writing workbook: {filepath.name}")

        with pd.ExcelWriter(filepath, engine="openpyxl") as writer:
            summary_df = pd.DataFrame({"Metric": list(summary.keys()), "Value": list(summary.values())})
            summary_df.to_excel(writer, sheet_name="Summary", index=False)

            used = {"Summary"}
            for name, frame in sheets.items():
                sheet_name = self._unique_sheet_name(name, used)
                if frame is None or frame.empty:
                    frame = pd.DataFrame({"Status": [f"No {name.lower()} records"]})
                frame.to_excel(writer, sheet_name=sheet_name, index=False)
                logger.info(f"  Sheet '{sheet_name}': {len(frame):,} rows")

        self._format_excel(filepath)
        logger.info(f"✓ Workbook generated: {filepath}")
        return filepath

    @staticmethod
    def _unique_sheet_name(name: str, used: set) -> str:
        base = name[:MAX_SHEET_NAME]
        candidate, n = base, 2
        while candidate in used:
            suffix = f" ({n})"
            candidate = base[: MAX_SHEET_NAME - len(suffix)] + suffix
            n += 1
        used.add(candidate)
        return candidate

    def _format_excel(self, filepath: Path) -> None:
        """Header colors, column widths and frozen header row on every sheet."""
        workbook = load_workbook(filepath)
        header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
        header_font = Font(bold=True, color="FFFFFF")

        for worksheet in workbook.worksheets:
            for column in worksheet.columns:
                max_length = max((len(str(c.value)) for c in column if c.value is not None), default=0)
                worksheet.column_dimensions[column[0].column_letter].width = min(max_length + 2, MAX_COLUMN_WIDTH)

            for cell in worksheet[1]:
                if cell.value:
                    cell.fill = header_fill
                    cell.font = header_font
                    cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)

            worksheet.freeze_panes = "A2"

        workbook.save(filepath)
