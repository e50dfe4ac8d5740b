"""
Command line entry point
Usage:
  mailwave --input data/input --output data/output [--config config/migration_rules.yaml] [--workbook]
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from loguru import logger as loguru_logger

from .config import DEFAULT_CONFIG_PATH, load_config
from .exceptions import MailwaveError
from .orchestrator import MigrationBuild

logger = logging.getLogger("mailwave")

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def setup_logging(log_folder: Path, verbose: bool = False) -> Path:
    """stdlib logging for the pipeline, loguru for the workbook writer, same file."""
    log_folder.mkdir(parents=True, exist_ok=True)
    log_file = log_folder / f"wave_build_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.FileHandler(log_file, encoding="utf-8"), logging.StreamHandler(sys.stdout)],
        force=True,
    )
    loguru_logger.remove()
    fmt = "{time:YYYY-MM-DD HH:mm:ss,SSS} - {level} - {message}"
    loguru_logger.add(sys.stdout, format=fmt, level="DEBUG" if verbose else "INFO")
    loguru_logger.add(log_file, format=fmt, level="DEBUG" if verbose else "INFO", encoding="utf-8")
    return log_file


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Mailbox migration wave master build",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mailwave --input data/input --output data/output
  mailwave --input data/input --output data/output --workbook --now 2025-03-01
        """,
    )
    parser.add_argument("--input", required=True, help="Folder with the CSV extracts")
    parser.add_argument("--output", required=True, help="Folder for the exported reports")
    parser.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="Rules YAML file")
    parser.add_argument("--workbook", action="store_true", default=None, help="Also write the Excel workbook")
    parser.add_argument("--now", help="Reference date for inactivity checks (YYYY-MM-DD)")
    parser.add_argument("--log-dir", default="logs", help="Folder for run logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    log_file = setup_logging(Path(args.log_dir), args.verbose)

    try:
        now = datetime.strptime(args.now, "%Y-%m-%d") if args.now else None
    except ValueError:
        logger.error(f"❌ --now must be YYYY-MM-DD, got {args.now!r}")
        return 2

    try:
        config = load_config(Path(args.config))
        result = MigrationBuild(args.input, args.output, config, now=now, workbook=args.workbook).run()
    except (MailwaveError, FileNotFoundError) as e:
        logger.error(f"❌ Wave build failed: {e}", exc_info=True)
        logger.error(f"   Log: {log_file}")
        return 1

    print(f"\n✅ WAVE BUILD COMPLETE - {len(result.written)} files in {args.output}")
    if result.workbook:
        print(f"Workbook: {result.workbook}")
    print(f"Warnings: {result.diagnostics.warning_count:,} (see {log_file})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
