#!/usr/bin/env python3
"""
main.py - Wave Master Build
Usage:
  python main.py --input data/input --output data/output [--config config/migration_rules.yaml] [--workbook]

Outputs (in the output folder):
  - master_identities.csv / master_shared_mailboxes.csv
  - wave_<W>.csv, shared_wave_<W>.csv, org_rollup_<W>.csv per wave
  - unprovisioned.csv, missing_credential.csv, stragglers.csv, routing_failures.csv
  - unresolved_departments.csv, diagnostics.csv
  - migration_report_<date>.xlsx (with --workbook)
"""
import sys

from mailwave.cli import main

if __name__ == "__main__":
    sys.exit(main())
