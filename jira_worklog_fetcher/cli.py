"""
Command line entry point for jira-worklog-fetcher.

Options given on the command line override the values read from config.ini.
Exit codes: 0 success (or nothing found), 2 configuration error, 3 issue
search failure, 4 export failure.
"""
from __future__ import annotations

import argparse
import dataclasses
import os
import sys
from typing import Any, Dict

import urllib3

from .core import Config, DiscoveryError, read_config, run_pipeline
from .export import OUTPUT_FORMATS, ExportError


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments; unset options fall back to the config file."""
    default_cfg = os.path.join(os.getcwd(), "config.ini")
    p = argparse.ArgumentParser(description="Export Jira worklogs of issues matching a JQL query.")
    p.add_argument("--config", default=default_cfg, help=f"Path to config.ini (default: {default_cfg})")
    p.add_argument("--verbose", action="store_true", help="Verbose output")
    p.add_argument("--timeout", type=int, default=None, help="Per-request timeout in seconds (default=120)")
    p.add_argument("--max-workers", type=int, default=None, help="Issues fetched in parallel (default=1)")
    p.add_argument("--insecure", action="store_true", help="DISABLE SSL certificate verification (NOT RECOMMENDED)")
    p.add_argument("--format", dest="output_format", choices=OUTPUT_FORMATS, default=None, help="Output file format")
    p.add_argument("--out-dir", default=None, help="Directory for the exported file (default: current directory)")
    p.add_argument("--no-convert-dates", action="store_true", help="Keep Gregorian dates in the export")
    p.add_argument("--include-details", action="store_true", help="Fill the Issue Title and Comment columns")
    return p.parse_args()


def apply_args(cfg: Config, args: argparse.Namespace) -> Config:
    """Return cfg with command-line overrides applied."""
    overrides: Dict[str, Any] = {}
    for name in ("timeout", "max_workers"):
        value = getattr(args, name, None)
        if value is None:
            continue
        if value < 1:
            print(f"ERROR: --{name.replace('_', '-')} must be >= 1 (got {value}).", file=sys.stderr)
            sys.exit(2)
        overrides[name] = value
    if getattr(args, "insecure", False):
        overrides["verify_ssl"] = False
    if getattr(args, "output_format", None):
        overrides["output_format"] = args.output_format
    if getattr(args, "out_dir", None):
        overrides["out_dir"] = args.out_dir
    if getattr(args, "no_convert_dates", False):
        overrides["convert_dates"] = False
    if getattr(args, "include_details", False):
        overrides["include_details"] = True
    return dataclasses.replace(cfg, **overrides)


def main() -> None:
    args = parse_args()
    cfg = apply_args(read_config(args.config), args)

    if not cfg.verify_ssl and not cfg.ca_bundle:
        sys.stderr.write("WARNING: SSL certificate verification is DISABLED. Use only for testing.\n")
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    try:
        run_pipeline(cfg, verbose=getattr(args, "verbose", False))
    except DiscoveryError:
        sys.exit(3)
    except ExportError as e:
        sys.stderr.write(f"ERROR: {e}\n")
        sys.exit(4)


if __name__ == "__main__":
    main()
