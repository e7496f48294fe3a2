#!/usr/bin/env python
"""
Survey Labeler - Command Line Interface
=======================================

CLI for pairing raw survey images with graded survey folders and writing
the Dolphin label reports.

Usage:
    # Inspect pairing without writing anything
    survey-labeler preview --raw ./Raw --graded ./Graded

    # Full tree run
    survey-labeler run --raw ./Raw --graded ./Graded --output ./out

    # One raw/graded pair, survey id forced
    survey-labeler single --raw ./Raw/x --graded ./Graded/y --output ./out --survey-id 20250101_AB
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import config
from .rules import Rules, load_rules, save_rules, reset_rules, compile_rules
from .records import ProgressEvent, RunSummary
from .main_orchestrator import SurveyOrchestrator, TreeRunOptions, SingleRunOptions
from .checker import ReportChecker
from .sample_data import create_sample_data
from .exceptions import SurveyLabelerError


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog='survey-labeler',
        description="Label raw survey images from graded survey folders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a sample tree and run on it
  survey-labeler sample --dir ./sample-data
  survey-labeler run --raw ./sample-data/Raw --graded ./sample-data/Graded --output ./out

  # Verify a finished run
  survey-labeler check --output ./out

  # Write the default rules file
  survey-labeler rules init
        """
    )
    parser.add_argument(
        '--rules', '-r',
        type=Path,
        help=f'Rules JSON file (default: {config.rules_path} if present, else built-in rules)'
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose output')
    parser.add_argument('--quiet', '-q', action='store_true', help='Suppress progress output')

    sub = parser.add_subparsers(dest='command', required=True)

    # preview
    p = sub.add_parser('preview', help='Scan and pair both trees without classifying')
    p.add_argument('--raw', type=Path, required=True, help='Raw tree root')
    p.add_argument('--graded', type=Path, required=True, help='Graded tree root')
    p.add_argument('--json', action='store_true', help='Print preview items as JSON')

    # run
    p = sub.add_parser('run', help='Classify every paired survey and write reports')
    p.add_argument('--raw', type=Path, required=True, help='Raw tree root')
    p.add_argument('--graded', type=Path, required=True, help='Graded tree root')
    p.add_argument('--output', '-o', type=Path, required=True, help='Output directory')
    p.add_argument('--no-per-survey', action='store_true', help='Do not write per-survey files')
    p.add_argument('--no-merged', action='store_true', help='Do not write the merged file')
    p.add_argument('--merged-filename', default=config.merged_filename)
    p.add_argument('--problems-filename', default=config.problems_filename)
    p.add_argument('--per-survey-dirname', default=config.per_survey_dirname)
    p.add_argument(
        '--workers', '-w',
        type=int,
        default=config.max_workers,
        help=f'Surveys classified in parallel (default: {config.max_workers})'
    )
    p.add_argument('--no-log', action='store_true', help='Do not write a session log file')
    p.add_argument('--check', action='store_true', help='Verify the reports after the run')

    # single
    p = sub.add_parser('single', help='Classify one raw directory against one graded directory')
    p.add_argument('--raw', type=Path, required=True, help='Raw survey directory')
    p.add_argument('--graded', type=Path, required=True, help='Graded survey directory')
    p.add_argument('--output', '-o', type=Path, required=True, help='Output directory')
    p.add_argument('--survey-id', help='Survey id override used as the base key')
    p.add_argument('--output-filename', default=config.single_output_filename)
    p.add_argument('--no-log', action='store_true', help='Do not write a session log file')

    # rules
    p = sub.add_parser('rules', help='Show, create or reset the rules file')
    p.add_argument('action', choices=['show', 'init', 'reset'])
    p.add_argument('--path', type=Path, help=f'Rules file (default: {config.rules_path})')
    p.add_argument('--force', action='store_true', help='Overwrite an existing file on init')

    # check
    p = sub.add_parser('check', help='Verify the reports of a finished tree run')
    p.add_argument('--output', '-o', type=Path, required=True, help='Output directory of the run')
    p.add_argument('--merged-filename', default=config.merged_filename)
    p.add_argument('--problems-filename', default=config.problems_filename)
    p.add_argument('--per-survey-dirname', default=config.per_survey_dirname)
    p.add_argument('--json', action='store_true', help='Print the check report as JSON')

    # sample
    p = sub.add_parser('sample', help='Create a sample Raw/Graded tree')
    p.add_argument('--dir', type=Path, default=Path('sample-data'), help='Target directory')

    return parser


def resolve_rules(rules_path: Optional[Path]) -> Rules:
    """Rules from --rules, else the configured file if present, else defaults."""
    if rules_path:
        return load_rules(rules_path)
    if config.rules_path.exists():
        return load_rules(config.rules_path)
    return Rules.default()


def print_summary(summary: RunSummary):
    """Print run summary."""
    print("\n" + "=" * 60)
    print("RUN CANCELLED" if summary.cancelled else "RUN COMPLETE")
    print("=" * 60)
    print(f"\nSurveys processed:  {summary.processed_surveys}")
    print(f"Rows:               {summary.total_rows}")
    print(f"Dolphin yes / no:   {summary.dolphin_yes} / {summary.dolphin_no}")
    print(f"Ambiguity warnings: {summary.ambiguity_warnings}")
    print(f"Problems:           {summary.problems_count}")
    print(f"\nOutput directory: {summary.output_dir}")
    if summary.merged_csv_path:
        print(f"Report: {summary.merged_csv_path}")
    if summary.problems_csv_path:
        print(f"Problems: {summary.problems_csv_path}")


def _progress_printer(quiet: bool):
    def progress_callback(event: ProgressEvent):
        if quiet:
            return
        print(f"\r  survey {event.processed}/{event.total} ({event.survey_id_base})", end="", flush=True)
        if event.processed == event.total:
            print()
    return progress_callback


def _cmd_preview(args: argparse.Namespace) -> int:
    orchestrator = SurveyOrchestrator(resolve_rules(args.rules))
    result = orchestrator.preview(args.graded, args.raw)
    items = result.items()
    if args.json:
        print(json.dumps(items, indent=2, ensure_ascii=False))
        return 0

    print(f"\n{'BASE KEY':<16} {'STATUS':<14} {'RAW':>5} {'GRADED':>7}  DETAILS")
    for item in items:
        raw_count = item['raw_image_count'] if item['raw_image_count'] is not None else '-'
        graded_count = item['graded_image_count'] if item['graded_image_count'] is not None else '-'
        print(f"{item['base_key']:<16} {item['status']:<14} {raw_count:>5} {graded_count:>7}  {item['details'] or ''}")
    scan_problems = [p for p in result.problems if p.problem_type.value in ('unclassified', 'scan_error')]
    if scan_problems:
        print(f"\nScan problems ({len(scan_problems)}):")
        for p in scan_problems:
            print(f"  {p.problem_type.value}: {p.raw_path or p.graded_path} - {p.details}")
    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    output_dir = args.output.resolve()
    options = TreeRunOptions(
        write_per_survey=not args.no_per_survey,
        write_merged=not args.no_merged,
        merged_filename=args.merged_filename,
        problems_filename=args.problems_filename,
        per_survey_dirname=args.per_survey_dirname,
    )
    orchestrator = SurveyOrchestrator(
        resolve_rules(args.rules),
        progress_callback=_progress_printer(args.quiet),
        max_workers=args.workers,
        log_dir=None if args.no_log else config.get_log_dir(output_dir),
    )
    if not args.quiet:
        print(f"\nRaw root: {args.raw.resolve()}")
        print(f"Graded root: {args.graded.resolve()}")
        print(f"Output directory: {output_dir}")
        print()

    summary = orchestrator.run_tree(args.graded, args.raw, output_dir, options)
    print_summary(summary)

    if args.check:
        checker = ReportChecker.from_options(output_dir, options)
        report = checker.run_checks(summary)
        checker.print_report(report)
        return 0 if report.ok else 1
    return 0


def _cmd_single(args: argparse.Namespace) -> int:
    output_dir = args.output.resolve()
    orchestrator = SurveyOrchestrator(
        resolve_rules(args.rules),
        progress_callback=_progress_printer(args.quiet),
        log_dir=None if args.no_log else config.get_log_dir(output_dir),
    )
    summary = orchestrator.run_single_pair(
        args.graded, args.raw, output_dir,
        survey_id_override=args.survey_id,
        options=SingleRunOptions(output_filename=args.output_filename),
    )
    print_summary(summary)
    return 0


def _cmd_rules(args: argparse.Namespace) -> int:
    path = args.path or args.rules or config.rules_path
    if args.action == 'show':
        rules = load_rules(path) if path.exists() else Rules.default()
        compile_rules(rules)
        print(json.dumps(rules.to_dict(), indent=2, ensure_ascii=False))
        return 0
    if args.action == 'init':
        if path.exists() and not args.force:
            print(f"Rules file already exists: {path} (use --force to overwrite)")
            return 1
        save_rules(Rules.default(), path)
        print(f"Rules written to: {path}")
        return 0
    reset_rules(path)
    print(f"Rules reset to defaults: {path}")
    return 0


def _cmd_check(args: argparse.Namespace) -> int:
    checker = ReportChecker(
        args.output,
        merged_filename=args.merged_filename,
        problems_filename=args.problems_filename,
        per_survey_dirname=args.per_survey_dirname,
    )
    report = checker.run_checks()
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        checker.print_report(report)
    return 0 if report.ok else 1


def _cmd_sample(args: argparse.Namespace) -> int:
    roots = create_sample_data(args.dir)
    print(f"Sample data created at: {args.dir.resolve()}")
    print(f"  Raw:    {roots['raw']}")
    print(f"  Graded: {roots['graded']}")
    return 0


COMMANDS = {
    'preview': _cmd_preview,
    'run': _cmd_run,
    'single': _cmd_single,
    'rules': _cmd_rules,
    'check': _cmd_check,
    'sample': _cmd_sample,
}


def run_cli(args: argparse.Namespace) -> int:
    """Run the selected command with given arguments."""
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)-8s | %(name)s | %(message)s',
    )
    try:
        return COMMANDS[args.command](args)

    except KeyboardInterrupt:
        print("\n\nInterrupted!")
        return 130

    except (SurveyLabelerError, ValueError) as e:
        print(f"\nError: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)
    sys.exit(run_cli(args))


if __name__ == "__main__":
    main()
