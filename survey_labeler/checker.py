"""
Report Checker - re-reads a finished tree run and validates its reports.
"""
import logging
import pandas as pd
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field

from .config import IMAGE_COLUMNS, PROBLEM_COLUMNS
from .records import RunSummary


logger = logging.getLogger(__name__)


@dataclass
class CheckReport:
    """Outcome of checking one output directory."""
    merged_rows: Optional[int] = None
    per_survey_files: int = 0
    per_survey_rows: int = 0
    dolphin_yes: int = 0
    dolphin_no: int = 0
    problems_rows: Optional[int] = None
    issues: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    def to_dict(self) -> Dict[str, Any]:
        return {
            'merged_rows': self.merged_rows,
            'per_survey_files': self.per_survey_files,
            'per_survey_rows': self.per_survey_rows,
            'dolphin_yes': self.dolphin_yes,
            'dolphin_no': self.dolphin_no,
            'problems_rows': self.problems_rows,
            'issues': list(self.issues),
            'ok': self.ok,
        }


class ReportChecker:
    """
    Verifies the reports of a tree run.

    Checks:
    1. Header schemas of merged, per-survey and problems files
    2. Merged row count equals the sum of per-survey row counts
    3. `dolphin` values are 0 or 1 and `graded_hits` is never negative
    4. Optionally, agreement with the RunSummary of the run
    """

    def __init__(
        self,
        output_dir: Path,
        merged_filename: str = 'merged.csv',
        problems_filename: str = 'problems.csv',
        per_survey_dirname: str = 'per_survey',
    ):
        """
        Initialize the checker with an output directory.

        Args:
            output_dir: Output directory of a tree run
        """
        self.output_dir = Path(output_dir)
        if not self.output_dir.is_dir():
            raise ValueError(f"Output directory does not exist: {output_dir}")

        self.merged_path = self.output_dir / merged_filename
        self.problems_path = self.output_dir / problems_filename
        self.per_survey_dir = self.output_dir / per_survey_dirname

    @classmethod
    def from_options(cls, output_dir: Path, options) -> 'ReportChecker':
        """Build a checker from TreeRunOptions."""
        return cls(
            output_dir,
            merged_filename=options.merged_filename,
            problems_filename=options.problems_filename,
            per_survey_dirname=options.per_survey_dirname,
        )

    @staticmethod
    def _load(path: Path) -> Optional[pd.DataFrame]:
        """Load a report as strings, empty fields kept as ''."""
        if not path.exists():
            return None
        return pd.read_csv(path, dtype=str, keep_default_na=False, encoding='utf-8')

    @staticmethod
    def _check_columns(df: pd.DataFrame, expected: List[str], name: str, report: CheckReport):
        if list(df.columns) != expected:
            report.issues.append(f"{name}: unexpected header {list(df.columns)}")

    @staticmethod
    def _check_values(df: pd.DataFrame, name: str, report: CheckReport):
        if 'dolphin' in df.columns:
            bad = df[~df['dolphin'].isin(['0', '1'])]
            if len(bad):
                report.issues.append(f"{name}: {len(bad)} rows with dolphin not in {{0,1}}")
        if 'graded_hits' in df.columns:
            hits = pd.to_numeric(df['graded_hits'], errors='coerce')
            bad = hits.isna() | (hits < 0)
            if bad.any():
                report.issues.append(f"{name}: {int(bad.sum())} rows with invalid graded_hits")

    def run_checks(self, summary: Optional[RunSummary] = None) -> CheckReport:
        """
        Run every check.

        Args:
            summary: RunSummary to compare counts against

        Returns:
            CheckReport; `ok` is False when any issue was found
        """
        report = CheckReport()

        merged = self._load(self.merged_path)
        if merged is not None:
            self._check_columns(merged, IMAGE_COLUMNS, self.merged_path.name, report)
            self._check_values(merged, self.merged_path.name, report)
            report.merged_rows = len(merged)
            if 'dolphin' in merged.columns:
                report.dolphin_yes = int((merged['dolphin'] == '1').sum())
                report.dolphin_no = int((merged['dolphin'] == '0').sum())

        if self.per_survey_dir.is_dir():
            for path in sorted(self.per_survey_dir.glob('*.csv')):
                df = self._load(path)
                self._check_columns(df, IMAGE_COLUMNS, path.name, report)
                self._check_values(df, path.name, report)
                report.per_survey_files += 1
                report.per_survey_rows += len(df)

        if merged is not None and report.per_survey_files:
            if report.merged_rows != report.per_survey_rows:
                report.issues.append(
                    f"merged rows ({report.merged_rows}) != per-survey rows ({report.per_survey_rows})"
                )

        problems = self._load(self.problems_path)
        if problems is None:
            report.issues.append(f"missing problems file: {self.problems_path.name}")
        else:
            self._check_columns(problems, PROBLEM_COLUMNS, self.problems_path.name, report)
            report.problems_rows = len(problems)

        if summary is not None:
            self._check_summary(summary, report)

        for issue in report.issues:
            logger.warning(f"Check failed: {issue}")
        return report

    @staticmethod
    def _check_summary(summary: RunSummary, report: CheckReport):
        rows = report.merged_rows if report.merged_rows is not None else report.per_survey_rows
        if rows != summary.total_rows:
            report.issues.append(f"report rows ({rows}) != summary total_rows ({summary.total_rows})")
        if summary.dolphin_yes + summary.dolphin_no != summary.total_rows:
            report.issues.append("summary dolphin_yes + dolphin_no != total_rows")
        if report.merged_rows is not None and (
            report.dolphin_yes != summary.dolphin_yes or report.dolphin_no != summary.dolphin_no
        ):
            report.issues.append(
                f"merged yes/no ({report.dolphin_yes}/{report.dolphin_no}) != "
                f"summary ({summary.dolphin_yes}/{summary.dolphin_no})"
            )
        if report.problems_rows is not None and report.problems_rows != summary.problems_count:
            report.issues.append(
                f"problems rows ({report.problems_rows}) != summary problems_count ({summary.problems_count})"
            )

    def print_report(self, report: CheckReport):
        """Print a formatted check report to the console."""
        print("\n" + "=" * 70)
        print("SURVEY LABELER CHECKER - VERIFICATION REPORT")
        print("=" * 70)
        print(f"\n  Output dir:        {self.output_dir}")
        print(f"  Merged rows:       {report.merged_rows if report.merged_rows is not None else 'N/A'}")
        print(f"  Per-survey files:  {report.per_survey_files}")
        print(f"  Per-survey rows:   {report.per_survey_rows}")
        print(f"  Dolphin yes / no:  {report.dolphin_yes} / {report.dolphin_no}")
        print(f"  Problems:          {report.problems_rows if report.problems_rows is not None else 'N/A'}")
        print("\n  ISSUES:")
        print("-" * 50)
        if report.ok:
            print("  ✓ No issues found!")
        for issue in report.issues:
            print(f"  ✗ {issue}")
        print("\n" + "=" * 70 + "\n")
