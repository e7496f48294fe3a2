"""
Result records for the survey labeler.
Rows of the image and problem reports, run summary and progress events.
"""
from pathlib import Path
from typing import Dict, Iterable, Optional, Any
from dataclasses import dataclass, asdict
from enum import Enum

from .config import IMAGE_COLUMNS, PROBLEM_COLUMNS


class DolphinLabel(Enum):
    """Binary label assigned to a raw image."""
    YES = "Yes"
    NO = "No"

    @property
    def csv_value(self) -> int:
        return 1 if self is DolphinLabel.YES else 0


class ProblemType(Enum):
    """Kinds of non-fatal anomalies recorded during a run."""
    RAW_ORPHAN = "raw_orphan"              # raw survey without graded counterpart
    GRADED_ORPHAN = "graded_orphan"        # graded survey without raw counterpart
    MULTIPLE_MATCHES = "multiple_matches"  # several directories share a base key
    UNCLASSIFIED = "unclassified"          # accepted files with no keyed ancestor
    SCAN_ERROR = "scan_error"              # unreadable subtree


@dataclass(frozen=True)
class ProblemRecord:
    """One row of the problems report."""
    survey_id_base: str
    problem_type: ProblemType
    details: str = ''
    survey_id_detected: Optional[str] = None
    raw_path: Optional[str] = None
    graded_path: Optional[str] = None

    def sort_key(self) -> tuple:
        return (
            self.survey_id_base, self.raw_path or '', self.graded_path or '',
            self.problem_type.value, self.details,
        )

    def to_row(self) -> Dict[str, Any]:
        row = {
            'survey_id_base': self.survey_id_base,
            'survey_id_detected': self.survey_id_detected,
            'raw_path': self.raw_path,
            'graded_path': self.graded_path,
            'problem_type': self.problem_type.value,
            'details': self.details,
        }
        return {col: row[col] for col in PROBLEM_COLUMNS}


@dataclass(frozen=True)
class ImageRecord:
    """Classification result for one raw image."""
    survey_id_base: str
    raw_relpath: str
    filename: str
    label: DolphinLabel
    graded_relpath: Optional[str] = None
    graded_hits: int = 0
    winner_type: Optional[str] = None
    survey_id_raw_detected: Optional[str] = None
    survey_id_graded_detected: Optional[str] = None
    ambiguous: bool = False

    def sort_key(self) -> tuple:
        return (self.survey_id_base, self.raw_relpath)

    def to_row(self) -> Dict[str, Any]:
        row = {
            'survey_id_base': self.survey_id_base,
            'raw_relpath': self.raw_relpath,
            'filename': self.filename,
            'dolphin': self.label.csv_value,
            'graded_relpath': self.graded_relpath,
            'graded_hits': self.graded_hits,
            'graded_winner_type': self.winner_type,
            'survey_id_raw_detected': self.survey_id_raw_detected,
            'survey_id_graded_detected': self.survey_id_graded_detected,
        }
        return {col: row[col] for col in IMAGE_COLUMNS}


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted once per completed survey."""
    survey_id_base: str
    processed: int
    total: int


@dataclass
class RunSummary:
    """Aggregate counters for a finished run."""
    processed_surveys: int = 0
    total_rows: int = 0
    dolphin_yes: int = 0
    dolphin_no: int = 0
    ambiguity_warnings: int = 0
    problems_count: int = 0
    output_dir: str = ''
    merged_csv_path: Optional[str] = None
    problems_csv_path: Optional[str] = None
    cancelled: bool = False

    @classmethod
    def from_records(
        cls,
        records: Iterable[ImageRecord],
        problems: Iterable[ProblemRecord],
        processed_surveys: int,
        output_dir: Path,
        merged_csv_path: Optional[Path] = None,
        problems_csv_path: Optional[Path] = None,
        cancelled: bool = False,
    ) -> 'RunSummary':
        """Fold image and problem records into a summary."""
        summary = cls(
            processed_surveys=processed_surveys,
            output_dir=str(output_dir),
            merged_csv_path=str(merged_csv_path) if merged_csv_path else None,
            problems_csv_path=str(problems_csv_path) if problems_csv_path else None,
            cancelled=cancelled,
        )
        for record in records:
            summary.total_rows += 1
            if record.label is DolphinLabel.YES:
                summary.dolphin_yes += 1
            else:
                summary.dolphin_no += 1
            if record.ambiguous:
                summary.ambiguity_warnings += 1
        summary.problems_count = sum(1 for _ in problems)
        return summary

    def to_dict(self) -> dict:
        return asdict(self)

    def __str__(self) -> str:
        return (
            f"Surveys: {self.processed_surveys} | Rows: {self.total_rows} | "
            f"Yes: {self.dolphin_yes} | No: {self.dolphin_no} | "
            f"Ambiguity warnings: {self.ambiguity_warnings} | Problems: {self.problems_count}"
        )
