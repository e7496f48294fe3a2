"""
Report Manager Module for the survey labeler.
Renders image and problem records into the fixed CSV schemas.
"""
import logging
from pathlib import Path
from typing import Dict, Iterable, List

import pandas as pd

from .config import IMAGE_COLUMNS, PROBLEM_COLUMNS
from .records import ImageRecord, ProblemRecord
from .exceptions import OutputWriteError


logger = logging.getLogger(__name__)


def images_frame(records: Iterable[ImageRecord]) -> pd.DataFrame:
    """Image records as a DataFrame, sorted by base key then raw relpath."""
    ordered = sorted(records, key=ImageRecord.sort_key)
    return pd.DataFrame([r.to_row() for r in ordered], columns=IMAGE_COLUMNS)


def problems_frame(problems: Iterable[ProblemRecord]) -> pd.DataFrame:
    """Problem records as a DataFrame in stable order."""
    ordered = sorted(problems, key=ProblemRecord.sort_key)
    return pd.DataFrame([p.to_row() for p in ordered], columns=PROBLEM_COLUMNS)


class ReportManager:
    """
    Writes the merged, per-survey and problems reports.

    Every file is UTF-8 with a header row, even when there are no rows.
    Missing optional values are written as empty fields.
    """

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)
        self.files_written: List[Path] = []

    def _write(self, df: pd.DataFrame, path: Path) -> Path:
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            df.to_csv(path, index=False, encoding='utf-8', lineterminator='\n')
        except OSError as e:
            message = f"Cannot write {path}: {e}"
            if self.files_written:
                message += f" (already written: {', '.join(str(p) for p in self.files_written)})"
            raise OutputWriteError(message, path=path, written=self.files_written) from e
        self.files_written.append(path)
        logger.info(f"Wrote {len(df)} rows to {path}")
        return path

    def write_images(self, filename: str, records: Iterable[ImageRecord]) -> Path:
        """Write image records to output_dir/filename."""
        return self._write(images_frame(records), self.output_dir / filename)

    def write_problems(self, filename: str, problems: Iterable[ProblemRecord]) -> Path:
        """Write problem records to output_dir/filename."""
        return self._write(problems_frame(problems), self.output_dir / filename)

    def write_per_survey(
        self,
        dirname: str,
        records_by_survey: Dict[str, List[ImageRecord]],
    ) -> List[Path]:
        """
        Write one `<base_key>.csv` per survey into output_dir/dirname.

        Args:
            dirname: Sub-directory for the per-survey files
            records_by_survey: base key -> records of that survey

        Returns:
            Paths written, in base key order
        """
        paths = []
        for base_key in sorted(records_by_survey):
            paths.append(self._write(
                images_frame(records_by_survey[base_key]),
                self.output_dir / dirname / f"{base_key}.csv",
            ))
        return paths

