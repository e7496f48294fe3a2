"""
Logging module for the survey labeler.
Provides a structured run log to both console and file.
"""
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional
from enum import Enum


class LogAction(Enum):
    """Types of actions that can be logged."""
    # Run stage transitions
    STAGE_START = "STAGE_START"
    STAGE_END = "STAGE_END"

    # Scanning and pairing
    ROOT_SCANNED = "ROOT_SCANNED"
    SURVEY_PAIRED = "SURVEY_PAIRED"

    # Classification
    SURVEY_CLASSIFIED = "SURVEY_CLASSIFIED"
    AMBIGUITY_WARNING = "AMBIGUITY_WARNING"

    # Problems and reports
    PROBLEM_RECORDED = "PROBLEM_RECORDED"
    REPORT_WRITTEN = "REPORT_WRITTEN"

    # Run lifecycle
    RUN_CANCELLED = "RUN_CANCELLED"
    RUN_SUMMARY = "RUN_SUMMARY"

    # Errors and warnings
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"


class SurveyLabelerLogger:
    """
    Logger for one survey labeler run.
    Logs to both console and a timestamped file.
    """

    def __init__(self, log_dir: Path, session_name: Optional[str] = None):
        """
        Initialize the logger.

        Args:
            log_dir: Directory where log files will be stored
            session_name: Optional name for this session (default: timestamp)
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.session_name = session_name or timestamp
        self.log_file = self.log_dir / f"session_{self.session_name}.log"

        self.logger = logging.getLogger(f"survey_labeler_{self.session_name}")
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        # Prevent duplicate handlers
        if self.logger.handlers:
            self.logger.handlers.clear()

        # File handler - detailed
        file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        self.logger.addHandler(file_handler)

        # Console handler - less verbose
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter('%(levelname)-8s | %(message)s'))
        self.logger.addHandler(console_handler)

        self.log(LogAction.INFO, f"Session started: {self.session_name}")
        self.log(LogAction.INFO, f"Log file: {self.log_file}")

    def log(self, action: LogAction, message: str, **kwargs):
        """
        Log an action with optional extra data.

        Args:
            action: The type of action being logged
            message: Human-readable message
            **kwargs: Additional data to include in the log
        """
        extra_str = ""
        if kwargs:
            extra_str = " | " + " | ".join(f"{k}={v}" for k, v in kwargs.items())

        full_message = f"[{action.value}] {message}{extra_str}"

        if action == LogAction.ERROR:
            self.logger.error(full_message)
        elif action in (LogAction.WARNING, LogAction.PROBLEM_RECORDED):
            self.logger.warning(full_message)
        elif action in (LogAction.SURVEY_PAIRED, LogAction.AMBIGUITY_WARNING):
            # One line per survey or image, file only
            self.logger.debug(full_message)
        else:
            self.logger.info(full_message)

    def stage_start(self, stage_name: str, detail: str = ""):
        """Log the start of a run stage."""
        self.log(LogAction.STAGE_START, f"=== STAGE START: {stage_name} === {detail}")

    def stage_end(self, stage_name: str, detail: str = ""):
        """Log the end of a run stage."""
        self.log(LogAction.STAGE_END, f"=== STAGE END: {stage_name} === {detail}")

    def root_scanned(self, side: str, root: Path, base_keys: int, files: int):
        self.log(LogAction.ROOT_SCANNED, f"Scanned {side} root: {root}",
                 base_keys=base_keys, files=files)

    def survey_paired(self, base_key: str, status: str, raw_path=None, graded_path=None):
        """Log the pairing outcome of one base key."""
        self.log(LogAction.SURVEY_PAIRED, f"{base_key}: {status}",
                 raw=raw_path or "None", graded=graded_path or "None")

    def survey_classified(self, base_key: str, rows: int, yes: int, ambiguous: int,
                          processed: int, total: int):
        """Log a completed survey."""
        self.log(LogAction.SURVEY_CLASSIFIED, f"{base_key} ({processed}/{total})",
                 rows=rows, yes=yes, no=rows - yes, ambiguous=ambiguous)

    def ambiguity_warning(self, base_key: str, filename: str, hits: int, winner_type: str):
        self.log(LogAction.AMBIGUITY_WARNING, f"{base_key}: {filename}",
                 graded_hits=hits, winner=winner_type)

    def problem_recorded(self, base_key: str, problem_type: str, details: str):
        """Log a problem record."""
        self.log(LogAction.PROBLEM_RECORDED, f"{base_key}: {problem_type}", details=details)

    def report_written(self, path: Path, rows: int):
        """Log a written report file."""
        self.log(LogAction.REPORT_WRITTEN, f"Wrote {path}", rows=rows)

    def run_cancelled(self, processed: int, total: int):
        self.log(LogAction.RUN_CANCELLED, f"Run cancelled after {processed}/{total} surveys")

    def run_summary(self, summary):
        self.log(LogAction.RUN_SUMMARY, str(summary))

    def error(self, message: str, exception: Optional[Exception] = None):
        """Log an error."""
        if exception:
            self.log(LogAction.ERROR, f"{message}: {type(exception).__name__}: {exception}")
        else:
            self.log(LogAction.ERROR, message)

    def warning(self, message: str):
        """Log a warning."""
        self.log(LogAction.WARNING, message)

    def info(self, message: str):
        """Log info message."""
        self.log(LogAction.INFO, message)

    def close(self):
        """Close the logger and finalize the session."""
        self.log(LogAction.INFO, "Session ended")
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)
