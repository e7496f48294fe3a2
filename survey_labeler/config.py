"""
Configuration for the survey labeler.
"""
import os
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import find_dotenv, load_dotenv

# Load .env beside the package first, then from the working directory
_env_path = Path(__file__).parent / '.env'
if _env_path.exists():
    load_dotenv(_env_path)
load_dotenv(find_dotenv(usecwd=True))

logger = logging.getLogger(__name__)


# === Default rules ===
# Field names are the persisted rules document keys.
DEFAULT_IMAGE_ID_REGEX = r'^(.+?_\d{3,5})(?:[ _][A-Za-z0-9]+)*$'

DEFAULT_RULES: Dict[str, object] = {
    'extensions': ['.jpg', '.jpeg', '.png', '.tif', '.tiff'],
    'survey_id_regex_detected': r'(?i)\b(\d{8}_[A-Z]{2}(?:_[A-Z]{2})?)\b',
    'survey_id_regex_base': r'(?i)\b(\d{8}_[A-Z]{2})(?:_[A-Z]{2})?\b',
    'image_id_regex': DEFAULT_IMAGE_ID_REGEX,
    'graded_priority_ind_regex': r'(?i)\bind',
    'graded_priority_secondary_tokens': ['best'],
    'graded_negative_contains_any': [],
    'graded_positive_contains_any': ['*'],
}

# Token that matches every candidate when present in a token list
WILDCARD_TOKEN = '*'


# === Report schemas ===
IMAGE_COLUMNS: List[str] = [
    'survey_id_base', 'raw_relpath', 'filename', 'dolphin', 'graded_relpath',
    'graded_hits', 'graded_winner_type', 'survey_id_raw_detected',
    'survey_id_graded_detected',
]

PROBLEM_COLUMNS: List[str] = [
    'survey_id_base', 'survey_id_detected', 'raw_path', 'graded_path',
    'problem_type', 'details',
]


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring {name}={value!r}: not an integer, using {default}")
        return default


@dataclass
class Config:
    """Main configuration class."""

    # === Rules document ===
    rules_path: Path = field(default_factory=lambda: Path(
        os.environ.get('SURVEY_LABELER_RULES', Path.home() / '.survey_labeler' / 'rules.json')
    ))

    # === Tree run defaults ===
    write_per_survey: bool = True
    write_merged: bool = True
    merged_filename: str = 'merged.csv'
    problems_filename: str = 'problems.csv'
    per_survey_dirname: str = 'per_survey'

    # === Single pair defaults ===
    single_output_filename: str = 'single.csv'

    # === Execution ===
    max_workers: int = field(default_factory=lambda: max(1, _env_int('SURVEY_LABELER_WORKERS', 1)))

    # === Logging ===
    log_dirname: str = 'logs'
    log_dir_override: Optional[Path] = field(default_factory=lambda: (
        Path(os.environ['SURVEY_LABELER_LOG_DIR']) if os.environ.get('SURVEY_LABELER_LOG_DIR') else None
    ))

    def get_log_dir(self, output_dir: Path) -> Path:
        """Log directory for a run writing into output_dir."""
        if self.log_dir_override:
            return self.log_dir_override
        return Path(output_dir) / self.log_dirname


# Global config instance
config = Config()
