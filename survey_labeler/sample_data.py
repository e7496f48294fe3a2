"""
Sample data generator for the survey labeler.

Builds a small Raw/Graded tree with one fully paired survey, one paired
survey without graded matches, one raw orphan and one graded orphan.
"""
import logging
from pathlib import Path
from typing import Dict, List


logger = logging.getLogger(__name__)

RAW_FILES = ['img_001.jpg', 'img_002.jpg', 'img_003.jpg']

SAMPLE_SURVEYS: List[Dict[str, object]] = [
    {'base': '20250101_AB', 'full': '20250101_AB_CD', 'dolphins': ['img_001.jpg', 'img_003.jpg']},
    {'base': '20250102_CD', 'full': '20250102_CD_EF', 'dolphins': ['photo_a.jpg']},
]


def _write(path: Path, content: str):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content.encode('utf-8'))


def create_sample_data(base_dir: Path) -> Dict[str, Path]:
    """
    Create the sample tree under base_dir.

    Returns:
        {'raw': raw root, 'graded': graded root}
    """
    base_dir = Path(base_dir)
    raw_root = base_dir / 'Raw'
    graded_root = base_dir / 'Graded'
    raw_root.mkdir(parents=True, exist_ok=True)
    graded_root.mkdir(parents=True, exist_ok=True)

    for survey in SAMPLE_SURVEYS:
        raw_survey = raw_root / '2025' / '01' / survey['base']
        graded_survey = graded_root / survey['full']
        raw_survey.mkdir(parents=True, exist_ok=True)
        graded_survey.mkdir(parents=True, exist_ok=True)
        for name in RAW_FILES:
            _write(raw_survey / name, f"sample:{name}")
        for name in survey['dolphins']:
            _write(graded_survey / name, f"sample:{name}")

    _write(raw_root / '2025' / '02' / '20250103_EF' / 'lonely.jpg', 'raw:orphan')
    _write(graded_root / '20250104_GH' / 'ghost.jpg', 'graded:orphan')

    logger.info(f"Sample data created at: {base_dir}")
    return {'raw': raw_root, 'graded': graded_root}
