"""
Pairing Module for the survey labeler.
Matches raw survey units to graded survey units by base key.
"""
import logging
from typing import Optional, List, Dict, Tuple, Any, Sequence
from dataclasses import dataclass
from enum import Enum

from .file_scanner import SurveyUnit
from .records import ProblemRecord, ProblemType


logger = logging.getLogger(__name__)


class PairingStatus(Enum):
    """Outcome of pairing one base key."""
    OK = "OK"
    RAW_ORPHAN = "RawOrphan"        # raw side only
    GRADED_ORPHAN = "GradedOrphan"  # graded side only
    AMBIGUOUS = "Ambiguous"         # several candidates on at least one side


@dataclass(frozen=True)
class PairedSurvey:
    """Pairing result for one base key."""
    base_key: str
    status: PairingStatus
    raw: Optional[SurveyUnit] = None
    graded: Optional[SurveyUnit] = None
    raw_others: Tuple[SurveyUnit, ...] = ()
    graded_others: Tuple[SurveyUnit, ...] = ()
    problem: Optional[ProblemRecord] = None

    @property
    def is_classifiable(self) -> bool:
        """Both sides present; orphans contribute no rows."""
        return self.raw is not None and self.graded is not None

    @property
    def problem_type(self) -> Optional[ProblemType]:
        return self.problem.problem_type if self.problem else None

    @property
    def details(self) -> Optional[str]:
        return self.problem.details if self.problem else None

    @property
    def raw_image_count(self) -> Optional[int]:
        return self.raw.file_count if self.raw else None

    @property
    def graded_image_count(self) -> Optional[int]:
        return self.graded.file_count if self.graded else None

    def to_preview_item(self) -> Dict[str, Any]:
        """Preview row as handed to the caller."""
        return {
            'base_key': self.base_key,
            'raw_path': str(self.raw.root) if self.raw else None,
            'graded_path': str(self.graded.root) if self.graded else None,
            'status': self.status.value,
            'problem_type': self.problem_type.value if self.problem_type else None,
            'details': self.details,
            'raw_image_count': self.raw_image_count,
            'graded_image_count': self.graded_image_count,
            'survey_id_raw_detected': self.raw.detected_id if self.raw else None,
            'survey_id_graded_detected': self.graded.detected_id if self.graded else None,
        }


def select_candidate(units: Sequence[SurveyUnit]) -> Tuple[Optional[SurveyUnit], Tuple[SurveyUnit, ...]]:
    """
    Pick the pairing candidate among units sharing a base key.

    Most member files wins, ties go to the lexicographically smallest root
    path. Returns (winner, others) with others sorted by root path.
    """
    if not units:
        return None, ()
    ranked = sorted(units, key=lambda u: (-u.file_count, str(u.root)))
    winner = ranked[0]
    others = tuple(sorted(ranked[1:], key=lambda u: str(u.root)))
    return winner, others


def _describe(label: str, units: Sequence[SurveyUnit]) -> str:
    return f"{label}: " + "; ".join(f"{u.root} ({u.file_count} files)" for u in units)


class PairingResolver:
    """
    Resolves raw and graded candidates into one PairedSurvey per base key.

    The result is ordered by base key and does not depend on the order of
    the scan results.
    """

    def pair(
        self,
        raw_candidates: Dict[str, List[SurveyUnit]],
        graded_candidates: Dict[str, List[SurveyUnit]],
    ) -> List[PairedSurvey]:
        """
        Pair every base key seen on either side.

        Args:
            raw_candidates: base key -> raw survey units
            graded_candidates: base key -> graded survey units

        Returns:
            PairedSurvey list sorted by base key
        """
        keys = sorted(set(raw_candidates) | set(graded_candidates))
        paired = [
            self._pair_key(key, raw_candidates.get(key, []), graded_candidates.get(key, []))
            for key in keys
        ]

        counts: Dict[PairingStatus, int] = {}
        for p in paired:
            counts[p.status] = counts.get(p.status, 0) + 1
        logger.info(
            f"Paired {len(paired)} base keys: "
            + ", ".join(f"{status.value}={counts.get(status, 0)}" for status in PairingStatus)
        )
        return paired

    def _pair_key(
        self,
        base_key: str,
        raw_units: List[SurveyUnit],
        graded_units: List[SurveyUnit],
    ) -> PairedSurvey:
        raw, raw_others = select_candidate(raw_units)
        graded, graded_others = select_candidate(graded_units)

        if raw is not None and graded is None:
            details = "No graded survey folder found."
            if raw_others:
                details += " " + _describe("other raw candidates", raw_others)
            problem = ProblemRecord(
                survey_id_base=base_key,
                problem_type=ProblemType.RAW_ORPHAN,
                details=details,
                survey_id_detected=raw.detected_id,
                raw_path=str(raw.root),
            )
            status = PairingStatus.RAW_ORPHAN
        elif graded is not None and raw is None:
            details = "No raw survey folder found."
            if graded_others:
                details += " " + _describe("other graded candidates", graded_others)
            problem = ProblemRecord(
                survey_id_base=base_key,
                problem_type=ProblemType.GRADED_ORPHAN,
                details=details,
                survey_id_detected=graded.detected_id,
                graded_path=str(graded.root),
            )
            status = PairingStatus.GRADED_ORPHAN
        elif raw_others or graded_others:
            parts = []
            if raw_others:
                parts.append(_describe("raw not used", raw_others))
            if graded_others:
                parts.append(_describe("graded not used", graded_others))
            problem = ProblemRecord(
                survey_id_base=base_key,
                problem_type=ProblemType.MULTIPLE_MATCHES,
                details=" | ".join(parts),
                survey_id_detected=graded.detected_id or raw.detected_id,
                raw_path=str(raw.root),
                graded_path=str(graded.root),
            )
            status = PairingStatus.AMBIGUOUS
        else:
            problem = None
            status = PairingStatus.OK

        if problem:
            logger.warning(f"{base_key}: {status.value} - {problem.details}")
        else:
            logger.debug(f"{base_key}: paired {raw.root} <-> {graded.root}")

        return PairedSurvey(
            base_key=base_key,
            status=status,
            raw=raw,
            graded=graded,
            raw_others=raw_others,
            graded_others=graded_others,
            problem=problem,
        )
