"""
Image Classification Module for the survey labeler.

Labels every raw image of a paired survey from the graded evidence. The
graded files sharing the raw image's image id are the candidates; signals
are looked up in each candidate's path relative to the graded survey
directory, so grader sub-folders count as part of the name.

Tiers, first match wins:
    a. negative token on any candidate    -> No,  "negative_override"
    b. indicator regex on any candidate   -> Yes, "indicator"
    c. positive token on any candidate    -> Yes, "positive_token"
    d. secondary token, by list position  -> Yes, "secondary_token:<token>"
    e. candidates without any signal      -> Yes, "presence"
    f. no candidates                      -> No,  no winner
"""
import logging
from pathlib import Path
from typing import Optional, List, Dict, Tuple, Callable
from dataclasses import dataclass

from .rules import CompiledRules, token_hit
from .pattern_extractor import IdentifierExtractor
from .file_scanner import SurveyUnit
from .pairing import PairedSurvey
from .records import DolphinLabel, ImageRecord


logger = logging.getLogger(__name__)

NEGATIVE_OVERRIDE = "negative_override"
INDICATOR = "indicator"
POSITIVE_TOKEN = "positive_token"
SECONDARY_TOKEN_PREFIX = "secondary_token:"
PRESENCE = "presence"


@dataclass(frozen=True)
class Classification:
    """Outcome of evaluating one raw image against its candidates."""
    label: DolphinLabel
    winner_type: Optional[str]
    graded_hits: int
    matched_graded_path: Optional[str] = None
    ambiguous: bool = False


@dataclass(frozen=True)
class GradedIndex:
    """Graded unit files grouped by image id."""
    by_image_id: Dict[str, Tuple[str, ...]]
    all_relpaths: Tuple[str, ...]


def pick_path(paths: List[str]) -> str:
    """Shortest relative path, then lexicographically smallest."""
    return min(paths, key=lambda p: (len(p), p))


class ImageClassifier:
    """
    Pure classification of raw images against a graded unit.

    Identical (raw image, graded unit, rules) always give the same result,
    so surveys can be classified in any order or in parallel.
    """

    def __init__(self, rules: CompiledRules, extractor: IdentifierExtractor = None):
        self.rules = rules
        self.extractor = extractor or IdentifierExtractor(rules)

    def index_graded(self, unit: SurveyUnit) -> GradedIndex:
        """Group a graded unit's files by image id."""
        by_id: Dict[str, List[str]] = {}
        relpaths = []
        for path in unit.files:
            relpath = unit.relpath(path)
            relpaths.append(relpath)
            image_id = self.extractor.image_id(path.name)
            if image_id is not None:
                by_id.setdefault(image_id, []).append(relpath)
        return GradedIndex(
            by_image_id={k: tuple(sorted(v)) for k, v in by_id.items()},
            all_relpaths=tuple(sorted(relpaths)),
        )

    def candidates_for(self, filename: str, index: GradedIndex) -> Tuple[str, ...]:
        """
        Graded candidates for a raw filename.

        Without an image id for the raw file the whole graded unit is the
        candidate set.
        """
        image_id = self.extractor.image_id(filename)
        if image_id is None:
            return index.all_relpaths
        return index.by_image_id.get(image_id, ())

    def evaluate(self, candidates: Tuple[str, ...]) -> Classification:
        """Apply the tier policy to a candidate set."""
        hits = len(candidates)
        if hits == 0:
            return Classification(label=DolphinLabel.NO, winner_type=None, graded_hits=0)

        lowered = [(c, c.lower()) for c in candidates]
        tiers: List[Tuple[str, DolphinLabel, Callable[[str, str], bool]]] = [
            (NEGATIVE_OVERRIDE, DolphinLabel.NO,
             lambda c, low: token_hit(low, self.rules.negative_tokens) is not None),
            (INDICATOR, DolphinLabel.YES,
             lambda c, low: self.rules.ind_re.search(c) is not None),
            (POSITIVE_TOKEN, DolphinLabel.YES,
             lambda c, low: token_hit(low, self.rules.positive_tokens) is not None),
        ]
        for token in self.rules.secondary_tokens:
            tiers.append((
                f"{SECONDARY_TOKEN_PREFIX}{token}", DolphinLabel.YES,
                lambda c, low, token=token: token_hit(low, (token,)) is not None,
            ))

        for winner_type, label, matches in tiers:
            carriers = [c for c, low in lowered if matches(c, low)]
            if carriers:
                return Classification(
                    label=label,
                    winner_type=winner_type,
                    graded_hits=hits,
                    matched_graded_path=pick_path(carriers),
                    # Secondary signal on only some of several candidates
                    ambiguous=(
                        winner_type.startswith(SECONDARY_TOKEN_PREFIX)
                        and hits > 1
                        and len(carriers) < hits
                    ),
                )

        return Classification(
            label=DolphinLabel.YES,
            winner_type=PRESENCE,
            graded_hits=hits,
            matched_graded_path=pick_path(list(candidates)),
        )

    def classify_survey(self, paired: PairedSurvey) -> List[ImageRecord]:
        """
        Classify every raw image of a paired survey.

        Returns:
            ImageRecord list sorted by raw relative path; empty for orphans
        """
        if not paired.is_classifiable:
            return []
        return self.classify_units(paired.base_key, paired.raw, paired.graded)

    def classify_units(
        self,
        base_key: str,
        raw: SurveyUnit,
        graded: SurveyUnit,
    ) -> List[ImageRecord]:
        """Classify every file of a raw unit against a graded unit."""
        index = self.index_graded(graded)
        records = []
        for path in raw.files:
            result = self.evaluate(self.candidates_for(path.name, index))
            records.append(ImageRecord(
                survey_id_base=base_key,
                raw_relpath=raw.relpath(path),
                filename=Path(path).name,
                label=result.label,
                graded_relpath=result.matched_graded_path,
                graded_hits=result.graded_hits,
                winner_type=result.winner_type,
                survey_id_raw_detected=raw.detected_id,
                survey_id_graded_detected=graded.detected_id,
                ambiguous=result.ambiguous,
            ))
            if result.ambiguous:
                logger.debug(
                    f"{base_key}: ambiguous evidence for {path.name} "
                    f"({result.graded_hits} candidates, winner {result.winner_type})"
                )
        records.sort(key=ImageRecord.sort_key)
        return records
