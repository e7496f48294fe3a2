"""
File Scanner Module for the survey labeler.
Walks a raw or graded root, keeps files with an accepted extension and
groups them into survey units keyed by base key.
"""
import logging
import os
from pathlib import Path
from typing import Optional, List, Dict, Tuple, Callable
from dataclasses import dataclass, field
from enum import Enum

from .rules import CompiledRules
from .pattern_extractor import IdentifierExtractor, SurveyIdentity
from .records import ProblemRecord, ProblemType
from .exceptions import ScanError


logger = logging.getLogger(__name__)

UNCLASSIFIED_KEY = "unclassified"


class SurveySide(Enum):
    """Which tree a survey unit was found in."""
    RAW = "raw"
    GRADED = "graded"


@dataclass(frozen=True)
class SurveyUnit:
    """One survey directory and the accepted files it owns."""
    base_key: str
    side: SurveySide
    root: Path
    detected_id: Optional[str] = None
    files: Tuple[Path, ...] = ()

    @property
    def file_count(self) -> int:
        return len(self.files)

    def relpath(self, path: Path) -> str:
        """Path of a member file relative to the unit root, '/' separated."""
        return Path(path).relative_to(self.root).as_posix()


@dataclass
class ScanResult:
    """Candidates and problems found under one root."""
    root: Path
    side: SurveySide
    candidates: Dict[str, List[SurveyUnit]] = field(default_factory=dict)
    problems: List[ProblemRecord] = field(default_factory=list)
    files_accepted: int = 0
    files_unclassified: int = 0

    @property
    def unit_count(self) -> int:
        return sum(len(units) for units in self.candidates.values())

    def __str__(self) -> str:
        return (
            f"{self.side.value} scan of {self.root}: {len(self.candidates)} base keys | "
            f"{self.unit_count} directories | {self.files_accepted} files | "
            f"unclassified: {self.files_unclassified} | problems: {len(self.problems)}"
        )


class TreeScanner:
    """
    Scans a root directory into survey units.

    Each accepted file belongs to its nearest ancestor directory (the root
    included) whose name yields a base key. Directories sharing a base key
    stay separate candidates so ambiguity can be reported downstream.
    Unreadable subtrees are recorded as problems; an unreadable root raises
    ScanError.
    """

    def __init__(self, rules: CompiledRules, extractor: IdentifierExtractor = None):
        self.rules = rules
        self.extractor = extractor or IdentifierExtractor(rules)

    @staticmethod
    def _check_root(root: Path):
        if not root.exists():
            raise ScanError(f"Directory does not exist: {root}", path=root)
        if not root.is_dir():
            raise ScanError(f"Not a directory: {root}", path=root)
        try:
            with os.scandir(root):
                pass
        except OSError as e:
            raise ScanError(f"Cannot read directory {root}: {e}", path=root) from e

    def _walk(
        self,
        root: Path,
        on_error: Callable[[OSError], None],
    ):
        """Yield (directory, accepted files) top-down in sorted order."""
        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            dirnames.sort()
            directory = Path(dirpath)
            accepted = []
            for name in sorted(filenames):
                path = directory / name
                if self.rules.accepts(path) and path.is_file():
                    accepted.append(path)
            yield directory, accepted

    def scan(self, root: Path | str, side: SurveySide) -> ScanResult:
        """
        Scan a root directory.

        Args:
            root: Raw or graded root directory
            side: Which tree this is

        Returns:
            ScanResult with candidates by base key and scan problems

        Raises:
            ScanError: if the root itself cannot be read
        """
        root = Path(root).resolve()
        self._check_root(root)
        logger.info(f"Scanning {side.value} root: {root}")

        result = ScanResult(root=root, side=side)
        identities: Dict[Path, SurveyIdentity] = {}
        owners: Dict[Path, Optional[Path]] = {}
        members: Dict[Path, List[Path]] = {}

        def owner_of(directory: Path) -> Optional[Path]:
            if directory in owners:
                return owners[directory]
            identity = self.extractor.identify(directory.name)
            if identity.base_key:
                identities[directory] = identity
                owner = directory
            elif directory != root and root in directory.parents:
                owner = owner_of(directory.parent)
            else:
                owner = None
            owners[directory] = owner
            return owner

        def on_error(error: OSError):
            failed = Path(error.filename) if error.filename else root
            owner = owner_of(failed) if failed != root else None
            base_key = identities[owner].base_key if owner else UNCLASSIFIED_KEY
            logger.warning(f"Cannot read {failed}: {error}")
            result.problems.append(self._problem(
                side, base_key, failed, ProblemType.SCAN_ERROR,
                f"unreadable directory: {error.strerror or error}",
                identities[owner].detected_id if owner else None,
            ))

        for directory, accepted in self._walk(root, on_error):
            if not accepted:
                continue
            result.files_accepted += len(accepted)
            owner = owner_of(directory)
            if owner is None:
                result.files_unclassified += len(accepted)
                logger.warning(f"No survey id for {directory} ({len(accepted)} files)")
                result.problems.append(self._problem(
                    side, UNCLASSIFIED_KEY, directory, ProblemType.UNCLASSIFIED,
                    f"{len(accepted)} file(s) under a directory with no survey id",
                ))
                continue
            members.setdefault(owner, []).extend(accepted)

        for directory in sorted(members):
            identity = identities[directory]
            unit = SurveyUnit(
                base_key=identity.base_key,
                side=side,
                root=directory,
                detected_id=identity.detected_id,
                files=tuple(sorted(members[directory])),
            )
            result.candidates.setdefault(unit.base_key, []).append(unit)

        logger.info(str(result))
        return result

    def collect_unit(
        self,
        directory: Path | str,
        side: SurveySide,
        base_key: str,
        detected_id: Optional[str] = None,
    ) -> Tuple[SurveyUnit, List[ProblemRecord]]:
        """
        Treat a whole directory as one survey unit, nested survey ids included.

        Raises:
            ScanError: if the directory itself cannot be read
        """
        directory = Path(directory).resolve()
        self._check_root(directory)
        problems: List[ProblemRecord] = []

        def on_error(error: OSError):
            failed = Path(error.filename) if error.filename else directory
            logger.warning(f"Cannot read {failed}: {error}")
            problems.append(self._problem(
                side, base_key, failed, ProblemType.SCAN_ERROR,
                f"unreadable directory: {error.strerror or error}", detected_id,
            ))

        files: List[Path] = []
        for _, accepted in self._walk(directory, on_error):
            files.extend(accepted)

        unit = SurveyUnit(
            base_key=base_key,
            side=side,
            root=directory,
            detected_id=detected_id,
            files=tuple(sorted(files)),
        )
        return unit, problems

    @staticmethod
    def _problem(
        side: SurveySide,
        base_key: str,
        path: Path,
        problem_type: ProblemType,
        details: str,
        detected_id: Optional[str] = None,
    ) -> ProblemRecord:
        return ProblemRecord(
            survey_id_base=base_key,
            problem_type=problem_type,
            details=details,
            survey_id_detected=detected_id,
            raw_path=str(path) if side is SurveySide.RAW else None,
            graded_path=str(path) if side is SurveySide.GRADED else None,
        )
