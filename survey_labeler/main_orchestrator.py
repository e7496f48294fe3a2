"""
Main Orchestrator Module for the survey labeler.
Coordinates all modules to execute a run:
scan both roots → pair → (preview stop, or) classify → write reports
"""
import logging
import threading
from pathlib import Path
from typing import Optional, List, Dict, Any, Callable, Tuple, Union
from dataclasses import dataclass, field
from concurrent.futures import ThreadPoolExecutor
from enum import Enum

from .config import config, Config
from .rules import Rules, CompiledRules, compile_rules
from .pattern_extractor import IdentifierExtractor
from .file_scanner import TreeScanner, SurveySide
from .pairing import PairingResolver, PairedSurvey
from .classifier import ImageClassifier
from .records import ImageRecord, ProblemRecord, ProgressEvent, RunSummary, DolphinLabel
from .report_manager import ReportManager
from .logger_module import SurveyLabelerLogger
from .exceptions import SurveyLabelerError, SurveyIdError


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class RunStage(Enum):
    """Stages of a run."""
    INIT = "init"
    SCANNING = "scanning"
    PAIRING = "pairing"
    CLASSIFYING = "classifying"
    WRITING = "writing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class TreeRunOptions:
    """Output options of a tree run."""
    write_per_survey: bool = True
    write_merged: bool = True
    merged_filename: str = 'merged.csv'
    problems_filename: str = 'problems.csv'
    per_survey_dirname: str = 'per_survey'

    @classmethod
    def from_config(cls, cfg: Config = None) -> 'TreeRunOptions':
        cfg = cfg or config
        return cls(
            write_per_survey=cfg.write_per_survey,
            write_merged=cfg.write_merged,
            merged_filename=cfg.merged_filename,
            problems_filename=cfg.problems_filename,
            per_survey_dirname=cfg.per_survey_dirname,
        )


@dataclass
class SingleRunOptions:
    """Output options of a single-pair run."""
    output_filename: str = 'single.csv'

    @classmethod
    def from_config(cls, cfg: Config = None) -> 'SingleRunOptions':
        cfg = cfg or config
        return cls(output_filename=cfg.single_output_filename)


@dataclass
class PreviewResult:
    """Pairing of both trees without classification."""
    surveys: List[PairedSurvey] = field(default_factory=list)
    problems: List[ProblemRecord] = field(default_factory=list)

    def items(self) -> List[Dict[str, Any]]:
        """One PreviewItem dict per base key."""
        return [s.to_preview_item() for s in self.surveys]

    @property
    def classifiable(self) -> List[PairedSurvey]:
        return [s for s in self.surveys if s.is_classifiable]


def ensure_compiled(rules: Union[Rules, CompiledRules, None]) -> CompiledRules:
    """Accept a rules document or compiled rules; None means built-in defaults."""
    if rules is None:
        rules = Rules.default()
    if isinstance(rules, CompiledRules):
        return rules
    return compile_rules(rules)


class SurveyOrchestrator:
    """
    Runs preview, tree and single-pair operations.

    Holds no state across runs besides the compiled rules and callbacks, so
    every run over the same inputs produces the same outputs.
    """

    def __init__(
        self,
        rules: Union[Rules, CompiledRules, None] = None,
        progress_callback: Optional[ProgressCallback] = None,
        max_workers: int = 1,
        cancel_event: Optional[threading.Event] = None,
        log_dir: Optional[Path] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            rules: Rules document or compiled rules (default: built-in rules)
            progress_callback: Called with a ProgressEvent per completed survey
            max_workers: Surveys classified concurrently
            cancel_event: Checked between surveys; set it to stop a run
            log_dir: Directory for the session log (None: no session log)

        Raises:
            ConfigError: if the rules do not compile
        """
        self.rules = ensure_compiled(rules)
        self.progress_callback = progress_callback
        self.max_workers = max(1, int(max_workers or 1))
        self.cancel_event = cancel_event
        self.log_dir = Path(log_dir) if log_dir else None

        self.extractor = IdentifierExtractor(self.rules)
        self.scanner = TreeScanner(self.rules, self.extractor)
        self.resolver = PairingResolver()
        self.classifier = ImageClassifier(self.rules, self.extractor)

        self.stage = RunStage.INIT
        self.action_logger: Optional[SurveyLabelerLogger] = None

    # === Helpers ===

    def _report_progress(self, event: ProgressEvent):
        """Report progress if callback is set."""
        if self.progress_callback:
            self.progress_callback(event)

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _open_action_logger(self):
        if self.log_dir:
            self.action_logger = SurveyLabelerLogger(self.log_dir)

    def _close_action_logger(self):
        if self.action_logger:
            self.action_logger.close()
            self.action_logger = None

    def _action(self, method: str, *args, **kwargs):
        """Forward to the session logger when one is open."""
        if self.action_logger:
            getattr(self.action_logger, method)(*args, **kwargs)

    def _record_problems(self, problems: List[ProblemRecord]):
        for p in problems:
            self._action('problem_recorded', p.survey_id_base, p.problem_type.value, p.details)

    # === Operations ===

    def preview(self, graded_root: Path, raw_root: Path) -> PreviewResult:
        """
        Scan both roots and pair them without classifying or writing.

        Raises:
            ScanError: if either root cannot be read
        """
        self.stage = RunStage.SCANNING
        self._action('stage_start', "SCANNING", f"raw={raw_root} graded={graded_root}")
        raw_scan = self.scanner.scan(raw_root, SurveySide.RAW)
        graded_scan = self.scanner.scan(graded_root, SurveySide.GRADED)
        for scan in (raw_scan, graded_scan):
            self._action('root_scanned', scan.side.value, scan.root,
                         len(scan.candidates), scan.files_accepted)
        self._action('stage_end', "SCANNING")

        self.stage = RunStage.PAIRING
        self._action('stage_start', "PAIRING")
        surveys = self.resolver.pair(raw_scan.candidates, graded_scan.candidates)
        problems = raw_scan.problems + graded_scan.problems
        for paired in surveys:
            self._action(
                'survey_paired', paired.base_key, paired.status.value,
                paired.raw.root if paired.raw else None,
                paired.graded.root if paired.graded else None,
            )
            if paired.problem:
                problems.append(paired.problem)
        self._record_problems(problems)
        self._action('stage_end', "PAIRING", f"{len(surveys)} base keys, {len(problems)} problems")
        return PreviewResult(surveys=surveys, problems=problems)

    def _classify_all(
        self,
        surveys: List[PairedSurvey],
    ) -> Tuple[Dict[str, List[ImageRecord]], bool]:
        """
        Classify every survey, sequentially or on a thread pool.

        Returns:
            (base key -> records for completed surveys, cancelled flag)
        """
        total = len(surveys)
        results: Dict[str, List[ImageRecord]] = {}
        lock = threading.Lock()
        processed = 0

        def work(paired: PairedSurvey):
            nonlocal processed
            if self._cancelled():
                return
            records = self.classifier.classify_survey(paired)
            with lock:
                processed += 1
                results[paired.base_key] = records
                yes = sum(1 for r in records if r.label is DolphinLabel.YES)
                ambiguous = [r for r in records if r.ambiguous]
                self._action('survey_classified', paired.base_key, len(records), yes,
                             len(ambiguous), processed, total)
                for r in ambiguous:
                    self._action('ambiguity_warning', paired.base_key, r.filename,
                                 r.graded_hits, r.winner_type)
                self._report_progress(ProgressEvent(paired.base_key, processed, total))

        if self.max_workers > 1 and total > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                list(executor.map(work, surveys))
        else:
            for paired in surveys:
                work(paired)

        cancelled = len(results) < total and self._cancelled()
        if cancelled:
            logger.warning(f"Run cancelled after {len(results)}/{total} surveys")
            self._action('run_cancelled', len(results), total)
        return results, cancelled

    def run_tree(
        self,
        graded_root: Path,
        raw_root: Path,
        output_dir: Path,
        options: Optional[TreeRunOptions] = None,
    ) -> RunSummary:
        """
        Scan, pair, classify and write the tree reports.

        Args:
            graded_root: Root of the graded tree
            raw_root: Root of the raw tree
            output_dir: Directory for the reports
            options: Output options (default: from config)

        Returns:
            RunSummary of the completed surveys

        Raises:
            ScanError: if either root cannot be read
            OutputWriteError: if a report cannot be written
        """
        options = options or TreeRunOptions.from_config()
        output_dir = Path(output_dir)
        self._open_action_logger()
        try:
            self._action('info', f"Tree run: raw={raw_root} graded={graded_root} output={output_dir}")
            previewed = self.preview(graded_root, raw_root)

            self.stage = RunStage.CLASSIFYING
            surveys = previewed.classifiable
            self._action('stage_start', "CLASSIFYING", f"{len(surveys)} surveys, workers={self.max_workers}")
            results, cancelled = self._classify_all(surveys)
            self._action('stage_end', "CLASSIFYING")

            self.stage = RunStage.WRITING
            self._action('stage_start', "WRITING", str(output_dir))
            records = [r for key in sorted(results) for r in results[key]]
            reports = ReportManager(output_dir)
            merged_path = None
            if options.write_merged:
                merged_path = reports.write_images(options.merged_filename, records)
                self._action('report_written', merged_path, len(records))
            if options.write_per_survey:
                paths = reports.write_per_survey(options.per_survey_dirname, results)
                for base_key, path in zip(sorted(results), paths):
                    self._action('report_written', path, len(results[base_key]))
            # Problems file last
            problems_path = reports.write_problems(options.problems_filename, previewed.problems)
            self._action('report_written', problems_path, len(previewed.problems))
            self._action('stage_end', "WRITING")

            summary = RunSummary.from_records(
                records,
                previewed.problems,
                processed_surveys=len(results),
                output_dir=output_dir,
                merged_csv_path=merged_path,
                problems_csv_path=problems_path,
                cancelled=cancelled,
            )
            self.stage = RunStage.CANCELLED if cancelled else RunStage.COMPLETED
            logger.info(str(summary))
            self._action('run_summary', summary)
            return summary
        except SurveyLabelerError as e:
            self.stage = RunStage.FAILED
            self._action('error', "Tree run failed", e)
            raise
        finally:
            self._close_action_logger()

    def resolve_base_key(
        self,
        graded_dir: Path,
        raw_dir: Path,
        survey_id_override: Optional[str] = None,
    ) -> str:
        """
        Base key of a single-pair run.

        The override wins verbatim; otherwise the graded directory name is
        tried before the raw one.

        Raises:
            SurveyIdError: if no base key can be derived
        """
        if survey_id_override and survey_id_override.strip():
            return survey_id_override.strip()
        for directory in (Path(graded_dir), Path(raw_dir)):
            base_key = self.extractor.identify(directory.name).base_key
            if base_key:
                return base_key
        raise SurveyIdError(
            f"Cannot derive a survey id from '{Path(graded_dir).name}' or "
            f"'{Path(raw_dir).name}'; provide an override"
        )

    def run_single_pair(
        self,
        graded_dir: Path,
        raw_dir: Path,
        output_dir: Path,
        survey_id_override: Optional[str] = None,
        options: Optional[SingleRunOptions] = None,
    ) -> RunSummary:
        """
        Classify one raw directory against one graded directory.

        Both directories are taken whole, nested survey ids included.
        Only the single output file is written.

        Raises:
            SurveyIdError: if no base key can be derived and none is given
            ScanError: if either directory cannot be read
            OutputWriteError: if the output file cannot be written
        """
        options = options or SingleRunOptions.from_config()
        output_dir = Path(output_dir)
        graded_dir = Path(graded_dir)
        raw_dir = Path(raw_dir)
        self._open_action_logger()
        try:
            base_key = self.resolve_base_key(graded_dir, raw_dir, survey_id_override)
            self._action('info', f"Single-pair run for {base_key}: raw={raw_dir} graded={graded_dir}")

            self.stage = RunStage.SCANNING
            raw_unit, raw_problems = self.scanner.collect_unit(
                raw_dir, SurveySide.RAW, base_key, self.extractor.detected_id(raw_dir.name))
            graded_unit, graded_problems = self.scanner.collect_unit(
                graded_dir, SurveySide.GRADED, base_key, self.extractor.detected_id(graded_dir.name))
            problems = raw_problems + graded_problems
            self._record_problems(problems)

            if self._cancelled():
                self.stage = RunStage.CANCELLED
                self._action('run_cancelled', 0, 1)
                return RunSummary.from_records(
                    [], problems, processed_surveys=0, output_dir=output_dir, cancelled=True)

            self.stage = RunStage.CLASSIFYING
            records = self.classifier.classify_units(base_key, raw_unit, graded_unit)
            yes = sum(1 for r in records if r.label is DolphinLabel.YES)
            self._action('survey_classified', base_key, len(records), yes,
                         sum(1 for r in records if r.ambiguous), 1, 1)
            self._report_progress(ProgressEvent(base_key, 1, 1))

            self.stage = RunStage.WRITING
            path = ReportManager(output_dir).write_images(options.output_filename, records)
            self._action('report_written', path, len(records))

            summary = RunSummary.from_records(
                records,
                problems,
                processed_surveys=1,
                output_dir=output_dir,
                merged_csv_path=path,
            )
            self.stage = RunStage.COMPLETED
            logger.info(str(summary))
            self._action('run_summary', summary)
            return summary
        except SurveyLabelerError as e:
            self.stage = RunStage.FAILED
            self._action('error', "Single-pair run failed", e)
            raise
        finally:
            self._close_action_logger()


def preview(
    graded_root: Path,
    raw_root: Path,
    rules: Union[Rules, CompiledRules, None] = None,
) -> List[Dict[str, Any]]:
    """Convenience function: PreviewItem dicts for two roots."""
    return SurveyOrchestrator(rules).preview(graded_root, raw_root).items()


def run_tree(
    graded_root: Path,
    raw_root: Path,
    output_dir: Path,
    options: Optional[TreeRunOptions] = None,
    rules: Union[Rules, CompiledRules, None] = None,
    progress_callback: Optional[ProgressCallback] = None,
    max_workers: int = 1,
    cancel_event: Optional[threading.Event] = None,
    log_dir: Optional[Path] = None,
) -> RunSummary:
    """Convenience function to run a tree labeling."""
    orchestrator = SurveyOrchestrator(
        rules,
        progress_callback=progress_callback,
        max_workers=max_workers,
        cancel_event=cancel_event,
        log_dir=log_dir,
    )
    return orchestrator.run_tree(graded_root, raw_root, output_dir, options)


def run_single_pair(
    graded_dir: Path,
    raw_dir: Path,
    output_dir: Path,
    survey_id_override: Optional[str] = None,
    options: Optional[SingleRunOptions] = None,
    rules: Union[Rules, CompiledRules, None] = None,
    progress_callback: Optional[ProgressCallback] = None,
    log_dir: Optional[Path] = None,
) -> RunSummary:
    """Convenience function to label a single raw/graded pair."""
    orchestrator = SurveyOrchestrator(rules, progress_callback=progress_callback, log_dir=log_dir)
    return orchestrator.run_single_pair(graded_dir, raw_dir, output_dir, survey_id_override, options)
