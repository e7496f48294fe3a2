"""
Survey Labeler
==============

Pairs raw survey image folders with the graded folders produced by human
reviewers and labels every raw image as Dolphin yes/no.

Modules:
- config: Configuration settings and default rules
- exceptions: Error hierarchy
- rules: Rules document load/save and compiled matchers
- pattern_extractor: Survey base key, detected id and image id extraction
- file_scanner: Tree scanning into survey units
- pairing: Raw/graded pairing by base key
- classifier: Per-image Dolphin classification
- records: Image/problem records, run summary, progress events
- report_manager: CSV report writing
- logger_module: Structured logging
- main_orchestrator: Preview, tree and single-pair runs
- checker: Verification of finished runs
- sample_data: Sample tree generator
"""

from .config import Config, config, DEFAULT_RULES, IMAGE_COLUMNS, PROBLEM_COLUMNS
from .exceptions import (
    SurveyLabelerError, ConfigError, ScanError, SurveyIdError, OutputWriteError
)
from .rules import (
    Rules, CompiledRules, compile_rules, load_rules, save_rules, reset_rules
)
from .pattern_extractor import IdentifierExtractor, SurveyIdentity
from .file_scanner import TreeScanner, SurveyUnit, SurveySide, ScanResult
from .pairing import PairingResolver, PairedSurvey, PairingStatus
from .classifier import ImageClassifier, Classification
from .records import (
    DolphinLabel, ProblemType, ProblemRecord, ImageRecord, ProgressEvent, RunSummary
)
from .report_manager import ReportManager
from .logger_module import SurveyLabelerLogger, LogAction
from .main_orchestrator import (
    SurveyOrchestrator, RunStage, TreeRunOptions, SingleRunOptions, PreviewResult,
    preview, run_tree, run_single_pair
)
from .checker import ReportChecker, CheckReport
from .sample_data import create_sample_data

__version__ = "0.1.0"
__all__ = [
    'Config', 'config', 'DEFAULT_RULES', 'IMAGE_COLUMNS', 'PROBLEM_COLUMNS',
    'SurveyLabelerError', 'ConfigError', 'ScanError', 'SurveyIdError', 'OutputWriteError',
    'Rules', 'CompiledRules', 'compile_rules', 'load_rules', 'save_rules', 'reset_rules',
    'IdentifierExtractor', 'SurveyIdentity',
    'TreeScanner', 'SurveyUnit', 'SurveySide', 'ScanResult',
    'PairingResolver', 'PairedSurvey', 'PairingStatus',
    'ImageClassifier', 'Classification',
    'DolphinLabel', 'ProblemType', 'ProblemRecord', 'ImageRecord', 'ProgressEvent', 'RunSummary',
    'ReportManager',
    'SurveyLabelerLogger', 'LogAction',
    'SurveyOrchestrator', 'RunStage', 'TreeRunOptions', 'SingleRunOptions', 'PreviewResult',
    'preview', 'run_tree', 'run_single_pair',
    'ReportChecker', 'CheckReport',
    'create_sample_data',
]
