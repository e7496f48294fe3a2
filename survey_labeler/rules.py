"""
Rules document handling for the survey labeler.

A Rules value is the user-editable matching policy, persisted as JSON.
Before any scan it is turned into a CompiledRules value: every pattern is
compiled once, extensions and tokens are normalised, and any invalid field
raises ConfigError.
"""
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple
from dataclasses import dataclass, field, asdict

from .config import DEFAULT_RULES, DEFAULT_IMAGE_ID_REGEX, WILDCARD_TOKEN
from .exceptions import ConfigError


logger = logging.getLogger(__name__)

REGEX_FIELDS = (
    'survey_id_regex_detected',
    'survey_id_regex_base',
    'image_id_regex',
    'graded_priority_ind_regex',
)

LIST_FIELDS = (
    'extensions',
    'graded_priority_secondary_tokens',
    'graded_negative_contains_any',
    'graded_positive_contains_any',
)


@dataclass
class Rules:
    """The rules document as loaded from or saved to disk."""
    extensions: List[str] = field(default_factory=list)
    survey_id_regex_detected: str = ''
    survey_id_regex_base: str = ''
    image_id_regex: str = DEFAULT_IMAGE_ID_REGEX
    graded_priority_ind_regex: str = ''
    graded_priority_secondary_tokens: List[str] = field(default_factory=list)
    graded_negative_contains_any: List[str] = field(default_factory=list)
    graded_positive_contains_any: List[str] = field(default_factory=list)

    @classmethod
    def default(cls) -> 'Rules':
        """Built-in default rules."""
        return cls.from_dict(DEFAULT_RULES)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Rules':
        """
        Build Rules from a parsed document.

        `image_id_regex` may be omitted and falls back to the default
        image-id pattern. Every other field is required.

        Raises:
            ConfigError: on a missing field or a value of the wrong type
        """
        if not isinstance(data, dict):
            raise ConfigError(f"rules document must be an object, got {type(data).__name__}")

        values: Dict[str, Any] = {}
        for name in REGEX_FIELDS:
            if name not in data:
                if name == 'image_id_regex':
                    values[name] = DEFAULT_IMAGE_ID_REGEX
                    continue
                raise ConfigError("missing field", name)
            if not isinstance(data[name], str):
                raise ConfigError("must be a string", name)
            values[name] = data[name]

        for name in LIST_FIELDS:
            if name not in data:
                raise ConfigError("missing field", name)
            items = data[name]
            if not isinstance(items, list) or not all(isinstance(i, str) for i in items):
                raise ConfigError("must be a list of strings", name)
            values[name] = list(items)

        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the persisted document shape."""
        return asdict(self)


@dataclass(frozen=True)
class CompiledRules:
    """Validated, immutable matchers built once per run."""
    extensions: FrozenSet[str]
    detected_re: re.Pattern
    base_re: re.Pattern
    image_id_re: re.Pattern
    ind_re: re.Pattern
    secondary_tokens: Tuple[str, ...]
    negative_tokens: Tuple[str, ...]
    positive_tokens: Tuple[str, ...]

    def accepts(self, path: Path) -> bool:
        """True if the file extension is one of the configured extensions."""
        return path.suffix.lower() in self.extensions


def normalize_extension(ext: str) -> str:
    """'JPG' / '.jpg ' -> '.jpg'"""
    trimmed = ext.strip().lower()
    if not trimmed:
        return ''
    return trimmed if trimmed.startswith('.') else f'.{trimmed}'


def normalize_tokens(tokens: List[str]) -> Tuple[str, ...]:
    """Trim and lower-case tokens, dropping empties. Order is kept."""
    return tuple(t.strip().lower() for t in tokens if t.strip())


def _compile(pattern: str, field_name: str) -> re.Pattern:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigError(f"invalid regular expression {pattern!r}: {e}", field_name) from e


def compile_rules(rules: Rules) -> CompiledRules:
    """
    Compile a Rules document.

    Args:
        rules: The rules document

    Returns:
        CompiledRules ready for scanning and classification

    Raises:
        ConfigError: if any pattern fails to compile or no extension is configured
    """
    extensions = frozenset(e for e in (normalize_extension(x) for x in rules.extensions) if e)
    if not extensions:
        raise ConfigError("at least one extension is required", 'extensions')

    compiled = CompiledRules(
        extensions=extensions,
        detected_re=_compile(rules.survey_id_regex_detected, 'survey_id_regex_detected'),
        base_re=_compile(rules.survey_id_regex_base, 'survey_id_regex_base'),
        image_id_re=_compile(rules.image_id_regex, 'image_id_regex'),
        ind_re=_compile(rules.graded_priority_ind_regex, 'graded_priority_ind_regex'),
        secondary_tokens=normalize_tokens(rules.graded_priority_secondary_tokens),
        negative_tokens=normalize_tokens(rules.graded_negative_contains_any),
        positive_tokens=normalize_tokens(rules.graded_positive_contains_any),
    )
    logger.debug(
        f"Compiled rules: {len(extensions)} extensions, "
        f"{len(compiled.secondary_tokens)} secondary / {len(compiled.negative_tokens)} negative / "
        f"{len(compiled.positive_tokens)} positive tokens"
    )
    return compiled


def token_hit(text_lower: str, tokens: Tuple[str, ...]) -> Optional[str]:
    """Return the first token (by list order) contained in text_lower, if any."""
    for token in tokens:
        if token == WILDCARD_TOKEN or token in text_lower:
            return token
    return None


def load_rules(path: Path) -> Rules:
    """
    Load a rules document from a JSON file.

    Raises:
        ConfigError: if the file cannot be read or parsed
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read rules file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"malformed rules file {path}: {e}") from e

    rules = Rules.from_dict(data)
    logger.info(f"Loaded rules from {path}")
    return rules


def save_rules(rules: Rules, path: Path) -> Rules:
    """Save a rules document as pretty-printed JSON. The rules are validated first."""
    compile_rules(rules)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(rules.to_dict(), f, indent=2, ensure_ascii=False)
    logger.info(f"Saved rules to {path}")
    return rules


def reset_rules(path: Path) -> Rules:
    """Overwrite the rules file with the built-in defaults."""
    return save_rules(Rules.default(), path)
