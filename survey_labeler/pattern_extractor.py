"""
Identifier Extraction Module for the survey labeler.
Derives survey base keys, detected survey ids and per-image ids from
directory names and filenames. Purely regex based, no filesystem access.
"""
import re
from pathlib import Path
from typing import Optional
from dataclasses import dataclass

from .rules import CompiledRules


def first_capture(pattern: re.Pattern, text: str) -> Optional[str]:
    """
    Apply a pattern to text.

    Returns the first capture group when the pattern defines one, else the
    whole match. Returns None when the pattern does not match or the
    extracted value is empty.
    """
    m = pattern.search(text)
    if not m:
        return None
    value = m.group(1) if pattern.groups >= 1 else m.group(0)
    return value or None


@dataclass(frozen=True)
class SurveyIdentity:
    """Identifiers derived from one survey directory name."""
    base_key: Optional[str]
    detected_id: Optional[str]


class IdentifierExtractor:
    """
    Extracts the three identifiers used for matching.

    - base key: canonical pairing key, upper-cased
    - detected id: the survey id as written, for diagnostics
    - image id: per-image correlation id, lower-cased
    """

    def __init__(self, rules: CompiledRules):
        self.rules = rules

    def detected_id(self, dir_name: str) -> Optional[str]:
        """Detected survey id from a directory name."""
        return first_capture(self.rules.detected_re, dir_name)

    def base_key(self, dir_name: str, detected_id: Optional[str] = None) -> Optional[str]:
        """
        Base key for a directory name.

        The base pattern is applied to the detected id when there is one,
        otherwise to the directory name itself.
        """
        value = None
        if detected_id:
            value = first_capture(self.rules.base_re, detected_id)
        if value is None:
            value = first_capture(self.rules.base_re, dir_name)
        return value.upper() if value else None

    def identify(self, dir_name: str) -> SurveyIdentity:
        """Both survey identifiers for a directory name."""
        detected = self.detected_id(dir_name)
        return SurveyIdentity(base_key=self.base_key(dir_name, detected), detected_id=detected)

    def image_id(self, filename: str) -> Optional[str]:
        """Image id from a filename; the extension is ignored."""
        stem = Path(filename).stem
        value = first_capture(self.rules.image_id_re, stem)
        return value.lower() if value else None
