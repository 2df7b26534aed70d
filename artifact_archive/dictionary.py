"""Dictionary (delta) compression for groups of similar text files.

Files are grouped by extension in the order they are visited. Once a group
holds enough members, the most frequent import statements and function
signatures of the group are joined into a dictionary that is prepended to the
content before compression. The prefix is stored in the record and stripped
again on extraction.
"""

from __future__ import annotations

import logging
import os
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .codecs import Codec

logger = logging.getLogger(__name__)

MIN_GROUP_SIZE = 3
MAX_PATTERNS = 50

_PATTERN_RES = [
    # import("x") / require('x')
    re.compile(r'(?:import|require)\s*\([^)]+\)'),
    # import { a } from 'x'
    re.compile(r'^[ \t]*import\s+[^;\n]+?\s+from\s+[\'"][^\'"\n]+[\'"]', re.MULTILINE),
    # function name(args)
    re.compile(r'function\s+\w+\s*\([^)]*\)'),
]


def extract_patterns(content: str) -> List[str]:
    """Return every dictionary-worthy substring of ``content`` in match order."""
    found = []
    for pattern in _PATTERN_RES:
        found.extend(match.strip() for match in pattern.findall(content))
    return found


def create_dictionary(contents: Iterable[str], max_patterns: int = MAX_PATTERNS) -> str:
    """Build a dictionary from the most frequent patterns across ``contents``."""
    counts: Counter = Counter()
    for content in contents:
        counts.update(extract_patterns(content))
    return "\n".join(pattern for pattern, _ in counts.most_common(max_patterns))


@dataclass
class Dictionary:
    """Build-time state for one extension group."""

    extension: str
    source_texts: List[str] = field(default_factory=list)
    pattern_counts: Counter = field(default_factory=Counter)

    def add(self, content: str) -> None:
        self.source_texts.append(content)
        self.pattern_counts.update(extract_patterns(content))

    @property
    def derived_patterns(self) -> List[str]:
        return [pattern for pattern, _ in self.pattern_counts.most_common(MAX_PATTERNS)]

    @property
    def text(self) -> str:
        return "\n".join(self.derived_patterns)

    def __len__(self) -> int:
        return len(self.source_texts)


@dataclass
class DictionaryResult:
    compressed: bytes
    dictionary: str


class DictionaryOptimizer:
    """Groups text files by extension and tries dictionary compression.

    One optimizer lives for exactly one build. Failures never propagate: the
    caller simply gets no dictionary benefit.
    """

    def __init__(self, min_group_size: int = MIN_GROUP_SIZE):
        self.min_group_size = min_group_size
        self.groups: Dict[str, Dictionary] = {}

    def add(self, relative_path: str, content: str) -> Dictionary:
        """Register ``content`` in the group for its extension."""
        ext = os.path.splitext(relative_path)[1]
        group = self.groups.get(ext)
        if group is None:
            group = self.groups[ext] = Dictionary(extension=ext)
        group.add(content)
        return group

    def try_compress(
        self,
        content: str,
        relative_path: str,
        codec: Codec,
        level: int,
    ) -> Optional[DictionaryResult]:
        """Compress ``dictionary + "\\n" + content`` when a dictionary is available.

        Returns:
            The dictionary-enhanced payload, or None when the group is still
            too small, no patterns were found, or anything went wrong.
        """
        try:
            group = self.add(relative_path, content)
            if len(group) < self.min_group_size:
                return None

            dictionary = group.text
            if not dictionary:
                return None

            enhanced = (dictionary + "\n" + content).encode("utf-8")
            return DictionaryResult(
                compressed=codec.compress(enhanced, level),
                dictionary=dictionary,
            )
        except Exception as exc:
            logger.debug("Dictionary compression failed for %s: %s", relative_path, exc)
            return None
