"""Markov chain county names.

Names are built from a syllable chain trained on a list of shire and
county style place names. Generation draws only from the ``SeededRandom``
it is given, so a dedicated stream keeps naming from perturbing the map.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from .random import SeededRandom

COUNTY_NAME_BASE = [
    "Ashford", "Barrowmere", "Bramley", "Caldwell", "Carrick", "Dunmore",
    "Eastwold", "Elmstead", "Fenwick", "Galloway", "Glenholm", "Harrowdale",
    "Hollins", "Ivybridge", "Kelsing", "Kenmare", "Langdon", "Lindale",
    "Marlow", "Merrow", "Norbury", "Oakhurst", "Pendle", "Ravensby",
    "Redmarsh", "Rothwell", "Selwood", "Stanmore", "Tarrant", "Thornbury",
    "Ulverly", "Wexcombe", "Whitmore", "Wickham", "Winslow", "Yarrow",
]

COUNTY_SUFFIXES = ["", "", "", "shire", "", "mark", "", "dale"]

_SYLLABLE = re.compile(r"[^aeiouy]*[aeiouy]+(?:[^aeiouy](?=[^aeiouy]))?")


@dataclass
class MarkovChain:
    """Syllable transitions; "" is both the start and the end token."""

    data: Dict[str, List[str]]

    @classmethod
    def from_names(cls, names: List[str]) -> MarkovChain:
        chain: Dict[str, List[str]] = {}

        for name in names:
            if not name:
                continue

            prev = ""
            for syllable in cls.split_syllables(name.lower()):
                chain.setdefault(prev, []).append(syllable)
                prev = syllable
            chain.setdefault(prev, []).append("")

        return cls(data=chain)

    @staticmethod
    def split_syllables(name: str) -> List[str]:
        """Split into consonant-vowel groups; trailing consonants join the last group."""
        syllables = _SYLLABLE.findall(name)
        consumed = sum(len(s) for s in syllables)
        if consumed < len(name):
            rest = name[consumed:]
            if syllables:
                syllables[-1] += rest
            else:
                syllables.append(rest)
        return syllables


class CountyNameGenerator:
    """Generates unique county names from a Markov chain."""

    def __init__(
        self,
        random: SeededRandom,
        names: Optional[List[str]] = None,
        min_length: int = 4,
        max_length: int = 11,
    ):
        self.random = random
        self.chain = MarkovChain.from_names(names or COUNTY_NAME_BASE)
        self.min_length = min_length
        self.max_length = max_length
        self.used: Set[str] = set()

    def generate(self, max_attempts: int = 20) -> str:
        """Return a capitalized name not handed out before by this generator."""
        name = ""
        for _ in range(max_attempts):
            name = self._process_name(self._generate_attempt())
            if self.min_length <= len(name) <= self.max_length and name not in self.used:
                break
        else:
            name = name or self._fallback_name()
            suffix = 2
            base = name
            while name in self.used:
                name = f"{base} {suffix}"
                suffix += 1

        self.used.add(name)
        return name

    def _generate_attempt(self) -> str:
        data = self.chain.data
        result = ""
        current = ""

        for _ in range(20):
            options = data.get(current)
            if not options:
                break

            syllable = self.random.choice(options)
            if syllable == "":
                if len(result) >= self.min_length:
                    break
                # Too short, restart
                current = ""
                result = ""
                continue

            if len(result) + len(syllable) > self.max_length:
                break

            result += syllable
            current = syllable

        if result and len(result) < self.max_length - 4:
            result += self.random.choice(COUNTY_SUFFIXES)
        return result

    @staticmethod
    def _process_name(name: str) -> str:
        """Capitalize and drop tripled letters."""
        if not name:
            return ""

        chars: List[str] = []
        for char in name:
            if len(chars) >= 2 and char == chars[-1] == chars[-2]:
                continue
            chars.append(char)
        return "".join(chars).capitalize()

    def _fallback_name(self) -> str:
        syllables = sorted({s for options in self.chain.data.values() for s in options if s})
        return self.random.choice(syllables).capitalize()
