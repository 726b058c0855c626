#!/usr/bin/env python3
"""
Corpus model: normalized character n-gram statistics for a language.

A corpus holds three frequency tables, each normalized to proportions:

  - characters: single character -> frequency
  - bigrams:    ordered character pair -> frequency
  - trigrams:   ordered character triple -> frequency

Only observed n-grams are stored. Tables are read-only once built and are
shared by every evaluation and search run for the language.

Language data is read from a directory containing either

  <language>.json                 {"characters": {...}, "bigrams": {...}, "trigrams": {...}}
  <language>/letter_frequencies.csv, letter_pair_frequencies.csv, letter_triple_frequencies.csv

where language names use underscores in place of spaces.
"""

import json
import logging
import os
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional

from layout_engine.data_utils import (
    load_ngram_frequencies, normalize_frequencies, save_ngram_frequencies,
    validate_data_consistency,
)
from layout_engine.errors import LanguageNotFound, CorpusIOError
from layout_engine.text_utils import get_ngram_frequencies

logger = logging.getLogger(__name__)

CSV_FILES = {
    1: 'letter_frequencies.csv',
    2: 'letter_pair_frequencies.csv',
    3: 'letter_triple_frequencies.csv',
}
JSON_SECTIONS = {
    1: 'characters',
    2: 'bigrams',
    3: 'trigrams',
}
HIDDEN_LANGUAGES = {'test'}


def language_file_stem(language: str) -> str:
    """File name stem used for a language ('british english' -> 'british_english')."""
    return language.strip().replace(' ', '_')


class Corpus:
    """Immutable unigram, bigram and trigram frequency tables for one language."""

    def __init__(self,
                 language: str,
                 characters: Mapping[str, float],
                 bigrams: Mapping[str, float],
                 trigrams: Mapping[str, float]):
        """
        Build a corpus from frequency tables, normalizing each to proportions.

        Args:
            language: Language identifier
            characters: Character counts or frequencies
            bigrams: Character-pair counts or frequencies
            trigrams: Character-triple counts or frequencies

        Raises:
            ValueError: If no character has a positive frequency
        """
        self.language = language
        self._characters = MappingProxyType(normalize_frequencies(dict(characters), 1))
        self._bigrams = MappingProxyType(normalize_frequencies(dict(bigrams), 2))
        self._trigrams = MappingProxyType(normalize_frequencies(dict(trigrams), 3))

        if not self._characters:
            raise ValueError(f"Corpus for '{language}' has no character frequencies")

        self._alphabet = frozenset(self._characters)

    @classmethod
    def from_text(cls, language: str, text: str, **clean_options) -> 'Corpus':
        """
        Count n-grams in raw text and build a corpus.

        N-grams never span word boundaries or removed characters.

        Args:
            language: Language identifier
            text: Raw text
            **clean_options: Passed through to text_utils.clean_text_for_analysis
        """
        return cls(
            language,
            get_ngram_frequencies(text, 1, normalize=False, **clean_options),
            get_ngram_frequencies(text, 2, normalize=False, **clean_options),
            get_ngram_frequencies(text, 3, normalize=False, **clean_options),
        )

    @property
    def characters(self) -> Mapping[str, float]:
        return self._characters

    @property
    def bigrams(self) -> Mapping[str, float]:
        return self._bigrams

    @property
    def trigrams(self) -> Mapping[str, float]:
        return self._trigrams

    def table(self, n: int) -> Mapping[str, float]:
        """Frequency table for n-grams of length n (1, 2 or 3)."""
        if n == 1:
            return self._characters
        if n == 2:
            return self._bigrams
        if n == 3:
            return self._trigrams
        raise ValueError(f"No frequency table for {n}-grams")

    def frequency(self, ngram: str) -> float:
        """Frequency of an n-gram; unobserved n-grams have frequency 0."""
        if not 1 <= len(ngram) <= 3:
            return 0.0
        return self.table(len(ngram)).get(ngram, 0.0)

    def alphabet(self) -> FrozenSet[str]:
        """Set of characters with nonzero frequency."""
        return self._alphabet

    def key_alphabet(self, size: int, filler: str = '') -> List[str]:
        """
        Characters to place on a keyboard with `size` keys.

        Takes the `size` most frequent characters and, if the corpus has fewer,
        pads with filler characters that are not already included.

        Args:
            size: Number of key positions
            filler: Candidate padding characters, in order of preference

        Returns:
            List of exactly `size` distinct characters

        Raises:
            ValueError: If corpus and filler together have too few characters
        """
        chosen = list(self._characters)[:size]
        for char in filler:
            if len(chosen) >= size:
                break
            if char not in chosen:
                chosen.append(char)

        if len(chosen) < size:
            raise ValueError(
                f"Corpus '{self.language}' has {len(self._characters)} characters and "
                f"filler adds too few to fill {size} keys"
            )
        return chosen

    def validate(self, tolerance: float = 1e-6) -> List[str]:
        """Check that each non-empty table sums to 1 within tolerance."""
        issues = validate_data_consistency(dict(self._characters), 'characters', tolerance)
        for name, table in (('bigrams', self._bigrams), ('trigrams', self._trigrams)):
            if table:
                issues.extend(validate_data_consistency(dict(table), name, tolerance))
        return issues

    def to_dict(self) -> Dict[str, object]:
        """Serializable representation (the JSON language-data format)."""
        result: Dict[str, object] = {'language': self.language}
        for n, section in JSON_SECTIONS.items():
            result[section] = dict(self.table(n))
        return result

    # Read-only table proxies cannot be pickled; worker processes get plain dicts
    def __getstate__(self) -> Dict[str, object]:
        state = self.__dict__.copy()
        for key in ('_characters', '_bigrams', '_trigrams'):
            state[key] = dict(state[key])
        return state

    def __setstate__(self, state: Dict[str, object]) -> None:
        for key in ('_characters', '_bigrams', '_trigrams'):
            state[key] = MappingProxyType(state[key])
        self.__dict__.update(state)

    def __repr__(self) -> str:
        return (f"Corpus({self.language!r}, {len(self._characters)} characters, "
                f"{len(self._bigrams)} bigrams, {len(self._trigrams)} trigrams)")


def _load_json_corpus(language: str, path: Path) -> Corpus:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CorpusIOError(f"Could not read corpus file {path}: {e}")

    if not isinstance(data, dict):
        raise CorpusIOError(f"Corpus file {path} must contain a JSON object")

    tables = {}
    for n, section in JSON_SECTIONS.items():
        table = data.get(section) or {}
        if not isinstance(table, dict):
            raise CorpusIOError(f"Section '{section}' in {path} must be an object")
        # Keys differing only by case are summed, as in the CSV loader
        tables[n] = {}
        for k, v in table.items():
            key = str(k).lower()
            try:
                tables[n][key] = tables[n].get(key, 0.0) + float(v)
            except (TypeError, ValueError) as e:
                raise CorpusIOError(f"Invalid frequency in section '{section}' of {path}: {e}")

    try:
        return Corpus(language, tables[1], tables[2], tables[3])
    except ValueError as e:
        raise CorpusIOError(str(e))


def _load_csv_corpus(language: str, directory: Path) -> Corpus:
    tables = {}
    for n, filename in CSV_FILES.items():
        path = directory / filename
        if not path.exists():
            if n == 1:
                raise CorpusIOError(f"Missing {filename} in {directory}")
            tables[n] = {}
            continue
        try:
            tables[n] = load_ngram_frequencies(str(path), n)
        except (OSError, ValueError) as e:
            raise CorpusIOError(f"Could not read {path}: {e}")

    try:
        return Corpus(language, tables[1], tables[2], tables[3])
    except ValueError as e:
        raise CorpusIOError(str(e))


def load_corpus(language: str, data_dir: str) -> Corpus:
    """
    Load the corpus for a language from the language-data directory.

    Args:
        language: Language identifier (spaces allowed)
        data_dir: Directory holding language data

    Returns:
        Normalized, read-only Corpus

    Raises:
        LanguageNotFound: If no data exists for the language
        CorpusIOError: If the data exists but cannot be read
    """
    stem = language_file_stem(language)
    if not stem or os.sep in stem or stem.startswith('.'):
        raise LanguageNotFound(language, data_dir)

    base = Path(data_dir)
    json_path = base / f"{stem}.json"
    csv_dir = base / stem

    if json_path.is_file():
        corpus = _load_json_corpus(language, json_path)
    elif csv_dir.is_dir():
        corpus = _load_csv_corpus(language, csv_dir)
    else:
        raise LanguageNotFound(language, data_dir)

    logger.info(f"Loaded corpus for '{language}': {len(corpus.characters)} characters, "
                f"{len(corpus.bigrams)} bigrams, {len(corpus.trigrams)} trigrams")
    return corpus


def save_corpus(corpus: Corpus, data_dir: str, as_csv: bool = False) -> Path:
    """
    Write a corpus to the language-data directory.

    Args:
        corpus: Corpus to save
        data_dir: Directory holding language data
        as_csv: Write the CSV directory format instead of JSON

    Returns:
        Path of the written file or directory

    Raises:
        CorpusIOError: If the data cannot be written
    """
    base = Path(data_dir)
    stem = language_file_stem(corpus.language)

    try:
        base.mkdir(parents=True, exist_ok=True)
        if as_csv:
            directory = base / stem
            for n, filename in CSV_FILES.items():
                save_ngram_frequencies(dict(corpus.table(n)), str(directory / filename), n)
            logger.info(f"Saved corpus for '{corpus.language}' to {directory}")
            return directory

        path = base / f"{stem}.json"
        tmp_path = path.with_name(path.name + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(corpus.to_dict(), f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
    except OSError as e:
        raise CorpusIOError(f"Could not write corpus for '{corpus.language}' to {base}: {e}")

    logger.info(f"Saved corpus for '{corpus.language}' to {path}")
    return path


def available_languages(data_dir: str) -> List[str]:
    """
    List languages with data in the language-data directory.

    Args:
        data_dir: Directory holding language data

    Returns:
        Sorted language names with underscores shown as spaces
    """
    base = Path(data_dir)
    if not base.is_dir():
        return []

    languages = set()
    for entry in base.iterdir():
        if entry.is_file() and entry.suffix == '.json':
            name = entry.stem
        elif entry.is_dir() and (entry / CSV_FILES[1]).exists():
            name = entry.name
        else:
            continue
        if name in HIDDEN_LANGUAGES:
            continue
        languages.add(name.replace('_', ' '))

    return sorted(languages)
