#!/usr/bin/env python3
"""
Persistent store of named layouts, one CSV file per language.

Each language's layouts live in <layouts_dir>/<language>.csv:

    name,layout
    qwerty,"qwertyuiopasdfghjkl;zxcvbnm,./"

Saving under an existing name overwrites that record. Every write replaces
the whole file atomically (temporary file + os.replace), so a failed save
leaves both the file and the in-memory records as they were.

Records that do not decode for the current geometry and alphabet are hidden
from lookup and rank but kept verbatim, and written back on every save.
"""

import csv
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from layout_engine.corpus import language_file_stem
from layout_engine.errors import LayoutNotFound, ParseError, StoreIOError
from layout_engine.layout import Layout
from layout_engine.metrics import MetricBreakdown, MetricModel

logger = logging.getLogger(__name__)

FIELDNAMES = ['name', 'layout']
SYNTHETIC_NAME_PREFIX = 'layout_'


@dataclass(frozen=True)
class LayoutComparison:
    """Side-by-side metric breakdowns of two stored layouts."""
    name1: str
    name2: str
    breakdown1: MetricBreakdown
    breakdown2: MetricBreakdown
    delta: MetricBreakdown
    """breakdown1 - breakdown2, per metric"""


class LayoutStore:
    """
    Named layouts of one language, scored with the session's metric model.
    """

    def __init__(self,
                 language: str,
                 layouts_dir: str,
                 model: MetricModel,
                 alphabet: Optional[Iterable[str]] = None):
        """
        Open the store for a language, reading existing records.

        Args:
            language: Language identifier
            layouts_dir: Directory holding the per-language CSV files
            model: Metric model used by rank, compare and analyze
            alphabet: Characters a stored layout may contain (None = any)

        Raises:
            StoreIOError: If an existing store file cannot be read
        """
        self.language = language
        self.model = model
        self.path = Path(layouts_dir) / f"{language_file_stem(language)}.csv"
        self._alphabet = frozenset(alphabet) if alphabet is not None else None
        self._lock = threading.RLock()
        self._records, self._undecodable = self._read()

    @classmethod
    def for_session(cls, session, layouts_dir: str) -> 'LayoutStore':
        """Open the store matching a search session's language, model and alphabet."""
        return cls(session.language, layouts_dir, session.model, session.valid_characters())

    #-------------------------------------------------------------------------
    # Disk I/O
    #-------------------------------------------------------------------------
    def _read(self) -> Tuple[Dict[str, Layout], Dict[str, str]]:
        """Read the store file into decoded records and raw undecodable rows."""
        if not self.path.exists():
            logger.debug(f"No layout store at {self.path}, starting empty")
            return {}, {}

        try:
            with open(self.path, 'r', encoding='utf-8', newline='') as f:
                reader = csv.DictReader(f)
                fieldnames = reader.fieldnames or []
                rows = list(reader)
        except (OSError, csv.Error, UnicodeDecodeError) as e:
            raise StoreIOError(f"Could not read layout store {self.path}: {e}")

        missing = [col for col in FIELDNAMES if col not in fieldnames]
        if missing:
            raise StoreIOError(f"Layout store {self.path} is missing columns: {missing}")

        records: Dict[str, Layout] = {}
        undecodable: Dict[str, str] = {}
        for row in rows:
            name = row['name']
            text = row['layout'] or ''
            try:
                records[name] = Layout.decode(text, self.model.n_positions,
                                              self._alphabet, name=name)
                undecodable.pop(name, None)
            except ParseError as e:
                logger.warning(f"Skipping stored layout '{name}' (kept in {self.path.name}): {e}")
                records.pop(name, None)
                undecodable[name] = text

        logger.info(f"Loaded {len(records)} layouts for '{self.language}' from {self.path}")
        return records, undecodable

    def _write(self, records: Dict[str, Layout]) -> None:
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8', newline='') as f:
                writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
                writer.writeheader()
                for name, layout in records.items():
                    writer.writerow({'name': name, 'layout': layout.encode()})
                for name, text in self._undecodable.items():
                    if name not in records:
                        writer.writerow({'name': name, 'layout': text})
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path.exists():
                tmp_path.unlink()
            raise StoreIOError(f"Could not write layout store {self.path}: {e}")

    def reload(self) -> None:
        """Discard in-memory records and read the store file again."""
        records, undecodable = self._read()
        with self._lock:
            self._records, self._undecodable = records, undecodable

    #-------------------------------------------------------------------------
    # Records
    #-------------------------------------------------------------------------
    def _next_name(self) -> str:
        n = 1
        while (f"{SYNTHETIC_NAME_PREFIX}{n}" in self._records
               or f"{SYNTHETIC_NAME_PREFIX}{n}" in self._undecodable):
            n += 1
        return f"{SYNTHETIC_NAME_PREFIX}{n}"

    def save(self, layout: Layout, name: Optional[str] = None) -> str:
        """
        Persist a layout under a name, overwriting any record with that name.

        Args:
            layout: Layout to store
            name: Record name (None or blank = next free 'layout_<n>')

        Returns:
            Name the layout was stored under

        Raises:
            ValueError: If the layout does not fit the model's geometry
            ParseError: If the layout holds characters outside the store's alphabet
            StoreIOError: If the store file cannot be written
        """
        if len(layout) != self.model.n_positions:
            raise ValueError(
                f"Layout has {len(layout)} keys but the geometry has {self.model.n_positions}"
            )
        if self._alphabet is not None:
            invalid = layout.alphabet() - self._alphabet
            if invalid:
                raise ParseError(
                    f"Layout contains characters outside the '{self.language}' alphabet: "
                    f"{''.join(sorted(invalid))!r}"
                )

        with self._lock:
            if name is not None:
                name = name.strip()
            if not name:
                name = self._next_name()

            records = dict(self._records)
            records[name] = layout.with_name(name)
            self._write(records)
            self._records = records
            self._undecodable.pop(name, None)

        logger.info(f"Saved layout '{name}' for '{self.language}': {layout.encode()}")
        return name

    def lookup(self, name: str) -> Optional[Layout]:
        """Stored layout with this name, or None."""
        with self._lock:
            return self._records.get(name)

    def get(self, name: str) -> Layout:
        """
        Stored layout with this name.

        Raises:
            LayoutNotFound: If no layout has this name
        """
        layout = self.lookup(name)
        if layout is None:
            raise LayoutNotFound(name, self.language)
        return layout

    def names(self) -> List[str]:
        """Stored layout names, in storage order."""
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._records

    #-------------------------------------------------------------------------
    # Scoring
    #-------------------------------------------------------------------------
    def rank(self) -> List[Tuple[str, float]]:
        """
        Score every stored layout.

        Returns:
            (name, score) pairs by score descending, ties by name ascending
        """
        with self._lock:
            records = list(self._records.items())
        scored = [(name, self.model.score(layout)) for name, layout in records]
        scored.sort(key=lambda item: (-item[1], item[0]))
        return scored

    def analyze(self, name: str) -> MetricBreakdown:
        """
        Metric breakdown of one stored layout.

        Raises:
            LayoutNotFound: If no layout has this name
        """
        return self.model.evaluate(self.get(name))

    def compare(self, name1: str, name2: str) -> LayoutComparison:
        """
        Compare two stored layouts metric by metric.

        Args:
            name1: First layout name
            name2: Second layout name

        Returns:
            LayoutComparison with delta = breakdown1 - breakdown2

        Raises:
            LayoutNotFound: Naming the first name that is not stored
        """
        layout1 = self.get(name1)
        layout2 = self.get(name2)
        breakdown1 = self.model.evaluate(layout1)
        breakdown2 = self.model.evaluate(layout2)
        return LayoutComparison(
            name1=name1,
            name2=name2,
            breakdown1=breakdown1,
            breakdown2=breakdown2,
            delta=breakdown1.delta(breakdown2),
        )
