#!/usr/bin/env python3
"""
Metric model for scoring keyboard layouts.

Each metric is a named, pure per-event cost function over key positions,
registered in METRIC_REGISTRY together with the n-gram order it reads:

  - order 1 (characters): cost of pressing one key
  - order 2 (bigrams):    cost of moving between two keys
  - order 3 (trigrams):   cost of a three-key sequence

A metric's raw value for a layout is the sum over the corpus table of
frequency x cost, with every character mapped to its key position. The total
score is the sum over metrics of weight x raw. Penalties take negative
weights and bonuses positive weights, so higher totals are better.

MetricModel compiles every metric's cost function into a numpy cost array
over positions (vector, matrix or cube) once per corpus and geometry, so
evaluating a layout is a gather and a dot product, and a key swap can be
re-scored from the n-grams that contain the swapped characters only.

N-grams with a character that is not on the layout map to an extra "void"
position whose costs are all zero, so they contribute nothing.
"""

import itertools
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import numpy as np

from layout_engine.corpus import Corpus
from layout_engine.geometry import Geometry, KeyPosition
from layout_engine.layout import Layout

logger = logging.getLogger(__name__)

UNMAPPED_METRIC = 'unmapped'


@dataclass(frozen=True)
class MetricSpec:
    """A registered metric: name, n-gram order and per-event cost function."""
    name: str
    order: int
    cost: Callable[..., float]
    description: str = ""


METRIC_REGISTRY: Dict[str, MetricSpec] = {}


def register_metric(name: str, order: int, description: str = ""):
    """
    Decorator registering a per-event cost function as a metric.

    Args:
        name: Metric name used in weight configurations
        order: N-gram order the metric reads (1, 2 or 3)
        description: One-line description for display

    Returns:
        Decorator that registers and returns the function unchanged
    """
    if order not in (1, 2, 3):
        raise ValueError(f"Metric order must be 1, 2 or 3: {order}")

    def decorator(func: Callable[..., float]) -> Callable[..., float]:
        if name in METRIC_REGISTRY or name == UNMAPPED_METRIC:
            raise ValueError(f"Metric '{name}' is already registered")
        METRIC_REGISTRY[name] = MetricSpec(name, order, func, description)
        return func

    return decorator


def available_metrics() -> List[str]:
    """Names of all registered metrics, in registration order."""
    return list(METRIC_REGISTRY)


#-----------------------------------------------------------------------------
# Built-in metric catalog
#-----------------------------------------------------------------------------
def _inward(a: KeyPosition, b: KeyPosition) -> bool:
    """Same-hand move toward the index finger."""
    return b.finger < a.finger


@register_metric('effort', 1, "Effort of the keys pressed")
def effort(a: KeyPosition) -> float:
    return a.effort


@register_metric('same_finger_bigram', 2, "Consecutive keys on the same finger")
def same_finger_bigram(a: KeyPosition, b: KeyPosition) -> float:
    if a.index != b.index and a.hand == b.hand and a.finger == b.finger:
        return 1.0
    return 0.0


@register_metric('lateral_stretch', 2, "Adjacent fingers stretched two or more columns apart")
def lateral_stretch(a: KeyPosition, b: KeyPosition) -> float:
    if a.hand == b.hand and abs(a.finger - b.finger) == 1 and abs(a.column - b.column) >= 2:
        return 1.0
    return 0.0


@register_metric('same_finger_skipgram', 3, "First and third key on the same finger")
def same_finger_skipgram(a: KeyPosition, b: KeyPosition, c: KeyPosition) -> float:
    if a.index != c.index and a.hand == c.hand and a.finger == c.finger:
        return 1.0
    return 0.0


@register_metric('alternation', 3, "Hands alternate on every key")
def alternation(a: KeyPosition, b: KeyPosition, c: KeyPosition) -> float:
    return 1.0 if a.hand != b.hand and b.hand != c.hand else 0.0


def _roll_pair(a: KeyPosition, b: KeyPosition, c: KeyPosition) -> Optional[Tuple[KeyPosition, KeyPosition]]:
    """The same-hand pair of a two-hands trigram, if its fingers differ."""
    if a.hand == b.hand and b.hand != c.hand:
        pair = (a, b)
    elif a.hand != b.hand and b.hand == c.hand:
        pair = (b, c)
    else:
        return None
    if pair[0].finger == pair[1].finger:
        return None
    return pair


@register_metric('inward_roll', 3, "Two keys on one hand rolling toward the index finger")
def inward_roll(a: KeyPosition, b: KeyPosition, c: KeyPosition) -> float:
    pair = _roll_pair(a, b, c)
    return 1.0 if pair is not None and _inward(*pair) else 0.0


@register_metric('outward_roll', 3, "Two keys on one hand rolling toward the pinky")
def outward_roll(a: KeyPosition, b: KeyPosition, c: KeyPosition) -> float:
    pair = _roll_pair(a, b, c)
    return 1.0 if pair is not None and not _inward(*pair) else 0.0


@register_metric('one_hand_run', 3, "Three keys on one hand in one direction")
def one_hand_run(a: KeyPosition, b: KeyPosition, c: KeyPosition) -> float:
    if not a.hand == b.hand == c.hand:
        return 0.0
    if a.finger > b.finger > c.finger or a.finger < b.finger < c.finger:
        return 1.0
    return 0.0


@register_metric('redirect', 3, "Three keys on one hand changing direction")
def redirect(a: KeyPosition, b: KeyPosition, c: KeyPosition) -> float:
    if not a.hand == b.hand == c.hand:
        return 0.0
    if (a.finger - b.finger) * (b.finger - c.finger) < 0:
        return 1.0
    return 0.0


#-----------------------------------------------------------------------------
# Results
#-----------------------------------------------------------------------------
@dataclass
class MetricBreakdown:
    """
    Scored metric breakdown of one layout.

    Holds the total weighted score and, per metric, the raw (unweighted)
    value and its weighted contribution.
    """

    total: float
    """Sum of weighted contributions (higher = better)"""

    raw: Dict[str, float] = field(default_factory=dict)
    """Unweighted value per metric"""

    weighted: Dict[str, float] = field(default_factory=dict)
    """Weight x raw per metric"""

    layout_name: Optional[str] = None

    def get_score(self, metric_name: Optional[str] = None, weighted: bool = True) -> float:
        """
        Get a metric's contribution or the total score.

        Args:
            metric_name: Metric to retrieve, or None for the total
            weighted: Return the weighted contribution instead of the raw value

        Returns:
            Requested score value

        Raises:
            KeyError: If metric_name not found
        """
        if metric_name is None:
            return self.total

        values = self.weighted if weighted else self.raw
        if metric_name not in values:
            available = list(values.keys())
            raise KeyError(f"Metric '{metric_name}' not found. Available: {available}")

        return values[metric_name]

    def delta(self, other: 'MetricBreakdown') -> 'MetricBreakdown':
        """
        Per-metric difference self - other.

        Metrics missing from one side count as zero there.
        """
        names = list(self.raw) + [name for name in other.raw if name not in self.raw]
        return MetricBreakdown(
            total=self.total - other.total,
            raw={name: self.raw.get(name, 0.0) - other.raw.get(name, 0.0) for name in names},
            weighted={name: self.weighted.get(name, 0.0) - other.weighted.get(name, 0.0)
                      for name in names},
        )

    def to_dict(self) -> Dict[str, float]:
        """Flat dictionary suitable for CSV export."""
        result = {'total': self.total}
        for name, value in self.raw.items():
            result[f'raw_{name}'] = value
        for name, value in self.weighted.items():
            result[f'weighted_{name}'] = value
        return result


#-----------------------------------------------------------------------------
# Compiled model
#-----------------------------------------------------------------------------
class MetricModel:
    """
    Evaluates layouts for one corpus, geometry and weight configuration.

    Construction compiles the corpus tables into integer n-gram arrays and
    every registered metric into a cost array over positions. The model is
    read-only afterwards and safe to share between search runs.
    """

    def __init__(self,
                 corpus: Corpus,
                 geometry: Geometry,
                 weights: Mapping[str, float],
                 unmapped_policy: str = 'skip'):
        """
        Compile the metric model.

        Args:
            corpus: Corpus statistics
            geometry: Key-position geometry
            weights: Metric name -> coefficient; unknown names are ignored,
                missing names weigh zero
            unmapped_policy: 'skip' (n-grams off the layout contribute zero) or
                'penalize' (also report the 'unmapped' metric)

        Raises:
            ValueError: If unmapped_policy is not recognized
        """
        if unmapped_policy not in ('skip', 'penalize'):
            raise ValueError(f"Unknown unmapped n-gram policy: {unmapped_policy}")

        self.corpus = corpus
        self.geometry = geometry
        self.unmapped_policy = unmapped_policy
        self.n_positions = len(geometry)
        self.void = self.n_positions

        self.specs: Dict[str, MetricSpec] = dict(METRIC_REGISTRY)
        self.metric_names: List[str] = list(self.specs)
        if unmapped_policy == 'penalize':
            self.metric_names.append(UNMAPPED_METRIC)

        unknown = [name for name in weights if name not in self.metric_names]
        if unknown:
            logger.warning(f"Ignoring weights for unknown metrics: {', '.join(sorted(unknown))}")
        self.weights: Dict[str, float] = {name: float(weights.get(name, 0.0))
                                          for name in self.metric_names}

        self._compile_ngrams()
        self._compile_costs()

    def _compile_ngrams(self) -> None:
        """Map characters to integer ids and each table to (ids, freqs) arrays."""
        chars: List[str] = []
        seen = set()
        for n in (1, 2, 3):
            for ngram in self.corpus.table(n):
                for char in ngram:
                    if char not in seen:
                        seen.add(char)
                        chars.append(char)
        self.char_ids: Dict[str, int] = {char: i for i, char in enumerate(chars)}
        self.n_chars = len(chars)

        self.ngram_ids: Dict[int, np.ndarray] = {}
        self.ngram_freqs: Dict[int, np.ndarray] = {}
        self._rows_by_char: Dict[int, List[np.ndarray]] = {}

        for n in (1, 2, 3):
            table = self.corpus.table(n)
            ids = np.array([[self.char_ids[c] for c in ngram] for ngram in table],
                           dtype=np.intp).reshape(len(table), n)
            freqs = np.fromiter(table.values(), dtype=np.float64, count=len(table))
            self.ngram_ids[n] = ids
            self.ngram_freqs[n] = freqs

            rows: List[List[int]] = [[] for _ in range(self.n_chars)]
            for row, ngram_ids in enumerate(ids):
                for char_id in set(ngram_ids.tolist()):
                    rows[char_id].append(row)
            self._rows_by_char[n] = [np.array(r, dtype=np.intp) for r in rows]

    def _compile_costs(self) -> None:
        """Evaluate every cost function on every position tuple."""
        self.cost_arrays: Dict[str, np.ndarray] = {}
        size = self.n_positions + 1
        positions = self.geometry.positions

        for name, spec in self.specs.items():
            costs = np.zeros((size,) * spec.order, dtype=np.float64)
            for combo in itertools.product(range(self.n_positions), repeat=spec.order):
                costs[combo] = spec.cost(*(positions[i] for i in combo))
            self.cost_arrays[name] = costs

        # Combined weighted cost per order, for fast scoring during search
        self.combined_costs: Dict[int, np.ndarray] = {}
        for n in (1, 2, 3):
            combined = np.zeros((size,) * n, dtype=np.float64)
            for name, spec in self.specs.items():
                weight = self.weights[name]
                if spec.order == n and weight != 0.0:
                    combined += weight * self.cost_arrays[name]
            self.combined_costs[n] = combined

    #-------------------------------------------------------------------------
    # Position vectors
    #-------------------------------------------------------------------------
    def position_vector(self, layout: Layout) -> np.ndarray:
        """
        Key position of every corpus character under a layout.

        Characters not on the layout get the void position.

        Raises:
            ValueError: If the layout size differs from the geometry
        """
        if len(layout) != self.n_positions:
            raise ValueError(
                f"Layout has {len(layout)} keys but the geometry has {self.n_positions}"
            )
        pos = np.full(self.n_chars, self.void, dtype=np.intp)
        for position, char in enumerate(layout):
            char_id = self.char_ids.get(char)
            if char_id is not None:
                pos[char_id] = position
        return pos

    def char_id(self, char: str) -> int:
        """Integer id of a character, or -1 when the corpus never uses it."""
        return self.char_ids.get(char, -1)

    #-------------------------------------------------------------------------
    # Scoring
    #-------------------------------------------------------------------------
    def _event_costs(self, costs: np.ndarray, n: int, pos: np.ndarray,
                     rows: Optional[np.ndarray] = None) -> np.ndarray:
        ids = self.ngram_ids[n] if rows is None else self.ngram_ids[n][rows]
        return costs[tuple(pos[ids].T)]

    def raw_scores(self, layout: Layout) -> Dict[str, float]:
        """
        Raw (unweighted) value of every metric for a layout.

        Sums use math.fsum so the result does not depend on summation order.
        """
        pos = self.position_vector(layout)
        raw: Dict[str, float] = {}

        for name, spec in self.specs.items():
            freqs = self.ngram_freqs[spec.order]
            if freqs.size == 0:
                raw[name] = 0.0
                continue
            events = self._event_costs(self.cost_arrays[name], spec.order, pos)
            raw[name] = math.fsum((freqs * events).tolist())

        if self.unmapped_policy == 'penalize':
            missing = [freq for char, freq in self.corpus.characters.items() if char not in layout]
            raw[UNMAPPED_METRIC] = math.fsum(missing)

        return raw

    def evaluate(self, layout: Layout) -> MetricBreakdown:
        """
        Full metric breakdown of a layout.

        Args:
            layout: Layout to score

        Returns:
            MetricBreakdown with total, raw and weighted values
        """
        raw = self.raw_scores(layout)
        weighted = {name: self.weights[name] * value for name, value in raw.items()}
        return MetricBreakdown(
            total=math.fsum(weighted.values()),
            raw=raw,
            weighted=weighted,
            layout_name=layout.name,
        )

    def score(self, layout: Layout) -> float:
        """Total weighted score of a layout (same value as evaluate().total)."""
        return self.evaluate(layout).total

    def fast_score(self, pos: np.ndarray) -> float:
        """
        Weighted score of a position vector from the combined cost arrays.

        Equal to score() up to floating-point rounding; used inside the
        search loop where only relative changes matter.
        """
        total = 0.0
        for n in (1, 2, 3):
            freqs = self.ngram_freqs[n]
            if freqs.size:
                total += float(np.dot(freqs, self._event_costs(self.combined_costs[n], n, pos)))
        return total

    def swap_delta(self, pos: np.ndarray,
                   char_a: int, key_a: int,
                   char_b: int, key_b: int) -> float:
        """
        Change in weighted score if two keys exchange their characters.

        Only n-grams containing either character are re-scored. `pos` is
        left unchanged.

        Args:
            pos: Position vector (see position_vector)
            char_a: Id of the character on key_a (-1 if unused by the corpus)
            key_a: First key position
            char_b: Id of the character on key_b (-1 if unused by the corpus)
            key_b: Second key position

        Returns:
            Score after the swap minus score before
        """
        affected = {}
        for n in (1, 2, 3):
            parts = [self._rows_by_char[n][c] for c in (char_a, char_b) if c >= 0]
            if not parts:
                continue
            rows = parts[0] if len(parts) == 1 else np.union1d(parts[0], parts[1])
            if rows.size:
                affected[n] = rows

        if not affected:
            return 0.0

        before = self._partial_score(pos, affected)
        self.apply_swap(pos, char_a, key_a, char_b, key_b)
        try:
            after = self._partial_score(pos, affected)
        finally:
            self.apply_swap(pos, char_a, key_b, char_b, key_a)

        return after - before

    @staticmethod
    def apply_swap(pos: np.ndarray, char_a: int, key_a: int, char_b: int, key_b: int) -> None:
        """Move char_a (on key_a) to key_b and char_b (on key_b) to key_a, in place."""
        if char_a >= 0:
            pos[char_a] = key_b
        if char_b >= 0:
            pos[char_b] = key_a

    def _partial_score(self, pos: np.ndarray, affected: Dict[int, np.ndarray]) -> float:
        total = 0.0
        for n, rows in affected.items():
            events = self._event_costs(self.combined_costs[n], n, pos, rows)
            total += float(np.dot(self.ngram_freqs[n][rows], events))
        return total


#-----------------------------------------------------------------------------
# Usage statistics
#-----------------------------------------------------------------------------
def hand_usage(layout: Layout, corpus: Corpus, geometry: Geometry) -> Dict[str, float]:
    """
    Share of character frequency typed by each hand.

    Characters not on the layout are not counted, so the shares sum to the
    layout's coverage of the corpus.
    """
    usage = {'L': 0.0, 'R': 0.0}
    for char, freq in corpus.characters.items():
        position = layout.position_of(char)
        if position is not None:
            usage[geometry[position].hand] += freq
    return usage


def finger_usage(layout: Layout, corpus: Corpus, geometry: Geometry) -> Dict[str, float]:
    """Share of character frequency typed by each finger, keyed like 'L4' (left pinky)."""
    usage: Dict[str, float] = {}
    for key in geometry:
        usage.setdefault(f"{key.hand}{key.finger}", 0.0)
    for char, freq in corpus.characters.items():
        position = layout.position_of(char)
        if position is not None:
            key = geometry[position]
            usage[f"{key.hand}{key.finger}"] += freq
    return usage
