#!/usr/bin/env python3
"""
Search engine: generate and improve layouts with simulated annealing.

A search session is built per language from its corpus and a weight
configuration. Each generation call runs many independent annealing runs:

  1. Start from a random assignment of the language's key alphabet
     (generate) or from a given layout (improve).
  2. Repeatedly propose swapping the characters of two random keys. Keep the
     swap if the score improves; otherwise keep it with probability
     exp(delta / T), where the temperature T = T0 * cooling_rate**step.
  3. Stop after a fixed number of iterations, or once no new best layout has
     been found for stall_limit iterations. The run returns its best layout.

Runs share only read-only state (the compiled metric model) and each owns its
random generator, spawned from one numpy SeedSequence, so results do not
depend on how runs are scheduled across workers. The best candidates (at most
10) replace the session's candidate list only when the whole call succeeds.
"""

import logging
import math
import threading
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from layout_engine.config_loader import load_config
from layout_engine.corpus import Corpus, load_corpus
from layout_engine.errors import IndexOutOfRange, NoCandidatesYet, SearchCancelled
from layout_engine.geometry import Geometry, geometry_from_config, standard_geometry
from layout_engine.layout import Layout
from layout_engine.metrics import MetricBreakdown, MetricModel

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 10

# Improvements smaller than this are rounding noise from incremental deltas
SCORE_EPSILON = 1e-12


@dataclass(frozen=True)
class AnnealingSchedule:
    """Iteration budget and cooling schedule of one annealing run."""
    iterations: int = 5000
    stall_limit: int = 1500
    cooling_rate: float = 0.999
    initial_temperature: Optional[float] = None
    calibration_samples: int = 200
    initial_acceptance: float = 0.8

    def __post_init__(self):
        if self.iterations < 0:
            raise ValueError(f"iterations must be non-negative: {self.iterations}")
        if self.stall_limit < 1:
            raise ValueError(f"stall_limit must be positive: {self.stall_limit}")
        if not 0 < self.cooling_rate <= 1:
            raise ValueError(f"cooling_rate must be in (0, 1]: {self.cooling_rate}")
        if self.initial_temperature is not None and self.initial_temperature <= 0:
            raise ValueError(f"initial_temperature must be positive: {self.initial_temperature}")
        if not 0 < self.initial_acceptance < 1:
            raise ValueError(f"initial_acceptance must be in (0, 1): {self.initial_acceptance}")

    @classmethod
    def from_config(cls, search_config: Mapping[str, Any]) -> 'AnnealingSchedule':
        """Build a schedule from the search section of a configuration."""
        defaults = cls()
        temperature = search_config.get('initial_temperature')
        return cls(
            iterations=int(search_config.get('iterations', defaults.iterations)),
            stall_limit=int(search_config.get('stall_limit', defaults.stall_limit)),
            cooling_rate=float(search_config.get('cooling_rate', defaults.cooling_rate)),
            initial_temperature=None if temperature is None else float(temperature),
        )

    def temperature(self, t0: float, step: int) -> float:
        """Temperature at a given step for starting temperature t0."""
        return t0 * self.cooling_rate ** step


@dataclass(frozen=True)
class Candidate:
    """A layout produced by one search run, with its total score."""
    layout: Layout
    score: float
    run: int


#-----------------------------------------------------------------------------
# Single annealing run
#-----------------------------------------------------------------------------
def _calibrate_temperature(model: MetricModel,
                           pos: np.ndarray,
                           ids: List[int],
                           free: Sequence[int],
                           schedule: AnnealingSchedule,
                           rng: np.random.Generator) -> float:
    """
    Starting temperature at which a median worsening swap is accepted with
    probability schedule.initial_acceptance.
    """
    deltas = []
    for _ in range(schedule.calibration_samples):
        a, b = _pick_pair(free, rng)
        delta = model.swap_delta(pos, ids[a], a, ids[b], b)
        if delta != 0.0:
            deltas.append(abs(delta))

    if not deltas:
        return 0.0

    median_delta = float(np.median(deltas))
    return -median_delta / math.log(schedule.initial_acceptance)


def _pick_pair(free: Sequence[int], rng: np.random.Generator) -> Tuple[int, int]:
    """Two distinct key positions drawn uniformly from the free positions."""
    n = len(free)
    first = int(rng.integers(n))
    second = int(rng.integers(n - 1))
    if second >= first:
        second += 1
    return free[first], free[second]


def anneal(model: MetricModel,
           start: Sequence[str],
           free: Sequence[int],
           schedule: AnnealingSchedule,
           rng: np.random.Generator,
           shuffle: bool = False,
           cancel: Optional[threading.Event] = None) -> Layout:
    """
    Run one simulated-annealing search.

    Only characters on free positions ever move.

    Args:
        model: Compiled metric model
        start: Starting characters, one per key position
        free: Key positions that may be swapped
        schedule: Iteration budget and cooling schedule
        rng: Random generator owned by this run
        shuffle: Randomly reassign the characters on free positions first
        cancel: Event checked between iterations

    Returns:
        Best layout seen during the run

    Raises:
        SearchCancelled: If cancel is set before the run finishes
    """
    chars = list(start)
    free = list(free)

    if shuffle and len(free) > 1:
        order = rng.permutation(len(free))
        moved = [chars[free[k]] for k in order]
        for key, char in zip(free, moved):
            chars[key] = char

    if len(free) < 2:
        return Layout(chars)

    pos = model.position_vector(Layout(chars))
    ids = [model.char_id(char) for char in chars]

    current = model.fast_score(pos)
    best = current
    best_chars = list(chars)

    t0 = schedule.initial_temperature
    if t0 is None:
        t0 = _calibrate_temperature(model, pos, ids, free, schedule, rng)

    stall = 0
    for step in range(schedule.iterations):
        if cancel is not None and cancel.is_set():
            raise SearchCancelled()

        a, b = _pick_pair(free, rng)
        delta = model.swap_delta(pos, ids[a], a, ids[b], b)

        accept = delta > 0
        if not accept:
            temperature = schedule.temperature(t0, step)
            if temperature > 0:
                accept = rng.random() < math.exp(delta / temperature)

        if accept:
            model.apply_swap(pos, ids[a], a, ids[b], b)
            ids[a], ids[b] = ids[b], ids[a]
            chars[a], chars[b] = chars[b], chars[a]
            current += delta

        if current > best + SCORE_EPSILON:
            best = current
            best_chars = list(chars)
            stall = 0
        else:
            stall += 1
            if stall >= schedule.stall_limit:
                break

    return Layout(best_chars)


# Metric model of a worker process, installed once by the pool initializer
_worker_model: Optional[MetricModel] = None


def _init_worker(model: MetricModel) -> None:
    global _worker_model
    _worker_model = model


def _run_in_worker(start: Sequence[str],
                   free: Sequence[int],
                   schedule: AnnealingSchedule,
                   seed: np.random.SeedSequence,
                   shuffle: bool) -> Layout:
    return anneal(_worker_model, start, free, schedule, np.random.default_rng(seed), shuffle)


#-----------------------------------------------------------------------------
# Session
#-----------------------------------------------------------------------------
class SearchSession:
    """
    Layout search for one language and weight configuration.

    Owns the transient list of candidates from the most recent generate or
    improve call, addressable by rank (0 = best).
    """

    def __init__(self,
                 corpus: Corpus,
                 weights: Mapping[str, float],
                 geometry: Optional[Geometry] = None,
                 schedule: Optional[AnnealingSchedule] = None,
                 workers: int = 1,
                 keep: int = MAX_CANDIDATES,
                 seed: Optional[int] = None,
                 filler: str = '',
                 unmapped_policy: str = 'skip'):
        """
        Initialize the session and compile the metric model.

        Args:
            corpus: Corpus for the session's language
            weights: Metric weight configuration
            geometry: Key-position geometry (standard 3x10 if None)
            schedule: Annealing schedule (defaults if None)
            workers: Number of worker processes (1 = run in this process)
            keep: Candidates retained per call (at most 10)
            seed: Seed for reproducible calls (None = fresh entropy)
            filler: Extra characters usable when the corpus has too few
            unmapped_policy: Policy for n-grams off the layout ('skip' or 'penalize')
        """
        if workers < 1:
            raise ValueError(f"workers must be at least 1: {workers}")
        if keep < 1:
            raise ValueError(f"keep must be at least 1: {keep}")

        self.language = corpus.language
        self.corpus = corpus
        self.geometry = geometry or standard_geometry()
        self.weights = dict(weights)
        self.schedule = schedule or AnnealingSchedule()
        self.workers = workers
        self.keep = min(keep, MAX_CANDIDATES)
        self.filler = filler
        self.model = MetricModel(corpus, self.geometry, self.weights, unmapped_policy)

        self._seed_sequence = np.random.SeedSequence(seed)
        self._candidates: Optional[Tuple[Candidate, ...]] = None
        self._lock = threading.RLock()

    #-------------------------------------------------------------------------
    # Alphabet and layouts
    #-------------------------------------------------------------------------
    @property
    def n_positions(self) -> int:
        return len(self.geometry)

    def valid_characters(self) -> frozenset:
        """Characters a layout of this language may contain."""
        return self.corpus.alphabet() | frozenset(self.filler)

    def key_alphabet(self) -> List[str]:
        """Characters placed by unconstrained generation."""
        return self.corpus.key_alphabet(self.n_positions, self.filler)

    def decode(self, text: str, name: Optional[str] = None) -> Layout:
        """Decode layout text against this session's geometry and alphabet."""
        return Layout.decode(text, self.n_positions, self.valid_characters(), name=name)

    def evaluate(self, layout: Layout) -> MetricBreakdown:
        return self.model.evaluate(layout)

    #-------------------------------------------------------------------------
    # Generation
    #-------------------------------------------------------------------------
    def generate(self,
                 trials: int,
                 seed: Optional[int] = None,
                 cancel: Optional[threading.Event] = None,
                 progress: bool = False) -> List[Candidate]:
        """
        Generate layouts from random starting assignments.

        Args:
            trials: Number of independent runs (0 gives an empty list)
            seed: Seed for this call (None = next seed of the session)
            cancel: Event checked between iterations and runs
            progress: Show a progress bar

        Returns:
            Best candidates, score descending, at most 10

        Raises:
            ValueError: If trials is negative
            SearchCancelled: If cancelled; the previous candidates are kept
        """
        if trials < 0:
            raise ValueError(f"Number of trials must be non-negative: {trials}")

        start = self.key_alphabet()
        free = list(range(self.n_positions))
        logger.info(f"Generating {trials} layouts for '{self.language}'")
        return self._search(trials, start, free, True, seed, cancel, progress)

    def improve(self,
                amount: int,
                seed_layout: Layout,
                pins: Iterable[int] = (),
                seed: Optional[int] = None,
                cancel: Optional[threading.Event] = None,
                progress: bool = False) -> List[Candidate]:
        """
        Improve a layout while keeping pinned keys in place.

        Every run starts from seed_layout and only swaps keys that are not
        pinned, so pinned characters never move.

        Args:
            amount: Number of independent runs (0 gives an empty list)
            seed_layout: Starting layout
            pins: Key positions that keep their characters
            seed: Seed for this call (None = next seed of the session)
            cancel: Event checked between iterations and runs
            progress: Show a progress bar

        Returns:
            Best candidates, score descending, at most 10

        Raises:
            ValueError: If amount is negative, the layout has the wrong size,
                or a pin is outside the geometry
            SearchCancelled: If cancelled; the previous candidates are kept
        """
        if amount < 0:
            raise ValueError(f"Number of runs must be non-negative: {amount}")
        if len(seed_layout) != self.n_positions:
            raise ValueError(
                f"Layout has {len(seed_layout)} keys but the geometry has {self.n_positions}"
            )

        pinned = set()
        for pin in pins:
            if isinstance(pin, bool) or not isinstance(pin, (int, np.integer)):
                raise ValueError(f"Pin must be a key position index: {pin!r}")
            if not 0 <= pin < self.n_positions:
                raise ValueError(f"Pin {pin} outside key positions 0-{self.n_positions - 1}")
            pinned.add(int(pin))

        free = [key for key in range(self.n_positions) if key not in pinned]
        logger.info(f"Improving '{seed_layout.name or seed_layout.encode()}' with {amount} runs, "
                    f"{len(pinned)} pinned keys")
        return self._search(amount, list(seed_layout), free, False, seed, cancel, progress)

    def _search(self,
                runs: int,
                start: List[str],
                free: List[int],
                shuffle: bool,
                seed: Optional[int],
                cancel: Optional[threading.Event],
                progress: bool) -> List[Candidate]:
        with self._lock:
            call_sequence = (np.random.SeedSequence(seed) if seed is not None
                             else self._seed_sequence.spawn(1)[0])
        run_seeds = call_sequence.spawn(runs)

        if self.workers > 1 and runs > 1:
            layouts = self._run_pool(start, free, shuffle, run_seeds, cancel, progress)
        else:
            layouts = self._run_serial(start, free, shuffle, run_seeds, cancel, progress)

        candidates = [Candidate(layout, self.model.score(layout), run)
                      for run, layout in enumerate(layouts)]
        # Stable sort: equal scores keep run order
        candidates.sort(key=lambda c: -c.score)
        kept = candidates[:self.keep]

        with self._lock:
            self._candidates = tuple(kept)

        if kept:
            logger.info(f"Best score {kept[0].score:.6f} from run {kept[0].run}")
        return list(kept)

    def _run_serial(self, start, free, shuffle, run_seeds, cancel, progress) -> List[Layout]:
        layouts = []
        for run_seed in tqdm(run_seeds, desc="Search runs", disable=not progress):
            if cancel is not None and cancel.is_set():
                raise SearchCancelled(len(layouts))
            try:
                layout = anneal(self.model, start, free, self.schedule,
                                np.random.default_rng(run_seed), shuffle, cancel)
            except SearchCancelled:
                raise SearchCancelled(len(layouts)) from None
            layouts.append(layout)
            logger.debug(f"Run {len(layouts) - 1} finished: {layout.encode()}")
        return layouts

    def _run_pool(self, start, free, shuffle, run_seeds, cancel, progress) -> List[Layout]:
        layouts = []
        with ProcessPoolExecutor(max_workers=self.workers,
                                 initializer=_init_worker,
                                 initargs=(self.model,)) as executor:
            futures = [executor.submit(_run_in_worker, start, free, self.schedule, run_seed, shuffle)
                       for run_seed in run_seeds]
            try:
                for future in tqdm(futures, desc="Search runs", disable=not progress):
                    if cancel is not None and cancel.is_set():
                        raise SearchCancelled(len(layouts))
                    layouts.append(future.result())
            except SearchCancelled:
                for future in futures:
                    future.cancel()
                raise
        return layouts

    #-------------------------------------------------------------------------
    # Candidates
    #-------------------------------------------------------------------------
    @property
    def candidates(self) -> Tuple[Candidate, ...]:
        """Snapshot of the current candidate list (empty before any generation)."""
        with self._lock:
            return self._candidates or ()

    def nth(self, index: int) -> Layout:
        """
        Candidate layout at rank index of the current list.

        Raises:
            NoCandidatesYet: If no generation has happened in this session
            IndexOutOfRange: If index is not a valid rank
        """
        with self._lock:
            candidates = self._candidates
        if candidates is None:
            raise NoCandidatesYet()
        if not 0 <= index < len(candidates):
            raise IndexOutOfRange(index, len(candidates))
        return candidates[index].layout


def new_session(language: str,
                weights: Optional[Mapping[str, float]] = None,
                config: Optional[Dict[str, Any]] = None) -> SearchSession:
    """
    Create a search session for a language.

    Args:
        language: Language identifier
        weights: Metric weights (None = the configuration's weights)
        config: Merged configuration (None = built-in defaults)

    Returns:
        SearchSession

    Raises:
        LanguageNotFound: If no corpus exists for the language
        CorpusIOError: If the corpus cannot be read
    """
    if config is None:
        config = load_config()

    corpus = load_corpus(language, config['paths']['language_data'])
    search_config = config.get('search') or {}

    return SearchSession(
        corpus=corpus,
        weights=(config.get('weights') or {}) if weights is None else weights,
        geometry=geometry_from_config(config),
        schedule=AnnealingSchedule.from_config(search_config),
        workers=int(search_config.get('workers') or 1),
        keep=int(search_config.get('keep') or MAX_CANDIDATES),
        seed=search_config.get('seed'),
        filler=(config.get('layout') or {}).get('filler', ''),
        unmapped_policy=(config.get('metrics') or {}).get('unmapped_policy', 'skip'),
    )
