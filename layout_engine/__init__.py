# layout_engine/__init__.py
"""
Keyboard Layout Optimization Engine

Corpus statistics, layout scoring, annealing search and layout storage.
"""

__version__ = "1.0.0"

# Import main classes for easy access
from .corpus import Corpus, load_corpus
from .errors import LayoutEngineError
from .layout import Layout
from .metrics import MetricBreakdown, MetricModel, register_metric
from .search import SearchSession, new_session
from .store import LayoutComparison, LayoutStore

__all__ = [
    'Corpus',
    'load_corpus',
    'Layout',
    'LayoutEngineError',
    'MetricBreakdown',
    'MetricModel',
    'register_metric',
    'SearchSession',
    'new_session',
    'LayoutComparison',
    'LayoutStore',
]
