import json

import pytest

from layout_engine.config_loader import DEFAULT_CONFIG
from layout_engine.corpus import Corpus
from layout_engine.geometry import QWERTY_LEGENDS, standard_geometry
from layout_engine.layout import Layout
from layout_engine.search import AnnealingSchedule, SearchSession

SAMPLE_TEXT = (
    "the quick brown fox jumps over the lazy dog. "
    "she sells sea shells, and the shells she sells are surely seashells; "
    "pack my box with five dozen liquor jugs. "
    "how vexingly quick daft zebras jump. "
) * 3

FILLER = DEFAULT_CONFIG['layout']['filler']


@pytest.fixture
def corpus():
    return Corpus.from_text('sample', SAMPLE_TEXT)


@pytest.fixture
def geometry():
    return standard_geometry()


@pytest.fixture
def weights():
    return dict(DEFAULT_CONFIG['weights'])


@pytest.fixture
def qwerty():
    return Layout.decode(QWERTY_LEGENDS, 30, name='qwerty')


@pytest.fixture
def fast_schedule():
    return AnnealingSchedule(iterations=400, stall_limit=150)


@pytest.fixture
def session(corpus, weights, fast_schedule):
    return SearchSession(corpus, weights, schedule=fast_schedule, seed=7, filler=FILLER)


@pytest.fixture
def project_dir(tmp_path, corpus):
    """A configuration file with language data and an empty layouts directory."""
    data_dir = tmp_path / 'language_data'
    data_dir.mkdir()
    (data_dir / 'sample.json').write_text(json.dumps(corpus.to_dict()), encoding='utf-8')
    (tmp_path / 'layouts').mkdir()

    config_path = tmp_path / 'config.yaml'
    config_path.write_text(
        "defaults:\n"
        "  language: sample\n"
        "paths:\n"
        "  language_data: language_data\n"
        "  layouts: layouts\n"
        "search:\n"
        "  iterations: 300\n"
        "  stall_limit: 100\n"
        "  seed: 3\n",
        encoding='utf-8',
    )
    return tmp_path
