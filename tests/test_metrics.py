import numpy as np
import pytest

from layout_engine.corpus import Corpus
from layout_engine.geometry import standard_geometry
from layout_engine.metrics import (
    METRIC_REGISTRY, UNMAPPED_METRIC, MetricModel, available_metrics, finger_usage,
    hand_usage, register_metric,
)


@pytest.fixture
def th_corpus():
    return Corpus(
        'test',
        characters={'e': 0.12, 't': 0.5, 'h': 0.38},
        bigrams={'th': 0.015, 'er': 0.985},
        trigrams={},
    )


def test_builtin_catalog():
    assert available_metrics() == [
        'effort', 'same_finger_bigram', 'lateral_stretch', 'same_finger_skipgram',
        'alternation', 'inward_roll', 'outward_roll', 'one_hand_run', 'redirect',
    ]


def test_same_finger_bigram_counts_th(th_corpus, qwerty, geometry):
    # h onto the left index finger's home key, under t
    layout = qwerty.swap(13, 15)
    assert geometry[layout.position_of('t')].finger == geometry[layout.position_of('h')].finger

    weight = -15.0
    model = MetricModel(th_corpus, geometry, {'same_finger_bigram': weight})
    breakdown = model.evaluate(layout)

    assert breakdown.raw['same_finger_bigram'] == pytest.approx(0.015)
    assert breakdown.weighted['same_finger_bigram'] == pytest.approx(0.015 * weight)
    assert breakdown.total == pytest.approx(0.015 * weight)


def test_qwerty_has_no_th_same_finger(th_corpus, qwerty, geometry):
    model = MetricModel(th_corpus, geometry, {'same_finger_bigram': -1.0})
    assert model.evaluate(qwerty).raw['same_finger_bigram'] == 0.0


def test_effort_is_frequency_weighted(th_corpus, qwerty, geometry):
    model = MetricModel(th_corpus, geometry, {'effort': -1.0})
    raw = model.evaluate(qwerty).raw['effort']
    expected = sum(th_corpus.characters[c] * geometry[qwerty.position_of(c)].effort
                   for c in 'eth')
    assert raw == pytest.approx(expected)


def test_evaluation_is_deterministic(corpus, qwerty, geometry, weights):
    first = MetricModel(corpus, geometry, weights).evaluate(qwerty)
    second = MetricModel(corpus, geometry, weights).evaluate(qwerty)
    assert first.total == second.total
    assert first.raw == second.raw


def test_fast_score_matches_score(corpus, qwerty, geometry, weights):
    model = MetricModel(corpus, geometry, weights)
    pos = model.position_vector(qwerty)
    assert model.fast_score(pos) == pytest.approx(model.score(qwerty))


def test_swap_delta_matches_rescoring(corpus, qwerty, geometry, weights):
    model = MetricModel(corpus, geometry, weights)
    pos = model.position_vector(qwerty)
    before = pos.copy()

    # Includes '/', which the sample corpus never uses
    for a, b in [(0, 10), (2, 17), (5, 29), (13, 16)]:
        ids = (model.char_id(qwerty.char_at(a)), model.char_id(qwerty.char_at(b)))
        delta = model.swap_delta(pos, ids[0], a, ids[1], b)
        assert np.array_equal(pos, before)

        swapped = qwerty.swap(a, b)
        assert delta == pytest.approx(model.score(swapped) - model.score(qwerty), abs=1e-9)


def test_characters_off_the_layout_contribute_nothing(geometry, qwerty):
    corpus = Corpus('test', {'a': 1, 'ß': 1}, {'aß': 1, 'ßa': 1}, {})
    model = MetricModel(corpus, geometry, {'effort': -1.0, 'same_finger_bigram': -1.0})
    breakdown = model.evaluate(qwerty)
    assert breakdown.raw['effort'] == pytest.approx(0.5 * geometry[10].effort)
    assert breakdown.raw['same_finger_bigram'] == 0.0
    assert UNMAPPED_METRIC not in breakdown.raw


def test_penalize_policy_reports_unmapped_mass(geometry, qwerty):
    corpus = Corpus('test', {'a': 3, 'ß': 1}, {}, {})
    model = MetricModel(corpus, geometry, {UNMAPPED_METRIC: -2.0}, unmapped_policy='penalize')
    breakdown = model.evaluate(qwerty)
    assert breakdown.raw[UNMAPPED_METRIC] == pytest.approx(0.25)
    assert breakdown.weighted[UNMAPPED_METRIC] == pytest.approx(-0.5)


def test_unknown_policy_is_rejected(corpus, geometry):
    with pytest.raises(ValueError):
        MetricModel(corpus, geometry, {}, unmapped_policy='ignore')


def test_unknown_weights_are_ignored(corpus, geometry, qwerty, caplog):
    model = MetricModel(corpus, geometry, {'effort': -1.0, 'no_such_metric': 5.0})
    assert 'no_such_metric' not in model.weights
    assert 'no_such_metric' in caplog.text
    assert model.weights['alternation'] == 0.0


def test_wrong_size_layout_is_rejected(corpus, geometry):
    from layout_engine.layout import Layout
    model = MetricModel(corpus, geometry, {})
    with pytest.raises(ValueError):
        model.evaluate(Layout("abc"))


def test_breakdown_delta_is_antisymmetric(corpus, qwerty, geometry, weights):
    model = MetricModel(corpus, geometry, weights)
    a = model.evaluate(qwerty)
    b = model.evaluate(qwerty.swap(0, 11))
    forward, backward = a.delta(b), b.delta(a)
    assert forward.total == -backward.total
    for name in forward.weighted:
        assert forward.weighted[name] == -backward.weighted[name]


def test_breakdown_get_score(corpus, qwerty, geometry, weights):
    breakdown = MetricModel(corpus, geometry, weights).evaluate(qwerty)
    assert breakdown.get_score() == breakdown.total
    assert breakdown.get_score('effort', weighted=False) == breakdown.raw['effort']
    with pytest.raises(KeyError):
        breakdown.get_score('no_such_metric')
    assert 'weighted_effort' in breakdown.to_dict()


def test_trigram_patterns(geometry):
    trigram_metrics = {
        name: spec.cost for name, spec in METRIC_REGISTRY.items() if spec.order == 3
    }
    a, s, d, f = geometry[10], geometry[11], geometry[12], geometry[13]
    j, k = geometry[16], geometry[17]

    assert trigram_metrics['alternation'](a, j, s) == 1.0
    assert trigram_metrics['inward_roll'](s, f, j) == 1.0
    assert trigram_metrics['outward_roll'](f, s, j) == 1.0
    assert trigram_metrics['one_hand_run'](a, s, d) == 1.0
    assert trigram_metrics['redirect'](a, d, s) == 1.0
    assert trigram_metrics['same_finger_skipgram'](a, k, geometry[0]) == 1.0
    assert trigram_metrics['redirect'](a, s, d) == 0.0


def test_lateral_stretch(geometry):
    cost = METRIC_REGISTRY['lateral_stretch'].cost
    d, g = geometry[12], geometry[14]
    f = geometry[13]
    assert cost(d, g) == 1.0
    assert cost(d, f) == 0.0


def test_register_metric_rejects_duplicates():
    with pytest.raises(ValueError):
        register_metric('effort', 1)(lambda a: 0.0)
    with pytest.raises(ValueError):
        register_metric('new_metric', 4)


def test_metric_registered_later_does_not_affect_existing_model(corpus, geometry, weights, qwerty):
    model = MetricModel(corpus, geometry, weights)
    before = model.evaluate(qwerty)
    register_metric('constant_cost', 1)(lambda a: 1.0)
    try:
        after = model.evaluate(qwerty)
        assert 'constant_cost' not in after.raw
        assert after.total == before.total

        fresh = MetricModel(corpus, geometry, {**weights, 'constant_cost': -1.0})
        expected = sum(freq for char, freq in corpus.characters.items() if char in qwerty)
        assert fresh.evaluate(qwerty).raw['constant_cost'] == pytest.approx(expected)
    finally:
        METRIC_REGISTRY.pop('constant_cost')


def test_hand_and_finger_usage(th_corpus, qwerty, geometry):
    hands = hand_usage(qwerty, th_corpus, geometry)
    assert hands['L'] == pytest.approx(0.12 + 0.5)
    assert hands['R'] == pytest.approx(0.38)

    fingers = finger_usage(qwerty, th_corpus, geometry)
    assert fingers['L1'] == pytest.approx(0.5)
    assert fingers['L2'] == pytest.approx(0.12)
    assert sum(fingers.values()) == pytest.approx(1.0)


def test_custom_geometry_effort(th_corpus, qwerty):
    flat = standard_geometry([[2.0] * 10] * 3)
    model = MetricModel(th_corpus, flat, {'effort': -1.0})
    assert model.evaluate(qwerty).raw['effort'] == pytest.approx(2.0)
