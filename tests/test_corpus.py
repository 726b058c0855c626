import json
import math
import pickle

import pytest

from layout_engine.corpus import (
    Corpus, available_languages, language_file_stem, load_corpus, save_corpus,
)
from layout_engine.errors import CorpusIOError, LanguageNotFound


def test_tables_are_normalized(corpus):
    for n in (1, 2, 3):
        table = corpus.table(n)
        assert table
        assert math.fsum(table.values()) == pytest.approx(1.0)
    assert corpus.validate() == []


def test_tables_are_read_only(corpus):
    with pytest.raises(TypeError):
        corpus.characters['e'] = 1.0


def test_from_text_respects_word_boundaries():
    corpus = Corpus.from_text('tiny', "ab cd")
    assert set(corpus.bigrams) == {'ab', 'cd'}
    assert 'bc' not in corpus.bigrams
    assert 'b c' not in corpus.trigrams
    assert corpus.frequency('bc') == 0.0
    assert corpus.alphabet() == frozenset('abcd')


def test_zero_and_negative_frequencies_are_dropped():
    corpus = Corpus('test', {'a': 3, 'b': 1, 'c': 0, 'd': -2}, {'ab': 1}, {})
    assert corpus.alphabet() == frozenset('ab')
    assert corpus.characters['a'] == pytest.approx(0.75)
    assert corpus.trigrams == {}


def test_corpus_without_characters_is_rejected():
    with pytest.raises(ValueError):
        Corpus('empty', {}, {}, {})


def test_key_alphabet_pads_with_filler():
    corpus = Corpus('test', {'e': 5, 't': 3, 'a': 2}, {}, {})
    assert corpus.key_alphabet(2) == ['e', 't']
    assert corpus.key_alphabet(5, filler='qwerty') == ['e', 't', 'a', 'q', 'w']

    with pytest.raises(ValueError):
        corpus.key_alphabet(5, filler='e')


def test_load_json_corpus(tmp_path):
    data = {'characters': {'E': 2, 't': 1}, 'bigrams': {'te': 1}, 'trigrams': {}}
    (tmp_path / 'british_english.json').write_text(json.dumps(data), encoding='utf-8')

    corpus = load_corpus('british english', str(tmp_path))
    assert corpus.language == 'british english'
    assert corpus.characters['e'] == pytest.approx(2 / 3)
    assert corpus.bigrams == {'te': 1.0}


def test_json_keys_differing_by_case_are_summed(tmp_path):
    data = {'characters': {'T': 1, 't': 1, 'a': 2}}
    (tmp_path / 'mixed.json').write_text(json.dumps(data), encoding='utf-8')

    corpus = load_corpus('mixed', str(tmp_path))
    assert corpus.characters['t'] == pytest.approx(0.5)
    assert corpus.characters['a'] == pytest.approx(0.5)


def test_load_csv_corpus(tmp_path):
    directory = tmp_path / 'german'
    directory.mkdir()
    (directory / 'letter_frequencies.csv').write_text(
        "letter,frequency\ne,60\nn,30\nx,\nä,10\n", encoding='utf-8')
    (directory / 'letter_pair_frequencies.csv').write_text(
        "letter_pair,frequency\nen,5\nne,5\nabc,1\n", encoding='utf-8')

    corpus = load_corpus('german', str(tmp_path))
    assert corpus.alphabet() == frozenset('enä')
    assert corpus.characters['e'] == pytest.approx(0.6)
    assert set(corpus.bigrams) == {'en', 'ne'}
    assert corpus.trigrams == {}


def test_missing_language(tmp_path):
    with pytest.raises(LanguageNotFound) as excinfo:
        load_corpus('klingon', str(tmp_path))
    assert 'klingon' in str(excinfo.value)


def test_unreadable_corpus(tmp_path):
    (tmp_path / 'broken.json').write_text("{not json", encoding='utf-8')
    with pytest.raises(CorpusIOError):
        load_corpus('broken', str(tmp_path))


def test_save_and_reload_corpus(tmp_path, corpus):
    path = save_corpus(corpus, str(tmp_path))
    assert path == tmp_path / 'sample.json'

    reloaded = load_corpus('sample', str(tmp_path))
    assert reloaded.alphabet() == corpus.alphabet()
    for n in (1, 2, 3):
        assert set(reloaded.table(n)) == set(corpus.table(n))


def test_save_csv_corpus(tmp_path, corpus):
    directory = save_corpus(corpus, str(tmp_path), as_csv=True)
    assert (directory / 'letter_pair_frequencies.csv').exists()
    assert load_corpus('sample', str(tmp_path)).alphabet() == corpus.alphabet()


def test_available_languages_hides_test(tmp_path):
    for stem in ('english', 'test', 'british_english'):
        (tmp_path / f'{stem}.json').write_text('{"characters": {"a": 1}}', encoding='utf-8')
    (tmp_path / 'notes.txt').write_text('ignored', encoding='utf-8')

    assert available_languages(str(tmp_path)) == ['british english', 'english']
    assert available_languages(str(tmp_path / 'missing')) == []


def test_language_file_stem():
    assert language_file_stem(' british english ') == 'british_english'


def test_corpus_survives_pickling(corpus):
    restored = pickle.loads(pickle.dumps(corpus))
    assert dict(restored.bigrams) == dict(corpus.bigrams)
    with pytest.raises(TypeError):
        restored.bigrams['zz'] = 1.0
