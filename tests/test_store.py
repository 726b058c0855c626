import pytest

from layout_engine.errors import LayoutNotFound, ParseError, StoreIOError
from layout_engine.geometry import QWERTY_LEGENDS
from layout_engine.layout import Layout
from layout_engine.store import LayoutStore

DVORAK = "',.pyfgcrlaoeuidhtns;qjkxbmwvz"
COLEMAK = "qwfpgjluy;arstdhneiozxcvbkm,./"


@pytest.fixture
def store(tmp_path, session):
    return LayoutStore.for_session(session, str(tmp_path))


def write_store(path, rows):
    lines = ['name,layout'] + [f'{name},"{text}"' for name, text in rows]
    path.write_text('\n'.join(lines) + '\n', encoding='utf-8')


def test_empty_store(store):
    assert store.rank() == []
    assert store.names() == []
    assert store.lookup('qwerty') is None


def test_save_and_lookup(store, qwerty):
    assert store.save(qwerty, 'qwerty') == 'qwerty'
    assert store.lookup('qwerty') == qwerty
    assert store.get('qwerty').name == 'qwerty'
    assert store.path.exists()


def test_save_is_idempotent(store, qwerty):
    store.save(qwerty, 'qwerty')
    first = store.path.read_text(encoding='utf-8')
    store.save(qwerty, 'qwerty')
    assert store.path.read_text(encoding='utf-8') == first
    assert store.names() == ['qwerty']


def test_overwrite_changes_rank(store, session, qwerty):
    store.save(qwerty, 'mine')
    other = session.decode(COLEMAK)
    store.save(other, 'mine')
    assert store.lookup('mine') == other
    assert store.rank() == [('mine', session.model.score(other))]


def test_rank_orders_by_score_then_name(store, session, qwerty):
    colemak = session.decode(COLEMAK)
    store.save(qwerty, 'qwerty')
    store.save(colemak, 'colemak')
    store.save(qwerty, 'a_copy')

    ranking = store.rank()
    scores = [score for _, score in ranking]
    assert scores == sorted(scores, reverse=True)
    names = [name for name, _ in ranking]
    assert names.index('a_copy') == names.index('qwerty') - 1


def test_unnamed_saves_get_synthetic_names(store, qwerty):
    assert store.save(qwerty) == 'layout_1'
    assert store.save(qwerty.swap(0, 1)) == 'layout_2'
    assert store.save(qwerty.swap(0, 2), '  ') == 'layout_3'
    assert store.names() == ['layout_1', 'layout_2', 'layout_3']


def test_records_persist(tmp_path, session, qwerty):
    LayoutStore.for_session(session, str(tmp_path)).save(qwerty, 'qwerty')
    reopened = LayoutStore.for_session(session, str(tmp_path))
    assert reopened.lookup('qwerty') == qwerty
    assert reopened.path == tmp_path / 'sample.csv'


def test_layouts_with_quotes_and_commas_round_trip(tmp_path, session):
    store = LayoutStore(session.language, str(tmp_path), session.model)
    dvorak = Layout.decode(DVORAK, 30)
    store.save(dvorak, 'dvorak, "classic"')
    reopened = LayoutStore(session.language, str(tmp_path), session.model)
    assert reopened.lookup('dvorak, "classic"') == dvorak


def test_compare_is_antisymmetric(store, session, qwerty):
    store.save(qwerty, 'qwerty')
    store.save(session.decode(COLEMAK), 'colemak')

    forward = store.compare('qwerty', 'colemak')
    backward = store.compare('colemak', 'qwerty')
    assert forward.delta.total == -backward.delta.total
    for name in forward.delta.weighted:
        assert forward.delta.weighted[name] == -backward.delta.weighted[name]
        assert forward.delta.raw[name] == -backward.delta.raw[name]
    assert forward.breakdown1.total == store.analyze('qwerty').total


def test_compare_names_the_missing_layout(store, qwerty):
    store.save(qwerty, 'qwerty')
    with pytest.raises(LayoutNotFound) as excinfo:
        store.compare('qwerty', 'workman')
    assert 'workman' in str(excinfo.value)
    with pytest.raises(KeyError):
        store.get('workman')


def test_save_rejects_wrong_size(store):
    with pytest.raises(ValueError):
        store.save(Layout("abc"), 'short')


def test_undecodable_records_are_skipped(tmp_path, session, caplog):
    write_store(tmp_path / 'sample.csv', [
        ('qwerty', QWERTY_LEGENDS),
        ('short', 'abc'),
    ])
    store = LayoutStore.for_session(session, str(tmp_path))
    assert store.names() == ['qwerty']
    assert store.lookup('short') is None
    assert [name for name, _ in store.rank()] == ['qwerty']
    assert 'short' in caplog.text


def test_undecodable_records_survive_saves(tmp_path, session, qwerty):
    upper = "QWERTYUIOPASDFGHJKL:ZXCVBNM<>?"
    write_store(tmp_path / 'sample.csv', [('upper', upper), ('layout_1', 'abc')])
    store = LayoutStore.for_session(session, str(tmp_path))

    assert store.save(qwerty) == 'layout_2'
    text = store.path.read_text(encoding='utf-8')
    assert f'upper,"{upper}"' in text or f'upper,{upper}' in text
    assert 'layout_1,abc' in text

    reopened = LayoutStore.for_session(session, str(tmp_path))
    assert reopened.names() == ['layout_2']
    reopened.save(qwerty, 'upper')
    assert reopened.lookup('upper') == qwerty
    assert upper not in reopened.path.read_text(encoding='utf-8')


def test_save_rejects_characters_outside_alphabet(tmp_path, session):
    store = LayoutStore.for_session(session, str(tmp_path))
    with pytest.raises(ParseError):
        store.save(Layout("QWERTYUIOPASDFGHJKL:ZXCVBNM<>?"), 'odd')
    assert store.names() == []
    assert not store.path.exists()


def test_store_missing_columns(tmp_path, session):
    (tmp_path / 'sample.csv').write_text("title,keys\nx,y\n", encoding='utf-8')
    with pytest.raises(StoreIOError):
        LayoutStore.for_session(session, str(tmp_path))


def test_failed_write_leaves_store_unchanged(tmp_path, session, qwerty):
    blocker = tmp_path / 'blocked'
    blocker.write_text('not a directory', encoding='utf-8')
    store = LayoutStore.for_session(session, str(blocker))
    with pytest.raises(StoreIOError):
        store.save(qwerty, 'qwerty')
    assert store.names() == []
