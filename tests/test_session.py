import pytest

from conftest import make_pdf, page_widths
from pagekit.errors import NotFound, NothingToUndo
from pagekit.session import CLOCKWISE, COUNTERCLOCKWISE, EditSession, rotation_delta


def _state(session):
    return [(e.id, e.source_index, e.rotation, e.deleted) for e in session.store]


def _ids(session):
    return [e.id for e in session.store]


def test_initialize_matches_source(session):
    assert [e.source_index for e in session.store] == [0, 1, 2, 3, 4]
    assert not session.can_undo


def test_from_bytes():
    session = EditSession.from_bytes(make_pdf([100, 200]))
    assert len(session.store) == 2


def test_rotation_delta():
    assert rotation_delta(CLOCKWISE) == 90
    assert rotation_delta(COUNTERCLOCKWISE) == -90
    with pytest.raises(ValueError):
        rotation_delta('sideways')


def test_rotate_wraps(session):
    page = _ids(session)[0]
    for _ in range(4):
        session.rotate(page, CLOCKWISE)
    assert session.store.find(page).rotation == 0
    session.rotate(page, COUNTERCLOCKWISE)
    assert session.store.find(page).rotation == 270


@pytest.mark.parametrize('mutate', [
    lambda s, ids: s.rotate(ids[1], CLOCKWISE),
    lambda s, ids: s.rotate_all(COUNTERCLOCKWISE),
    lambda s, ids: s.delete(ids[2]),
    lambda s, ids: s.duplicate(ids[0]),
    lambda s, ids: s.reorder(list(reversed(ids))),
])
def test_undo_restores_exact_state(session, mutate):
    session.rotate(_ids(session)[3], CLOCKWISE)
    before = _state(session)
    mutate(session, _ids(session))
    assert _state(session) != before
    session.undo()
    assert _state(session) == before


def test_undo_with_empty_history(session):
    with pytest.raises(NothingToUndo):
        session.undo()


def test_history_bounded_and_oldest_evicted(session):
    page = _ids(session)[0]
    for _ in range(60):
        session.rotate(page, CLOCKWISE)
    assert len(session.history) == 50
    # 60 rotations, 10 snapshots evicted: oldest kept is before rotation 11
    assert session.history.oldest()[0].rotation == (10 * 90) % 360
    for _ in range(50):
        session.undo()
    assert session.store.find(page).rotation == (10 * 90) % 360
    with pytest.raises(NothingToUndo):
        session.undo()


def test_delete_then_restore(session):
    page = session.store.get(2)
    session.rotate(page.id, CLOCKWISE)
    session.delete(page.id)
    assert session.store.find(page.id).deleted
    session.restore(page.id)
    restored = session.store.find(page.id)
    assert restored.deleted is False
    assert restored.rotation == 90
    assert restored.source_index == 2


def test_duplicate_inserts_after_original(session):
    original = session.store.get(1)
    session.rotate(original.id, CLOCKWISE)
    copy = session.duplicate(original.id)
    assert session.store.get(2) is copy
    assert copy.id != original.id
    assert copy.source_index == 1
    assert copy.rotation == 90
    assert copy.deleted is False
    # later edits to the copy leave the original alone
    session.rotate(copy.id, CLOCKWISE)
    assert session.store.find(original.id).rotation == 90


def test_reorder_keeps_deleted_slots(session):
    ids = _ids(session)
    session.delete(ids[1])
    active = [ids[0], ids[2], ids[3], ids[4]]
    session.reorder(list(reversed(active)))
    assert _ids(session) == [ids[4], ids[1], ids[3], ids[2], ids[0]]
    assert session.store.get(1).deleted


def test_reorder_requires_permutation_of_active(session):
    ids = _ids(session)
    with pytest.raises(ValueError):
        session.reorder(ids[:-1])
    with pytest.raises(NotFound):
        session.reorder(ids[:-1] + ['page-missing'])
    assert len(session.history) == 0


def test_drag_records_one_snapshot_on_commit(session):
    ids = _ids(session)
    before = _state(session)
    session.reorder([ids[1], ids[0], ids[2], ids[3], ids[4]], commit=False)
    session.reorder([ids[1], ids[2], ids[0], ids[3], ids[4]], commit=False)
    assert len(session.history) == 0
    session.reorder([ids[1], ids[2], ids[3], ids[0], ids[4]], commit=True)
    assert len(session.history) == 1
    session.undo()
    assert _state(session) == before


def test_undo_rolls_back_uncommitted_drag(session):
    ids = _ids(session)
    before = _state(session)
    session.reorder(list(reversed(ids)), commit=False)
    assert session.can_undo
    session.undo()
    assert _state(session) == before


def test_failed_lookup_adds_no_history(session):
    with pytest.raises(NotFound):
        session.rotate('page-missing', CLOCKWISE)
    with pytest.raises(NotFound):
        session.duplicate('page-missing')
    assert len(session.history) == 0


def test_source_indices_stay_stable(session):
    created = {e.id: e.source_index for e in session.store}
    ids = _ids(session)
    session.duplicate(ids[3])
    session.delete(ids[0])
    session.reorder([e.id for e in session.store.active_entries()][::-1])
    session.restore(ids[0])
    for entry in session.store:
        if entry.id in created:
            assert entry.source_index == created[entry.id]
    indices = [e.source_index for e in session.store]
    assert sorted(indices) == [0, 1, 2, 3, 3, 4]


def test_reset_rotation_and_initialize(session):
    session.rotate_all(CLOCKWISE)
    session.reset_rotation()
    assert all(e.rotation == 0 for e in session.store)
    session.initialize()
    assert not session.can_undo


def test_compile_excludes_deleted(session):
    session.delete(session.store.get(2).id)
    result = session.compile()
    assert page_widths(result.data) == [100, 200, 400, 500]
    assert result.deleted_count == 1


def test_compile_selection_uses_current_selection(session):
    session.selection.pick_many([3, 0])
    result = session.compile_selection()
    assert page_widths(result.data) == [100, 400]


def test_state(session):
    session.delete(session.store.get(0).id)
    state = session.state()
    assert state['page_count'] == 5
    assert state['active_count'] == 4
    assert state['deleted_count'] == 1
    assert state['can_undo'] is True
    assert len(state['pages']) == 5


def test_picks_are_store_positions(session):
    ids = [e.id for e in session.store]
    session.reorder(list(reversed(ids)))
    session.selection.pick_many([0, 1])
    # the first two grid cells now show source pages 5 and 4
    assert session.resolve_selection() == [3, 4]
    assert page_widths(session.compile_selection().data) == [400, 500]


def test_picks_on_a_duplicate_resolve_once(session):
    session.duplicate(session.store.get(0).id)
    session.selection.pick_many([0, 1, 6])
    assert session.resolve_selection() == [0]
