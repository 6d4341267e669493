import logging

import pytest

from photobook.editor.clipboard import Clipboard
from photobook.editor.prefill import link_errors
from photobook.editor.session import EditorSession
from photobook.errors import StorageError
from photobook.layouts import generate_prefills_from_layout
from photobook.models import Background, BookDocument, Page, PhotoElement, TextElement
from photobook.storage import autosave_metrics


class MemoryStore:
    def __init__(self):
        self.books = {}
        self.updates = []

    def load(self, book_id):
        return self.books.get(book_id)

    def save(self, document):
        self.books[document.id] = document

    def update(self, book_id, **fields):
        self.updates.append(fields)
        document = self.books.get(book_id) or BookDocument(id=book_id)
        for name, value in fields.items():
            setattr(document, name, value)
        self.books[book_id] = document
        return document

    def delete(self, book_id):
        return self.books.pop(book_id, None) is not None


class BrokenStore(MemoryStore):
    def update(self, book_id, **fields):
        raise StorageError("disk full")


@pytest.fixture
def ids():
    counter = iter(range(10_000))
    return lambda prefix: f"{prefix}-{next(counter)}"


@pytest.fixture(autouse=True)
def reset_metrics():
    autosave_metrics.reset()
    yield
    autosave_metrics.reset()


def _book(ids):
    cover = Page(id="cover")
    cover.free_elements.append(PhotoElement(id="a", src="a.jpg", x=48, y=10, width=10, height=10))
    second = Page(id="second", layout_id="two-horizontal", prefills=generate_prefills_from_layout("two-horizontal", ids))
    third = Page(id="third")
    return [cover, second, third]


@pytest.fixture
def session(scheduler, ids):
    return EditorSession("book1", _book(ids), scheduler=scheduler, id_factory=ids)


def test_drag_move_snaps_centre_to_page_middle(session):
    assert session.begin_drag(0, "a", 53, 15)

    geometry = session.drag_to(50.5, 15)

    assert geometry.x == 45
    assert geometry.y == 10
    assert [g.position for g in session.guides] == [50.0]


def test_drag_is_clamped_to_page(session):
    session.begin_drag(0, "a", 53, 15)
    geometry = session.drag_to(200, -100)
    assert (geometry.x, geometry.y) == (90.0, 0.0)


def test_clamped_drag_drops_guide_it_no_longer_touches(scheduler, ids):
    page = Page(id="p")
    page.free_elements.append(PhotoElement(id="a", src="a.jpg", x=48, y=10, width=10, height=10))
    page.free_elements.append(PhotoElement(id="b", src="b.jpg", x=87, y=60, width=10, height=10))
    session = EditorSession("book1", [page], scheduler=scheduler, id_factory=ids)
    session.begin_drag(0, "a", 53, 15)

    # the left edge snaps to b's right edge at 97, then the page edge clamps it back
    geometry = session.drag_to(101.5, 15)

    assert geometry.x == 90.0
    assert session.guides == []


def test_drag_produces_single_history_entry(session, scheduler):
    session.begin_drag(0, "a", 53, 15)
    for step in range(20):
        session.drag_to(53 + step * 0.5, 15 + step)
    assert len(session.history) == 1

    session.end_drag()

    assert len(session.history) == 2
    assert session.drag is None
    assert session.guides == []


def test_undo_redo_round_trip(session):
    before = session.to_dict()
    session.update_element(0, "a", x=5.0)
    session.flush()
    after = session.to_dict()

    assert session.undo()
    assert session.to_dict() == before
    assert session.redo()
    assert session.to_dict() == after
    assert not session.redo()


def test_undo_does_not_record_history(session):
    session.update_element(0, "a", x=5.0)
    session.flush()
    session.undo()
    assert len(session.history) == 2
    assert session.history.can_redo


def test_resize_respects_minimum(session):
    session.begin_drag(0, "a", 58, 20, handle="e")
    geometry = session.drag_to(30, 20)
    assert geometry.width == 10
    assert geometry.x == 48


def test_resize_west_keeps_right_edge(session):
    session.begin_drag(0, "a", 48, 15, handle="w")
    geometry = session.drag_to(40, 15)
    assert geometry.width == 18
    assert geometry.right == 58


def test_resize_with_locked_aspect(session, ids):
    session.pages[2].free_elements.append(
        TextElement(id="t", content="x", x=20, y=20, width=20, height=10)
    )
    session.begin_drag(2, "t", 40, 30, handle="se")

    geometry = session.drag_to(50, 30, lock_aspect=True)

    assert (geometry.width, geometry.height) == (30, 15)
    assert (geometry.x, geometry.y) == (20, 20)


def test_rotation_is_normalized(session):
    session.update_element(0, "a", rotation=-30)
    assert session.find_element(0, "a").rotation == 330
    session.rotate_element(0, "a", 50)
    assert session.find_element(0, "a").rotation == 20
    session.rotate_element(0, "a", 3, snap_15=True)
    assert session.find_element(0, "a").rotation == 30


def test_update_element_rejects_unknown_fields(session):
    assert not session.update_element(0, "a", nonsense=1)
    assert not session.update_element(0, "a", id="b")
    assert not session.update_element(0, "missing", x=1)
    assert not session.has_pending_commit


def test_delete_page_never_removes_last(session):
    assert session.delete_page(2)
    assert session.delete_page(1)
    assert not session.delete_page(0)
    assert len(session.pages) == 1


def test_delete_current_page_moves_selection_back(session):
    session.set_page(2)
    assert session.delete_page(2)
    assert session.current_page_index == 1


def test_reorder_keeps_cover_first(session):
    assert not session.reorder_pages(0, 2)
    assert not session.reorder_pages(2, 0)
    assert session.reorder_pages(2, 1)
    assert [p.id for p in session.pages] == ["cover", "third", "second"]


def test_duplicate_page_gets_fresh_ids_and_links(session):
    session.drop_into_prefill(1, "x.jpg", session.pages[1].prefills[0].id)

    clone = session.duplicate_page(1)

    original = session.pages[1]
    assert session.pages[2] is clone
    assert clone.id != original.id
    assert {p.id for p in clone.prefills}.isdisjoint(p.id for p in original.prefills)
    assert clone.prefills[0].content.src == "x.jpg"
    assert clone.prefills[0].content.id != original.prefills[0].content.id
    assert link_errors(clone) == []
    assert session.current_page_index == 2


def test_add_text_and_background(session):
    text = session.add_text(2, "Hello")
    assert session.selected_element_id == text.id
    assert (text.x, text.y, text.width, text.height) == (35, 45, 30, 10)

    assert session.set_background(2, Background(kind="solid", value="#E8D5C4"))
    assert session.pages[2].background.value == "#E8D5C4"


def test_add_page_selects_it(session):
    page = session.add_page()
    assert session.pages[-1] is page
    assert session.current_page_index == 3


def test_prefill_intents_through_session(session):
    first, second = session.pages[1].prefills
    session.drop_into_prefill(1, "x.jpg", first.id)
    session.drop_into_prefill(1, "y.jpg", second.id)

    assert session.swap_in_prefills(1, first.id, second.id)
    assert first.content.src == "y.jpg"
    assert session.replace_in_prefill(1, "z.jpg", first.id)
    assert session.remove_from_prefill(1, second.id)
    assert second.is_empty
    assert session.apply_layout(1, "full-bleed")
    assert session.pages[1].prefills[0].content.src == "z.jpg"


def test_deleting_selected_element_clears_selection(session):
    session.select("a")
    assert session.delete_element(0, "a")
    assert session.selected_element_id is None
    assert session.find_element(0, "a") is None


def test_edits_are_autosaved(scheduler, ids):
    store = MemoryStore()
    session = EditorSession("book1", _book(ids), store=store, scheduler=scheduler, id_factory=ids)

    session.update_element(0, "a", x=20.0)
    session.update_element(0, "a", y=20.0)
    scheduler.run_all()

    assert len(store.updates) == 1
    saved = store.books["book1"].pages[0].find_element("a")
    assert (saved.x, saved.y) == (20.0, 20.0)
    assert autosave_metrics.counters["success"] == 1


def test_storage_failure_never_reaches_editor(scheduler, ids, caplog):
    store = BrokenStore()
    session = EditorSession("book1", _book(ids), store=store, scheduler=scheduler, id_factory=ids)
    caplog.set_level(logging.INFO)

    assert session.update_element(0, "a", x=20.0)
    scheduler.run_all()

    assert autosave_metrics.counters["failure"] == 1
    assert autosave_metrics.counters["retry"] == 2
    assert session.autosave.last_error == "disk full"
    assert any(r.getMessage() == "autosave failed after retries" for r in caplog.records)
    assert session.find_element(0, "a").x == 20.0


def test_open_missing_book_returns_none():
    assert EditorSession.open(MemoryStore(), "nope") is None


def test_open_existing_book(scheduler, ids):
    store = MemoryStore()
    store.save(BookDocument(id="b", pages=_book(ids)))
    session = EditorSession.open(store, "b", scheduler=scheduler)
    assert [p.id for p in session.pages] == ["cover", "second", "third"]


def test_clipboard_paste_offsets_and_clamps(session, ids):
    clipboard = Clipboard(session, ids)
    session.select("a")
    assert clipboard.copy()

    pasted = clipboard.paste()

    assert pasted.id != "a"
    assert (pasted.x, pasted.y) == (53, 15)
    assert pasted.z_index == 1
    assert session.selected_element_id == pasted.id

    session.update_element(0, pasted.id, x=88.0, y=88.0)
    assert clipboard.copy()
    again = clipboard.paste()
    assert (again.x, again.y) == (90.0, 90.0)


def test_clipboard_cut_removes_and_pastes_on_current_page(session, ids):
    clipboard = Clipboard(session, ids)
    session.select("a")

    assert clipboard.cut()
    assert session.find_element(0, "a") is None

    session.set_page(2)
    pasted = clipboard.paste()
    assert session.pages[2].free_elements == [pasted]
    assert isinstance(pasted, PhotoElement) and pasted.prefill_id is None


def test_clipboard_without_selection():
    clipboard = Clipboard(EditorSession("b", [Page(id="p")], scheduler=lambda d, c: None))
    assert not clipboard.copy()
    assert clipboard.paste() is None
