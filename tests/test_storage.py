import logging

import pytest

from photobook.errors import StorageError
from photobook.models import BookDocument, Page, TextElement
from photobook.storage import AutosaveManager, JsonBookStore, autosave_metrics, safe_load


@pytest.fixture(autouse=True)
def reset_metrics():
    autosave_metrics.reset()
    yield
    autosave_metrics.reset()


def _pages(label="hello"):
    page = Page(id="p1")
    page.free_elements.append(TextElement(id="t1", content=label, x=1, y=2, width=30, height=10))
    return [page]


class FlakyStore:
    """Fails the first ``failures`` updates, then records pages."""

    def __init__(self, failures):
        self.failures = failures
        self.attempts = 0
        self.saved = []

    def update(self, book_id, **fields):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise OSError("boom")
        self.saved.append(fields["pages"])
        return BookDocument(id=book_id, pages=fields["pages"])


def test_round_trip(tmp_path):
    store = JsonBookStore(tmp_path)
    store.save(BookDocument(id="book-1", title="Trip", pages=_pages()))

    loaded = store.load("book-1")

    assert loaded.title == "Trip"
    assert loaded.pages[0].find_element("t1").content == "hello"
    assert store.list_books() == ["book-1"]
    assert [p.name for p in tmp_path.iterdir()] == ["book-1.json"]


def test_update_creates_and_replaces_fields(tmp_path):
    store = JsonBookStore(tmp_path)
    store.update("b", pages=_pages("one"))
    store.update("b", title="Named")

    loaded = store.load("b")
    assert loaded.title == "Named"
    assert loaded.pages[0].find_element("t1").content == "one"

    with pytest.raises(StorageError):
        store.update("b", colour="red")


def test_missing_and_delete(tmp_path):
    store = JsonBookStore(tmp_path)
    assert store.load("nope") is None
    store.save(BookDocument(id="gone"))
    assert store.delete("gone")
    assert not store.delete("gone")


def test_invalid_book_id_is_rejected(tmp_path):
    store = JsonBookStore(tmp_path)
    with pytest.raises(StorageError):
        store.load("../escape")


def test_corrupt_document_raises_and_safe_load_swallows(tmp_path, caplog):
    (tmp_path / "bad.json").write_text("{not json", encoding="utf-8")
    store = JsonBookStore(tmp_path)

    with pytest.raises(StorageError):
        store.load("bad")

    caplog.set_level(logging.ERROR)
    assert safe_load(store, "bad") is None
    assert any("load failed" in r.getMessage() for r in caplog.records)


def test_autosave_retries_and_logs(scheduler, caplog):
    store = FlakyStore(failures=2)
    manager = AutosaveManager(store, "b", scheduler=scheduler)
    caplog.set_level(logging.INFO)

    manager.schedule(_pages())
    scheduler.run_all()

    assert store.attempts == 3
    assert len(store.saved) == 1
    assert autosave_metrics.counters["success"] == 1
    assert autosave_metrics.counters["retry"] == 2
    assert any("cid" in r.__dict__ for r in caplog.records)


def test_autosave_backoff_doubles(scheduler):
    store = FlakyStore(failures=5)
    retries = []
    manager = AutosaveManager(
        store, "b", scheduler=scheduler, retry_scheduler=lambda delay, cb: (retries.append(delay), cb())
    )

    manager.schedule(_pages())
    scheduler.run_all()

    assert retries == [100, 200]
    assert autosave_metrics.counters["failure"] == 1
    assert manager.last_error == "boom"


def test_autosave_debounce_collapses_bursts(scheduler):
    store = FlakyStore(failures=0)
    manager = AutosaveManager(store, "b", scheduler=scheduler)

    for label in ("a", "b", "c"):
        manager.schedule(_pages(label))
    assert manager.pending
    scheduler.run_all()

    assert len(store.saved) == 1
    assert store.saved[0][0].find_element("t1").content == "c"


def test_autosave_snapshot_is_detached(scheduler):
    store = FlakyStore(failures=0)
    manager = AutosaveManager(store, "b", scheduler=scheduler)
    pages = _pages("before")

    manager.schedule(pages)
    pages[0].free_elements[0].content = "after"
    manager.flush()

    assert store.saved[0][0].find_element("t1").content == "before"


def test_save_requested_during_retry_is_not_lost(scheduler):
    store = FlakyStore(failures=1)
    manager = AutosaveManager(store, "b", scheduler=scheduler)

    manager.schedule(_pages("first"))
    scheduler.run_next()  # debounced save fails, retry queued
    manager.schedule(_pages("second"))
    scheduler.run_all()

    assert [saved[0].find_element("t1").content for saved in store.saved] == ["first", "second"]
