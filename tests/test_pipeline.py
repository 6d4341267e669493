import random

import pytest
from PIL import Image

from photobook.dedup import deduplicate
from photobook.editor.prefill import link_errors
from photobook.enrichment import EnrichmentProvider, NarrativeAnalysis
from photobook.errors import EnrichmentError
from photobook.pipeline import ANALYZING, COMPLETE, PipelineJob, compose_from_scores, run_pipeline
from photobook.storage import JsonBookStore


class DownProvider(EnrichmentProvider):
    def analyze(self, images, photo_count):
        raise EnrichmentError("unreachable")


class TitleProvider(EnrichmentProvider):
    def analyze(self, images, photo_count):
        return NarrativeAnalysis(title="Weekend", color_palette=["#E8D5C4"])


def test_pipeline_places_every_unique_photo(photo_files):
    records = photo_files(12)
    progress = []

    result = run_pipeline(
        records + [records[0], records[5]],
        rng=random.Random(4),
        on_progress=lambda stage, percent, message: progress.append((stage, percent)),
    )

    assert result.stats["uploaded"] == 14
    assert result.stats["unique"] == 12
    assert result.stats["duplicates"] == 2
    assert result.stats["selected"] + result.stats["excluded"] == 12
    assert result.stats["pages"] == len(result.pages)
    assert set(result.stats["photos_per_page"]) == {"min", "max", "avg"}

    placed = sorted(el.src for page in result.pages for el in page.photo_elements)
    assert placed == sorted(photo.src for photo in result.selected)
    assert all(link_errors(page) == [] for page in result.pages)

    percents = [percent for _, percent in progress]
    assert percents == sorted(percents)
    assert progress[-1] == (COMPLETE, 100)


def test_pipeline_survives_enrichment_failure(photo_files):
    result = run_pipeline(photo_files(4), enrichment=DownProvider(), rng=random.Random(0))

    assert result.analysis is None
    assert result.pages
    assert len(result.photo_roles) == 4


def test_pipeline_survives_photos_too_large_to_decode(photo_files, monkeypatch):
    records = photo_files(4)
    provider = TitleProvider()
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

    result = run_pipeline(records, enrichment=provider, rng=random.Random(0))

    assert result.analysis is None
    assert result.pages
    assert result.stats["selected"] + result.stats["excluded"] == 4


def test_pipeline_uses_enrichment_for_cover(photo_files):
    result = run_pipeline(photo_files(4), enrichment=TitleProvider(), rng=random.Random(0))

    cover = result.pages[0]
    assert cover.background.value == "#E8D5C4"
    assert any(getattr(el, "content", None) == "Weekend" for el in cover.elements)
    assert result.to_document("b").title == "Weekend"


def test_pipeline_result_persists(photo_files, tmp_path):
    result = run_pipeline(photo_files(3), rng=random.Random(0))
    store = JsonBookStore(tmp_path / "books")

    store.save(result.to_document("book-42"))
    loaded = store.load("book-42")

    assert [p.to_dict() for p in loaded.pages] == [p.to_dict() for p in result.pages]
    assert loaded.photos == [photo.src for photo in result.selected]


def test_empty_upload():
    result = run_pipeline([])
    assert result.pages == []
    assert result.stats["pages"] == 0


def test_job_yields_between_chunks_then_composes(photo_files, scheduler):
    records = photo_files(12)
    progress, finished = [], []
    job = PipelineJob(
        records + [records[3]],
        rng=random.Random(4),
        scheduler=scheduler,
        on_progress=lambda stage, percent, message: progress.append((stage, percent)),
        on_finished=finished.append,
    )

    job.start()
    assert job.is_running
    assert [delay for delay, _ in scheduler.calls] == [0]

    scheduler.run_next()
    assert progress[-1] == (ANALYZING, 25)
    assert finished == []
    assert len(scheduler.calls) == 1

    scheduler.run_all()

    assert not job.is_running
    assert finished == [job.result]
    assert job.result.stats["uploaded"] == 13
    assert job.result.stats["unique"] == 12
    assert progress[-1] == (COMPLETE, 100)
    placed = sorted(el.src for page in job.result.pages for el in page.photo_elements)
    assert placed == sorted(photo.src for photo in job.result.selected)


def test_job_matches_synchronous_run(photo_files, scheduler):
    records = photo_files(7)
    job = PipelineJob(records, rng=random.Random(2), scheduler=scheduler)
    job.start()
    scheduler.run_all()

    expected = run_pipeline(records, rng=random.Random(2))

    assert job.result.stats == expected.stats
    assert [p.layout_id for p in job.result.pages] == [p.layout_id for p in expected.pages]


def test_cancelled_job_never_composes(photo_files, scheduler):
    finished = []
    job = PipelineJob(photo_files(25), scheduler=scheduler, on_finished=finished.append)

    job.start()
    scheduler.run_next()
    job.cancel()
    scheduler.run_all()

    assert job.is_cancelled
    assert job.result is None
    assert finished == []


def test_empty_job_finishes_with_no_pages(scheduler):
    job = PipelineJob([], scheduler=scheduler)
    job.start()
    scheduler.run_all()
    assert job.result.pages == []


def test_compose_from_scores_rejects_mismatched_scores(photo_files):
    dedup = deduplicate(photo_files(2))
    with pytest.raises(ValueError):
        compose_from_scores(dedup, [], uploaded=2)
