import base64
import io
import logging

import pytest
import requests
from PIL import Image

from conftest import noise_image, save_image
from photobook.enrichment import (
    DETAIL,
    HERO,
    SUPPORTING,
    EnrichmentProvider,
    HttpEnrichmentProvider,
    NarrativeAnalysis,
    classify_photos,
    encode_thumbnail,
    request_enrichment,
)
from photobook.errors import EnrichmentError
from photobook.models import PhotoRecord


class FakeResponse:
    def __init__(self, payload=None, status=200, body_error=None):
        self.payload = payload
        self.status = status
        self.body_error = body_error

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        if self.body_error is not None:
            raise self.body_error
        return self.payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


class StaticProvider(EnrichmentProvider):
    def __init__(self, analysis=None, error=None):
        self.analysis = analysis
        self.error = error
        self.calls = []

    def analyze(self, images, photo_count):
        self.calls.append((len(images), photo_count))
        if self.error is not None:
            raise self.error
        return self.analysis


PAYLOAD = {
    "title": "Island Days",
    "subtitle": "Summer 2024",
    "colorPalette": ["#E8D5C4", "#3A6EA5"],
    "chapters": [{"title": "Arrival", "description": "First days"}],
    "pageCaptions": [{"pageType": "opening", "caption": "Where it began"}],
    "photoAnalysis": {"heroImages": [1], "detailImages": [2]},
    "suggestedPages": 12,
}


def test_http_provider_posts_sample_and_parses_analysis():
    session = FakeSession(FakeResponse({"analysis": PAYLOAD}))
    provider = HttpEnrichmentProvider("https://example.test/analyze", session=session, timeout=5)

    analysis = provider.analyze(["data:image/jpeg;base64,AAA"], 40)

    url, kwargs = session.requests[0]
    assert url == "https://example.test/analyze"
    assert kwargs["json"] == {"images": ["data:image/jpeg;base64,AAA"], "photoCount": 40, "sampledCount": 1}
    assert kwargs["timeout"] == 5
    assert analysis.title == "Island Days"
    assert analysis.chapters[0].title == "Arrival"
    assert analysis.caption_for("opening") == "Where it began"
    assert analysis.photo_analysis.hero == (1,)
    assert analysis.suggested_pages == 12


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(error=requests.Timeout("took too long")),
        FakeSession(FakeResponse(status=500)),
        FakeSession(FakeResponse(body_error=ValueError("no json"))),
        FakeSession(FakeResponse({"error": "rate limited"})),
        FakeSession(FakeResponse(["not", "a", "mapping"])),
    ],
)
def test_http_provider_failures_raise_enrichment_error(session):
    provider = HttpEnrichmentProvider("https://example.test/analyze", session=session)
    with pytest.raises(EnrichmentError):
        provider.analyze(["x"], 1)


def test_payload_is_parsed_tolerantly():
    analysis = NarrativeAnalysis.from_payload({"chapters": ["bad", {"title": "Ok"}], "pageCaptions": None})
    assert analysis.title == "My Photobook"
    assert [c.title for c in analysis.chapters] == ["Ok"]
    assert analysis.page_captions == []
    assert analysis.photo_analysis is None


def test_analysis_round_trips_through_dict():
    analysis = NarrativeAnalysis.from_payload(PAYLOAD)
    assert NarrativeAnalysis.from_payload(analysis.to_dict()) == analysis


def test_encode_thumbnail_is_bounded_jpeg(tmp_path):
    record = save_image(Image.new("RGB", (1200, 600), "navy"), tmp_path / "big.png")

    url = encode_thumbnail(record, max_edge=256)

    assert url.startswith("data:image/jpeg;base64,")
    with Image.open(io.BytesIO(base64.b64decode(url.split(",", 1)[1]))) as img:
        assert img.format == "JPEG"
        assert img.size == (256, 128)


def test_encode_thumbnail_without_source_raises():
    with pytest.raises(EnrichmentError):
        encode_thumbnail(PhotoRecord("x.jpg", 1, 1))


def test_request_enrichment_samples_and_returns_analysis(tmp_path):
    records = [save_image(noise_image(i, (32, 32)), tmp_path / f"{i}.png") for i in range(60)]
    provider = StaticProvider(NarrativeAnalysis(title="Ok"))

    analysis = request_enrichment(provider, records)

    assert analysis.title == "Ok"
    assert provider.calls == [(50, 60)]


def test_request_enrichment_degrades_on_failure(tmp_path, caplog):
    records = [save_image(noise_image(1, (32, 32)), tmp_path / "a.png")]
    provider = StaticProvider(error=EnrichmentError("service down"))
    caplog.set_level(logging.WARNING)

    assert request_enrichment(provider, records) is None
    assert any("service down" in r.getMessage() for r in caplog.records)


def test_request_enrichment_skips_oversized_photos(tmp_path, monkeypatch, caplog):
    small = save_image(noise_image(1, (20, 20)), tmp_path / "small.png")
    huge = save_image(noise_image(2, (64, 64)), tmp_path / "huge.png")
    provider = StaticProvider(NarrativeAnalysis(title="Ok"))
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
    caplog.set_level(logging.WARNING)

    analysis = request_enrichment(provider, [small, huge])

    assert analysis.title == "Ok"
    assert provider.calls == [(1, 2)]
    assert any("huge.png" in r.getMessage() for r in caplog.records)


def test_request_enrichment_without_any_encodable_photo(tmp_path, monkeypatch):
    records = [save_image(noise_image(i, (64, 64)), tmp_path / f"{i}.png") for i in range(3)]
    provider = StaticProvider(NarrativeAnalysis())
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

    assert request_enrichment(provider, records) is None
    assert provider.calls == []


def test_request_enrichment_skips_without_provider_or_pixels():
    assert request_enrichment(None, [PhotoRecord("a.jpg", 1, 1)]) is None
    provider = StaticProvider(NarrativeAnalysis())
    assert request_enrichment(provider, []) is None
    assert request_enrichment(provider, [PhotoRecord("a.jpg", 1, 1)]) is None
    assert provider.calls == []


def test_classify_photos_positional_fallback():
    assert classify_photos(7) == [HERO, SUPPORTING, DETAIL, SUPPORTING, SUPPORTING, HERO, SUPPORTING]


def test_classify_photos_uses_service_roles():
    analysis = NarrativeAnalysis.from_payload(PAYLOAD)
    assert classify_photos(4, analysis) == [SUPPORTING, HERO, DETAIL, SUPPORTING]
