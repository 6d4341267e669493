from photobook.analysis.batch import ChunkedAnalysisJob, analyze_batch
from photobook.models import PhotoRecord, QualityScore


class CountingAnalyzer:
    """Analyzer stub returning neutral scores without touching pixels."""

    def __init__(self):
        self.seen = []

    def analyze(self, record):
        self.seen.append(record.name)
        return QualityScore.neutral(record)


def _records(n):
    return [PhotoRecord(f"p{i}.jpg", i, i) for i in range(n)]


def test_analyze_batch_reports_progress_per_chunk():
    progress = []
    analyzer = CountingAnalyzer()

    scores = analyze_batch(_records(25), analyzer, chunk_size=10, on_progress=lambda d, t: progress.append((d, t)))

    assert len(scores) == 25
    assert progress == [(10, 25), (20, 25), (25, 25)]
    assert analyzer.seen == [f"p{i}.jpg" for i in range(25)]


def test_job_defers_every_chunk(scheduler):
    analyzer = CountingAnalyzer()
    finished = []
    job = ChunkedAnalysisJob(
        _records(25), analyzer, chunk_size=10, scheduler=scheduler, on_finished=finished.append
    )

    job.start()
    assert job.is_running
    assert analyzer.seen == []
    assert scheduler.calls[0][0] == 0

    scheduler.run_next()
    assert len(analyzer.seen) == 10
    assert len(scheduler.calls) == 1

    scheduler.run_all()
    assert len(job.results) == 25
    assert job.is_finished
    assert len(finished) == 1 and len(finished[0]) == 25


def test_cancel_stops_before_next_chunk(scheduler):
    analyzer = CountingAnalyzer()
    job = ChunkedAnalysisJob(_records(30), analyzer, chunk_size=10, scheduler=scheduler)

    job.start()
    scheduler.run_next()
    job.cancel()
    scheduler.run_all()

    assert len(analyzer.seen) == 10
    assert job.is_cancelled
    assert not job.is_finished


def test_empty_job_finishes(scheduler):
    finished = []
    job = ChunkedAnalysisJob([], CountingAnalyzer(), scheduler=scheduler, on_finished=finished.append)
    job.start()
    scheduler.run_all()
    assert finished == [[]]
    assert job.is_finished
