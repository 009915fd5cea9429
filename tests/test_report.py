import io

from rich.console import Console

from indexsync.models import ItemFailure, RunOutcome
from indexsync.report import NullProgress, ProgressReporter, RunReporter


def _reporter(plain=False):
    buffer = io.StringIO()
    console = Console(file=buffer, force_terminal=False, width=120)
    return RunReporter(console=console, plain=plain), buffer


def test_plain_reporter_uses_null_progress():
    reporter, _ = _reporter(plain=True)
    assert isinstance(reporter.progress(), NullProgress)
    reporter, _ = _reporter()
    assert isinstance(reporter.progress(), ProgressReporter)


def test_success_and_error_blocks():
    reporter, buffer = _reporter()
    reporter.success("Put 37 items into the queue")
    reporter.error(["Site `x` is not available for indexing"])
    output = buffer.getvalue()
    assert "[OK] Put 37 items into the queue" in output
    assert "[ERROR] Site `x` is not available for indexing" in output


def test_failure_and_summary():
    reporter, buffer = _reporter()
    failure = ItemFailure(
        item_id=3,
        site_id="main",
        type_name="news",
        item_uid=42,
        message="boom",
        trace=["src/indexsync/drain.py: 10"],
    )
    outcome = RunOutcome(total=5, attempted=5, succeeded=4, failures=[failure])
    reporter.failure(failure)
    reporter.summary(outcome)
    output = buffer.getvalue()
    assert "Error when indexing main:news:42" in output
    assert "src/indexsync/drain.py: 10" in output
    assert "Attempted 5 of 5 items: 4 indexed, 0 skipped, 1 failed" in output


def test_progress_can_be_hidden_and_redisplayed():
    reporter, _ = _reporter()
    progress = reporter.progress()
    progress.start(3)
    progress.advance()
    progress.clear()
    progress.display()
    progress.advance()
    assert progress.completed == 2
    progress.finish()
    assert progress.completed == 0
