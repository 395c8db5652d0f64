"""Tests for the analysis scheduler."""

import asyncio
import json
import random
import uuid

import pytest
from structlog.testing import capture_logs

from pwdscan.adapters.base import ModelClient
from pwdscan.engine import ToolCallingEngine
from pwdscan.prompts import PromptLoader
from pwdscan.scheduler import AnalysisScheduler
from pwdscan.tools import build_default_registry
from pwdscan.types import ErrorCategory, ModelResponse, ScanError, ToolCall


class FakeModel(ModelClient):
    """
    Flags a file as leaking when its prompt contains ``SECRET``.

    Files whose prompt contains a marker from ``fail_on`` get a connection
    error; ``hang_on`` markers block until cancelled.
    """

    def __init__(self, latency=0.0, fail_on=(), hang_on=()):
        self.latency = latency
        self.fail_on = fail_on
        self.hang_on = hang_on
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, conversation, tools):
        prompt = conversation.messages[0].text
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(random.uniform(0, self.latency))
            if any(marker in prompt for marker in self.hang_on):
                await asyncio.sleep(60)
            if any(marker in prompt for marker in self.fail_on):
                raise ScanError(ErrorCategory.CONNECTION, "connection refused")
            flag = 1 if "SECRET" in prompt else 0
            call = ToolCall(
                id=f"call_{uuid.uuid4().hex}",
                name="flagFile",
                arguments=json.dumps({"flag": flag}),
            )
            return ModelResponse(tool_calls=(call,))
        finally:
            self.in_flight -= 1


def _reader(contents):
    def read(path):
        if path not in contents:
            raise ScanError(ErrorCategory.INPUT, f"failed to read file {path}")
        return contents[path]
    return read


def _scheduler(model, contents, **kwargs):
    engine = ToolCallingEngine(model, build_default_registry())
    return AnalysisScheduler(engine, PromptLoader(), reader=_reader(contents), **kwargs)


async def _collect(scheduler, paths, cancel=None):
    return [r async for r in scheduler.analyze(paths, cancel=cancel)]


@pytest.mark.asyncio
async def test_empty_input_yields_nothing():
    scheduler = _scheduler(FakeModel(), {})
    assert await _collect(scheduler, []) == []


@pytest.mark.asyncio
async def test_one_result_per_file_with_verdicts():
    contents = {
        "config/settings.py": "PASSWORD = 'SECRET hunter2'",
        "README.md": "# hello",
        "main.go": "package main",
    }
    scheduler = _scheduler(FakeModel(), contents)

    results = await _collect(scheduler, list(contents))

    by_path = {r.file_path: r for r in results}
    assert len(results) == 3
    assert set(by_path) == set(contents)
    assert by_path["config/settings.py"].output_text == "leak"
    assert by_path["README.md"].output_text == "safe"
    assert all(r.ok and r.elapsed >= 0 for r in results)


@pytest.mark.asyncio
async def test_transport_fault_isolated_to_one_file():
    contents = {f"f{i}.txt": f"file {i}" for i in range(20)}
    contents["f7.txt"] = "file BROKEN"
    model = FakeModel(latency=0.01, fail_on=("BROKEN",))
    scheduler = _scheduler(model, contents, max_concurrency=5)

    results = await _collect(scheduler, list(contents))

    assert len(results) == 20
    failed = [r for r in results if not r.ok]
    assert [r.file_path for r in failed] == ["f7.txt"]
    assert failed[0].error.category == ErrorCategory.CONNECTION
    assert "connection refused" in failed[0].format_line()
    assert all(r.output_text == "safe" for r in results if r.ok)


@pytest.mark.asyncio
async def test_read_failure_becomes_input_error_result():
    contents = {"ok.txt": "fine"}
    scheduler = _scheduler(FakeModel(), contents)

    results = await _collect(scheduler, ["ok.txt", "missing.txt"])

    by_path = {r.file_path: r for r in results}
    assert by_path["ok.txt"].ok
    assert by_path["missing.txt"].error.category == ErrorCategory.INPUT
    assert by_path["missing.txt"].output_text.startswith("Failed to analyze missing.txt")


@pytest.mark.asyncio
async def test_prompt_failure_becomes_input_error_result(tmp_path):
    prompts = tmp_path / "prompts.yaml"
    prompts.write_text("role:\n  security: no placeholder here\n")
    engine = ToolCallingEngine(FakeModel(), build_default_registry())
    scheduler = AnalysisScheduler(
        engine, PromptLoader(prompts), reader=_reader({"a.txt": "x", "b.txt": "y"})
    )

    results = await _collect(scheduler, ["a.txt", "b.txt"])

    assert len(results) == 2
    assert all(r.error.category == ErrorCategory.INPUT for r in results)


@pytest.mark.asyncio
async def test_unknown_tool_surfaces_as_error_result():
    class RogueModel(ModelClient):
        async def send(self, conversation, tools):
            return ModelResponse(tool_calls=(ToolCall(id="x", name="shell", arguments="{}"),))

    scheduler = _scheduler(RogueModel(), {"a.txt": "x"})

    (result,) = await _collect(scheduler, ["a.txt"])

    assert result.error.category == ErrorCategory.UNKNOWN_CAPABILITY
    assert "shell" in result.output_text


@pytest.mark.asyncio
async def test_unexpected_exception_still_yields_result():
    class BuggyModel(ModelClient):
        async def send(self, conversation, tools):
            raise KeyError("choices")

    scheduler = _scheduler(BuggyModel(), {"a.txt": "x", "b.txt": "y"})

    results = await _collect(scheduler, ["a.txt", "b.txt"])

    assert len(results) == 2
    assert all(r.error.category == ErrorCategory.UNKNOWN for r in results)


@pytest.mark.asyncio
async def test_hundred_files_with_random_latency():
    contents = {f"src/file_{i:03d}.py": ("SECRET" if i % 3 == 0 else "clean") for i in range(100)}
    model = FakeModel(latency=0.02)
    scheduler = _scheduler(model, contents, max_concurrency=16)

    results = await _collect(scheduler, list(contents))

    assert len(results) == 100
    assert len({r.file_path for r in results}) == 100
    assert {r.file_path for r in results} == set(contents)
    assert sum(r.output_text == "leak" for r in results) == 34
    assert model.calls == 100
    assert model.max_in_flight <= 16


@pytest.mark.asyncio
async def test_concurrency_limit_is_respected():
    contents = {f"{i}.txt": "x" for i in range(12)}
    model = FakeModel(latency=0.02)
    scheduler = _scheduler(model, contents, max_concurrency=3)

    await _collect(scheduler, list(contents))

    assert 1 <= model.max_in_flight <= 3


@pytest.mark.asyncio
async def test_cancel_skips_pending_and_aborts_inflight():
    contents = {"done.txt": "quick"}
    contents.update({f"slow{i}.txt": "HANG" for i in range(2)})
    contents.update({f"queued{i}.txt": "quick" for i in range(5)})
    model = FakeModel(hang_on=("HANG",))
    scheduler = _scheduler(model, contents, max_concurrency=3)
    cancel = asyncio.Event()

    results = []
    async for result in scheduler.analyze(list(contents), cancel=cancel):
        results.append(result)
        if result.file_path == "done.txt":
            cancel.set()

    by_path = {r.file_path: r for r in results}
    assert len(results) == len(contents)
    assert by_path["done.txt"].ok
    assert by_path["done.txt"].output_text == "safe"
    for path in ("slow0.txt", "slow1.txt"):
        assert by_path[path].error.category == ErrorCategory.CANCELLED
    queued = [r for p, r in by_path.items() if p.startswith("queued")]
    assert all(r.error.category == ErrorCategory.CANCELLED for r in queued)
    # queued files never reached the model
    assert model.calls <= 3


@pytest.mark.asyncio
async def test_global_deadline_cancels_remaining_work():
    contents = {"fast.txt": "quick", "stuck.txt": "HANG"}
    scheduler = _scheduler(FakeModel(hang_on=("HANG",)), contents, timeout=0.2)

    results = await asyncio.wait_for(_collect(scheduler, list(contents)), timeout=5.0)

    by_path = {r.file_path: r for r in results}
    assert by_path["fast.txt"].ok
    assert by_path["stuck.txt"].error.category == ErrorCategory.CANCELLED


@pytest.mark.asyncio
async def test_closing_iterator_early_cancels_workers():
    contents = {f"{i}.txt": "HANG" for i in range(4)}
    contents["first.txt"] = "quick"
    model = FakeModel(hang_on=("HANG",))
    scheduler = _scheduler(model, contents)

    stream = scheduler.analyze(list(contents))
    first = await stream.__anext__()
    await asyncio.wait_for(stream.aclose(), timeout=1.0)

    assert first.file_path == "first.txt"
    assert model.in_flight == 0


def test_max_concurrency_must_be_positive():
    engine = ToolCallingEngine(FakeModel(), build_default_registry())
    with pytest.raises(ValueError):
        AnalysisScheduler(engine, PromptLoader(), max_concurrency=0)


@pytest.mark.asyncio
async def test_failure_log_marks_transport_errors():
    contents = {"down.txt": "BROKEN"}
    with capture_logs() as logs:
        scheduler = _scheduler(FakeModel(fail_on=("BROKEN",)), contents)
        await _collect(scheduler, ["down.txt", "missing.txt"])

    failures = {e["file"]: e for e in logs if e["event"] == "file_failed"}
    assert failures["down.txt"]["category"] == "connection"
    assert failures["down.txt"]["transport"] is True
    assert failures["missing.txt"]["category"] == "input"
    assert failures["missing.txt"]["transport"] is False
