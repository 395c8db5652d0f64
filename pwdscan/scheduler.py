"""
Analysis scheduler.

Fans out one task per file, bounded by a semaphore, and fans results back
in through a queue sized to the number of files. Every input path yields
exactly one AnalysisResult, whatever happens to its task.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncIterator, Callable, List, Optional, Sequence

from pwdscan._logging import get_component_logger
from pwdscan.engine import ToolCallingEngine
from pwdscan.files import read_file
from pwdscan.prompts import PromptLoader, render
from pwdscan.types import AnalysisResult, AnalysisTask, ErrorCategory, ScanError


class AnalysisScheduler:
    def __init__(
        self,
        engine: ToolCallingEngine,
        prompts: PromptLoader,
        role: str = "security",
        max_concurrency: int = 8,
        timeout: Optional[float] = None,
        reader: Callable[[str], str] = read_file,
        logger: Optional[Any] = None,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.engine = engine
        self.prompts = prompts
        self.role = role
        self.max_concurrency = max_concurrency
        self.timeout = timeout
        self.reader = reader
        self._logger = get_component_logger("AnalysisScheduler", logger)

    async def analyze(
        self, paths: Sequence[str], cancel: Optional[asyncio.Event] = None
    ) -> AsyncIterator[AnalysisResult]:
        """
        Analyze ``paths`` concurrently, yielding results as they complete.

        Results arrive in completion order. The iterator is exhausted only
        after every file has produced its result. Setting ``cancel`` stops
        tasks that have not started and aborts in-flight model calls; both
        still yield a CANCELLED result.
        """
        paths = list(paths)
        if not paths:
            return

        cancel = cancel if cancel is not None else asyncio.Event()
        results: asyncio.Queue = asyncio.Queue(maxsize=len(paths))
        semaphore = asyncio.Semaphore(self.max_concurrency)
        loop = asyncio.get_running_loop()
        deadline = loop.call_later(self.timeout, cancel.set) if self.timeout else None

        started = time.monotonic()
        self._logger.info(
            "analysis_started", files=len(paths), max_concurrency=self.max_concurrency
        )
        workers: List[asyncio.Task] = [
            asyncio.create_task(self._worker(path, semaphore, cancel, results))
            for path in paths
        ]
        failed = 0
        try:
            for _ in range(len(paths)):
                result = await results.get()
                if not result.ok:
                    failed += 1
                yield result
        finally:
            if deadline is not None:
                deadline.cancel()
            for worker in workers:
                if not worker.done():
                    worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            self._logger.info(
                "analysis_completed",
                files=len(paths),
                failed=failed,
                elapsed=round(time.monotonic() - started, 3),
            )

    async def _worker(
        self,
        path: str,
        semaphore: asyncio.Semaphore,
        cancel: asyncio.Event,
        results: asyncio.Queue,
    ) -> None:
        async with semaphore:
            start = time.monotonic()
            try:
                if cancel.is_set():
                    raise ScanError(ErrorCategory.CANCELLED, "analysis cancelled before start")
                result = await self._analyze_one(path, cancel, start)
            except ScanError as exc:
                result = AnalysisResult.failed(path, time.monotonic() - start, exc)
            except Exception as exc:  # keep the one-result-per-file contract
                err = ScanError(ErrorCategory.UNKNOWN, f"{type(exc).__name__}: {exc}")
                result = AnalysisResult.failed(path, time.monotonic() - start, err)

            if result.ok:
                self._logger.info("file_analyzed", file=path, elapsed=round(result.elapsed, 3))
            else:
                self._logger.warning(
                    "file_failed",
                    file=path,
                    category=result.error.category.value,
                    transport=result.error.is_transport,
                    error=result.error.message,
                )
            # publish before releasing the slot so a queued task sees any
            # cancellation the consumer triggers in response
            results.put_nowait(result)

    async def _analyze_one(
        self, path: str, cancel: asyncio.Event, start: float
    ) -> AnalysisResult:
        content = await asyncio.to_thread(self.reader, path)
        task = AnalysisTask(file_path=path, file_content=content)
        prompt = render(self.prompts.load(self.role), task.file_content)

        outcome = await self.engine.run(prompt, cancel=cancel, file_path=task.file_path)
        return AnalysisResult(
            file_path=task.file_path,
            elapsed=time.monotonic() - start,
            output_text=outcome.text,
            error=outcome.error,
        )
