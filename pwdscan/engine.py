"""
Tool-calling engine.

Drives one conversation through prompt -> model -> tool execution ->
(optionally) model again, until the model stops requesting tools or the
round budget is spent.
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Optional, Tuple, TypeVar

from pwdscan._logging import get_component_logger
from pwdscan.adapters.base import ModelClient
from pwdscan.tools import CapabilityRegistry
from pwdscan.types import (
    Conversation,
    ErrorCategory,
    Message,
    ModelResponse,
    ScanError,
    ToolCall,
    ToolResult,
)

T = TypeVar("T")


async def await_or_cancel(awaitable: Awaitable[T], cancel: Optional[asyncio.Event]) -> T:
    """
    Await ``awaitable`` unless ``cancel`` fires first.

    On cancellation the pending call is cancelled and a CANCELLED
    ScanError is raised in its place.
    """
    if cancel is None:
        return await awaitable
    if cancel.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise ScanError(ErrorCategory.CANCELLED, "analysis cancelled")

    call = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        await _cancel_all(call, waiter)
        raise

    if call in done:
        waiter.cancel()
        return call.result()
    await _cancel_all(call, waiter)
    raise ScanError(ErrorCategory.CANCELLED, "model call cancelled")


async def _cancel_all(*futures: asyncio.Future) -> None:
    for future in futures:
        future.cancel()
    await asyncio.gather(*futures, return_exceptions=True)


@dataclass(frozen=True)
class EngineResult:
    text: str
    conversation: Conversation
    rounds: int
    error: Optional[ScanError] = None


def _decode_arguments(call: ToolCall) -> Dict[str, Any]:
    try:
        decoded = json.loads(call.arguments or "{}")
    except ValueError as exc:
        raise ScanError(
            ErrorCategory.PROTOCOL,
            f"undecodable arguments for {call.name}: {exc}",
            raw=call.arguments,
        ) from exc
    if not isinstance(decoded, dict):
        raise ScanError(
            ErrorCategory.PROTOCOL,
            f"arguments for {call.name} are not a JSON object",
            raw=call.arguments,
        )
    return decoded


class ToolCallingEngine:
    """
    Runs the tool-calling protocol for one conversation at a time.

    The engine keeps no per-run state; every ``run`` owns its own
    Conversation, so a single instance is shared by all scheduler tasks.

    With ``max_rounds=1`` (the default) the model is queried once and, if it
    requested tools, the last tool result is the outcome. Larger values let
    the model read the tool results and answer again.
    """

    def __init__(
        self,
        client: ModelClient,
        registry: CapabilityRegistry,
        max_rounds: int = 1,
        logger: Optional[Any] = None,
    ):
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.client = client
        self.registry = registry
        self.max_rounds = max_rounds
        self._logger = get_component_logger("ToolCallingEngine", logger)

    def start(self, prompt: str) -> Conversation:
        return Conversation([Message.human(prompt)])

    async def request(
        self, conversation: Conversation, cancel: Optional[asyncio.Event] = None
    ) -> ModelResponse:
        response = await await_or_cancel(
            self.client.send(conversation, self.registry.definitions()), cancel
        )
        conversation.append(Message.assistant(response.text, response.tool_calls))
        return response

    def execute(
        self, conversation: Conversation, call: ToolCall
    ) -> Tuple[ToolResult, Optional[ScanError]]:
        """Execute one tool call and append its correlated result.

        Failures never escape: they are recorded as an error ToolResult so
        the conversation can still terminate normally.
        """
        try:
            content = self.registry.invoke(call.name, _decode_arguments(call))
        except ScanError as exc:
            self._logger.warning(
                "tool_call_failed",
                tool=call.name,
                tool_call_id=call.id,
                category=exc.category.value,
                error=exc.message,
            )
            result = ToolResult(
                tool_call_id=call.id, name=call.name, content=f"error: {exc}", is_error=True
            )
            conversation.append(Message.tool_result(result))
            return result, exc

        result = ToolResult(tool_call_id=call.id, name=call.name, content=content)
        conversation.append(Message.tool_result(result))
        return result, None

    async def run(
        self,
        prompt: str,
        cancel: Optional[asyncio.Event] = None,
        file_path: Optional[str] = None,
    ) -> EngineResult:
        conversation = self.start(prompt)
        log = self._logger.bind(file=file_path) if file_path else self._logger
        last_error: Optional[ScanError] = None

        for round_no in range(1, self.max_rounds + 1):
            response = await self.request(conversation, cancel)
            log.debug("model_round", round=round_no, tool_calls=len(response.tool_calls))
            if not response.tool_calls:
                return EngineResult(response.text, conversation, round_no)

            for call in response.tool_calls:
                _, last_error = self.execute(conversation, call)

        # round budget spent with tools still being requested
        return EngineResult(conversation.last.text, conversation, self.max_rounds, last_error)
