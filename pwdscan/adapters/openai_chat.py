"""
OpenAI Chat Completions client.

Works against the OpenAI API and compatible endpoints (Azure OpenAI, vLLM,
LocalAI, internal gateways) that accept ``tools`` in the request body.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

import httpx

from pwdscan import __version__
from pwdscan._logging import get_component_logger
from pwdscan.adapters.base import ModelClient
from pwdscan.endpoints import EndpointSpec
from pwdscan.types import (
    Conversation,
    ErrorCategory,
    Message,
    MessageRole,
    ModelResponse,
    ScanError,
    ToolCall,
    ToolResult,
    ToolSpec,
)

USER_AGENT = f"pwdscan/{__version__}"


def _categorize_exception(exc: Exception) -> ScanError:
    name = exc.__class__.__name__
    if "Timeout" in name:
        return ScanError(ErrorCategory.TIMEOUT, str(exc) or name)
    if "Network" in name or "Connect" in name:
        return ScanError(ErrorCategory.CONNECTION, str(exc) or name)
    return ScanError(ErrorCategory.TRANSPORT, str(exc) or name)


def _protocol_error(message: str, raw: Any = None) -> ScanError:
    return ScanError(ErrorCategory.PROTOCOL, message, raw=raw)


def _serialize_message(message: Message) -> List[Dict[str, Any]]:
    """Map one conversation message onto chat-completions wire messages."""
    if message.role == MessageRole.HUMAN:
        return [{"role": "user", "content": message.text}]

    if message.role == MessageRole.ASSISTANT:
        wire: Dict[str, Any] = {"role": "assistant", "content": message.text or None}
        calls = message.tool_calls
        if calls:
            wire["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in calls
            ]
        return [wire]

    # one wire message per tool result
    return [
        {
            "role": "tool",
            "tool_call_id": part.tool_call_id,
            "name": part.name,
            "content": part.content,
        }
        for part in message.parts
        if isinstance(part, ToolResult)
    ]


def _parse_tool_call(raw: Any) -> ToolCall:
    if not isinstance(raw, dict):
        raise _protocol_error("tool call is not an object", raw=raw)
    call_id = raw.get("id")
    function = raw.get("function")
    if not isinstance(call_id, str) or not call_id:
        raise _protocol_error("tool call is missing an id", raw=raw)
    if not isinstance(function, dict) or not isinstance(function.get("name"), str):
        raise _protocol_error("tool call is missing a function name", raw=raw)

    arguments = function.get("arguments")
    if arguments is None:
        arguments = "{}"
    elif isinstance(arguments, dict):
        # some compatible servers send decoded arguments
        arguments = json.dumps(arguments)
    elif not isinstance(arguments, str):
        raise _protocol_error("tool call arguments must be a JSON string", raw=raw)

    return ToolCall(id=call_id, name=function["name"], arguments=arguments)


def _parse_response(data: Any) -> ModelResponse:
    """Decode a chat completion body, rejecting anything not shaped like one."""
    if not isinstance(data, dict):
        raise _protocol_error("response body is not an object", raw=data)
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise _protocol_error("response has no choices", raw=data)
    choice = choices[0]
    if not isinstance(choice, dict) or not isinstance(choice.get("message"), dict):
        raise _protocol_error("choice has no message", raw=data)

    message = choice["message"]
    content = message.get("content") or ""
    if not isinstance(content, str):
        raise _protocol_error("message content is not text", raw=data)
    raw_calls = message.get("tool_calls") or []
    if not isinstance(raw_calls, list):
        raise _protocol_error("tool_calls is not a list", raw=data)

    return ModelResponse(
        text=content,
        tool_calls=tuple(_parse_tool_call(c) for c in raw_calls),
        finish_reason=choice.get("finish_reason"),
        usage=data.get("usage"),
    )


class OpenAIChatClient(ModelClient):
    """
    Model client for OpenAI-compatible Chat Completions endpoints.

    Each ``send`` issues exactly one POST; there is no retry. Headers from
    the endpoint spec are applied first, then Content-Type, Accept and
    User-Agent are set so callers cannot override them.
    """

    path = "/chat/completions"

    def __init__(
        self,
        endpoint: EndpointSpec,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self._transport = transport
        self._logger = get_component_logger("OpenAIChatClient")

    def _build_headers(self) -> httpx.Headers:
        headers = httpx.Headers(self.endpoint.headers)
        if self.endpoint.api_key:
            headers["Authorization"] = f"Bearer {self.endpoint.api_key}"
        headers["Content-Type"] = "application/json"
        headers["Accept"] = "application/json"
        headers["User-Agent"] = USER_AGENT
        return headers

    def _build_payload(
        self, conversation: Conversation, tools: Sequence[ToolSpec]
    ) -> Dict[str, Any]:
        """Build chat completions request payload."""
        messages: List[Dict[str, Any]] = []
        for message in conversation:
            messages.extend(_serialize_message(message))

        payload: Dict[str, Any] = {
            "model": self.endpoint.model,
            "messages": messages,
        }
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": t.name,
                        "description": t.description,
                        "parameters": t.parameters,
                    },
                }
                for t in tools
            ]
        return payload

    async def send(
        self, conversation: Conversation, tools: Sequence[ToolSpec]
    ) -> ModelResponse:
        payload = self._build_payload(conversation, tools)

        try:
            async with httpx.AsyncClient(
                base_url=self.endpoint.base_url,
                timeout=httpx.Timeout(self.endpoint.timeout, connect=10.0),
                headers=self._build_headers(),
                transport=self._transport,
            ) as client:
                resp = await client.post(self.path, json=payload)
        except httpx.HTTPError as exc:
            err = _categorize_exception(exc)
            self._logger.warning(
                "model_request_failed", category=err.category.value, error=err.message
            )
            raise err from exc

        if resp.status_code >= 400:
            self._logger.warning("model_request_failed", status=resp.status_code)
            raise ScanError(
                ErrorCategory.TRANSPORT, f"HTTP {resp.status_code}", raw=resp.text
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise _protocol_error(f"response is not JSON: {exc}", raw=resp.text) from exc
        return _parse_response(data)
