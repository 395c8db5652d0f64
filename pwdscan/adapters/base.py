from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from pwdscan.types import Conversation, ModelResponse, ToolSpec


class ModelClient(ABC):
    @abstractmethod
    async def send(
        self, conversation: Conversation, tools: Sequence[ToolSpec]
    ) -> ModelResponse:
        """
        Send the conversation with the advertised tools and return the
        model's reply. Raises ScanError on transport or protocol failure.
        The conversation must not be modified.
        """
        ...
