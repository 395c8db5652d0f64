from .base import ModelClient
from .openai_chat import OpenAIChatClient

__all__ = ["ModelClient", "OpenAIChatClient"]
