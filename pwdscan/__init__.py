__version__ = "0.1.0"

from .types import (
    AnalysisResult,
    AnalysisTask,
    Conversation,
    ErrorCategory,
    Message,
    MessageRole,
    ModelResponse,
    ScanError,
    TextPart,
    ToolCall,
    ToolResult,
    ToolSpec,
)
from .endpoints import EndpointSpec
from .tools import CapabilityRegistry, build_default_registry, flag_file
from .engine import EngineResult, ToolCallingEngine
from .scheduler import AnalysisScheduler

__all__ = [
    "__version__",
    # Types
    "AnalysisResult",
    "AnalysisTask",
    "Conversation",
    "ErrorCategory",
    "Message",
    "MessageRole",
    "ModelResponse",
    "ScanError",
    "TextPart",
    "ToolCall",
    "ToolResult",
    "ToolSpec",
    # Endpoints
    "EndpointSpec",
    # Capabilities
    "CapabilityRegistry",
    "build_default_registry",
    "flag_file",
    # Engine
    "EngineResult",
    "ToolCallingEngine",
    # Scheduler
    "AnalysisScheduler",
]
