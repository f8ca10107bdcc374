"""Multi-language execution of room source text."""

from coderoom.execution.base import ExecutionBackend
from coderoom.execution.config import ExecutionConfig, SandboxLimits
from coderoom.execution.dispatcher import ExecutionDispatcher
from coderoom.execution.mock import MockExecutionBackend
from coderoom.execution.pipelines import LANGUAGES, LanguageSpec, lookup_language

__all__ = [
    "LANGUAGES",
    "ExecutionBackend",
    "ExecutionConfig",
    "ExecutionDispatcher",
    "LanguageSpec",
    "MockExecutionBackend",
    "SandboxLimits",
    "lookup_language",
]
