"""Completion client, token estimation and writing actions."""

from .client import AIClient, ClientSettings, CompletionPort, CompletionRequest, CompletionResult
from .tokens import estimate_tokens

__all__ = [
    "AIClient",
    "ClientSettings",
    "CompletionPort",
    "CompletionRequest",
    "CompletionResult",
    "estimate_tokens",
]
