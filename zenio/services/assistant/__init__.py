"""Reasoning service package: protocol interface, exceptions and HTTP client."""

from zenio.services.assistant.interface import (
    AssistantAuthError,
    AssistantError,
    AssistantRateLimitError,
    AssistantRequestError,
    AssistantTransportError,
    ReasoningServiceInterface,
    RunFailedError,
    RunTimeoutError,
    ThreadBusyError,
)
from zenio.services.assistant.client import AssistantClient, error_for_response

__all__ = [
    "AssistantAuthError",
    "AssistantClient",
    "AssistantError",
    "AssistantRateLimitError",
    "AssistantRequestError",
    "AssistantTransportError",
    "ReasoningServiceInterface",
    "RunFailedError",
    "RunTimeoutError",
    "ThreadBusyError",
    "error_for_response",
]
