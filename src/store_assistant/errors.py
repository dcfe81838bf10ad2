"""Exception hierarchy for the assistant core."""

from __future__ import annotations


class AssistantError(Exception):
    """Base class for all assistant errors."""


class ValidationError(AssistantError):
    """Incoming message rejected before a turn starts (empty, too long, throttled)."""


class PreparationError(AssistantError):
    """Conversation could not be created or the user turn could not be persisted."""


class GenerationError(AssistantError):
    """The model call failed while generating a response."""


class ToolExecutionError(AssistantError):
    """A tool handler raised while running."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name


class ToolTimeoutError(ToolExecutionError):
    """A tool handler exceeded its time budget."""

    def __init__(self, tool_name: str, timeout: float):
        super().__init__(tool_name, f"Tool '{tool_name}' timed out after {timeout:g}s.")
        self.timeout = timeout


class AuthorizationError(AssistantError):
    """A customer-scoped tool touched a record the caller does not own."""


class ToolRegistrationError(AssistantError):
    """The tool dispatch table does not match the persona's closed set of tool names."""
