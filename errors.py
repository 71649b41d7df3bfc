"""
Error types raised by the todo service.

Each error carries the HTTP status the server answers with and a message
that is safe to show to the user.
"""

from typing import Optional


class TodoServiceError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(TodoServiceError):
    """Bad input shape or length, rejected before any external call"""
    status_code = 400
    default_message = "Invalid request"


class NoTasksExtracted(TodoServiceError):
    status_code = 400
    default_message = "No todos could be extracted from the text, please rephrase"


class TodoNotFound(TodoServiceError):
    status_code = 404
    default_message = "Todo not found"


class ProviderAuthError(TodoServiceError):
    status_code = 401
    default_message = "AI API key is invalid, check the configuration"


class ProviderUnavailable(TodoServiceError):
    status_code = 503
    default_message = "AI service is unreachable, check the network or configuration"


class ProviderError(TodoServiceError):
    default_message = "AI service returned an error"


class MalformedResponse(TodoServiceError):
    default_message = "AI returned data in an unexpected format"


class PersistenceError(TodoServiceError):
    default_message = "Failed to save todos"
