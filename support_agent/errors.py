"""
Error taxonomy shared by the workflow engine, the retrieval pipeline and the
HTTP layer.

Routes translate these into status codes; nothing here knows about HTTP.
"""

from typing import Optional


class SupportAgentError(Exception):
    """Base class for all domain errors raised by the service."""


class ValidationError(SupportAgentError):
    """Input or resume data does not match its declared schema."""

    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class StateError(SupportAgentError):
    """An operation is not allowed in the run's current state."""


class NotFoundError(SupportAgentError):
    """A workflow or run identifier does not resolve."""


class BackendError(SupportAgentError):
    """A retrieval or LLM backend call failed.

    Carries enough context to diagnose the failure without the stack trace:
    which backend, which index and namespace, and a suggested fix.
    """

    def __init__(
        self,
        message: str,
        *,
        backend: str,
        index: Optional[str] = None,
        namespace: Optional[str] = None,
        remediation: Optional[str] = None,
    ):
        super().__init__(message)
        self.backend = backend
        self.index = index
        self.namespace = namespace
        self.remediation = remediation

    def diagnostics(self) -> dict:
        details = {"backend": self.backend}
        if self.index:
            details["index"] = self.index
        if self.namespace:
            details["namespace"] = self.namespace
        if self.remediation:
            details["remediation"] = self.remediation
        return details


class ConfigError(SupportAgentError):
    """A required setting for a backend is missing."""

    def __init__(self, setting: str, message: Optional[str] = None):
        super().__init__(
            message or f"{setting} environment variable is required but not set."
        )
        self.setting = setting
