"""Alert Management Engine - Exception Hierarchy.

Only configuration and producer-input problems raise. Lookups of unknown
alerts, rules and policies return None/False instead.
"""

from typing import Any, Dict, List, Optional


class AlertEngineError(Exception):
    """Base exception for all alert engine errors.

    Callers can catch the whole hierarchy with a single handler.
    """

    def __init__(
        self,
        message: str,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or []


class ConfigurationError(AlertEngineError, ValueError):
    """Raised when a suppression rule or escalation policy is malformed."""

    def __init__(
        self,
        message: str = "Invalid configuration",
        details: Optional[List[Dict[str, Any]]] = None,
        field: Optional[str] = None,
    ):
        if field and not details:
            details = [{"field": field, "issue": message}]
        super().__init__(message, details)


class InvalidAlertError(AlertEngineError, ValueError):
    """Raised when a producer submits a candidate that cannot become an alert."""

    def __init__(self, message: str = "Invalid alert candidate", field: Optional[str] = None):
        details = [{"field": field, "issue": message}] if field else []
        super().__init__(message, details)
