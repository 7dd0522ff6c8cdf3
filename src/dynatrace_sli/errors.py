"""
Error taxonomy for SLI retrieval.

Every error raised by the service derives from ``SLIServiceError`` and
carries an ``ErrorKind`` tag plus structured context, so callers and
tests can branch on the kind and inspect the context without parsing
message text.

Fatal kinds abort the request before a completion event is sent.
``IndicatorEvaluationFailure`` is the only recoverable kind: it is caught
per indicator and turned into outcome data.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional


class ErrorKind(str, Enum):
    """Kinds of failure a retrieval request can run into."""
    CONFIGURATION = "configuration"
    CREDENTIAL_RESOLUTION = "credential_resolution"
    QUERY_CONFIGURATION = "query_configuration"
    INDICATOR_EVALUATION = "indicator_evaluation"
    DISPATCH = "dispatch"


class SLIServiceError(Exception):
    """Base class for all SLI service errors."""

    kind: ErrorKind

    @property
    def fatal(self) -> bool:
        return self.kind is not ErrorKind.INDICATOR_EVALUATION


class ConfigurationError(SLIServiceError):
    """A required configuration value is missing or malformed."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, name: str, reason: str, value: Optional[str] = None) -> None:
        self.name = name
        self.reason = reason
        self.value = value
        super().__init__(f"Invalid configuration value '{name}': {reason}")


class CredentialTierError(Exception):
    """
    Failure of a single credential tier.

    Not fatal on its own; the resolver collects these and only raises
    ``CredentialResolutionError`` once every tier has failed.
    """

    def __init__(
        self,
        tier: str,
        record: str,
        reason: str,
        field: Optional[str] = None,
    ) -> None:
        self.tier = tier
        self.record = record
        self.reason = reason
        self.field = field
        super().__init__(reason)


class CredentialResolutionError(SLIServiceError):
    """All credential tiers were exhausted without success."""

    kind = ErrorKind.CREDENTIAL_RESOLUTION

    def __init__(self, project: str, attempts: List[CredentialTierError]) -> None:
        self.project = project
        self.attempts = list(attempts)
        detail = "; ".join(f"{a.tier} ({a.record}): {a.reason}" for a in self.attempts)
        super().__init__(
            f"Failed to resolve Dynatrace credentials for project '{project}': {detail}"
        )

    @property
    def last(self) -> Optional[CredentialTierError]:
        """Failure of the last tier attempted."""
        return self.attempts[-1] if self.attempts else None


class QueryConfigurationError(SLIServiceError):
    """Custom SLI queries could not be fetched for a reason other than not-found."""

    kind = ErrorKind.QUERY_CONFIGURATION

    def __init__(
        self,
        project: str,
        stage: str,
        service: str,
        reason: str,
        status_code: Optional[int] = None,
    ) -> None:
        self.project = project
        self.stage = stage
        self.service = service
        self.reason = reason
        self.status_code = status_code
        super().__init__(
            f"Failed to get custom queries for {project}/{stage}/{service}: {reason}"
        )


class IndicatorEvaluationFailure(SLIServiceError):
    """A single indicator could not be evaluated."""

    kind = ErrorKind.INDICATOR_EVALUATION

    def __init__(self, indicator: str, reason: str, query: Optional[str] = None) -> None:
        self.indicator = indicator
        self.reason = reason
        self.query = query
        super().__init__(reason)


class DispatchError(SLIServiceError):
    """The completion event could not be delivered."""

    kind = ErrorKind.DISPATCH

    def __init__(
        self,
        target: str,
        reason: str,
        status_code: Optional[int] = None,
    ) -> None:
        self.target = target
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to send cloudevent to {target}: {reason}")


class UnknownEventTypeError(Exception):
    """The inbound event has a type this service does not handle."""

    def __init__(self, event_type: Optional[str]) -> None:
        self.event_type = event_type
        super().__init__(f"received unknown event type: {event_type}")
