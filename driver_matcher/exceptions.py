"""
Matching Engine Exceptions

Not-found and consistency errors raised by operator actions, plus the
infrastructure error that separates "matching could not run" from an
ordinary unmatched result.
"""

from typing import Optional


class MatchingError(Exception):
    """Base class for all matching engine errors."""


class RecordNotFoundError(MatchingError):
    """Raised when an operator action names an unknown external record."""

    def __init__(self, external_id: str, source: Optional[str] = None):
        self.external_id = external_id
        self.source = source
        where = f" in source '{source}'" if source else ""
        super().__init__(f"External record {external_id!r} not found{where}")


class DriverNotFoundError(MatchingError):
    """Raised when an operator action names an unknown driver."""

    def __init__(self, driver_id: str):
        self.driver_id = driver_id
        super().__init__(f"Driver {driver_id!r} not found")


class ClaimNotFoundError(MatchingError):
    """Raised when deleting a reconciliation claim that does not exist."""

    def __init__(self, claimant_id: str, driver_id: str, source: str):
        self.claimant_id = claimant_id
        self.driver_id = driver_id
        self.source = source
        super().__init__(
            f"No {source} claim from claimant {claimant_id!r} for driver {driver_id!r}"
        )


class AmbiguousRecordError(MatchingError):
    """Raised when an external_id exists in several sources and none was given."""

    def __init__(self, external_id: str, sources: list[str]):
        self.external_id = external_id
        self.sources = sources
        super().__init__(
            f"External record {external_id!r} exists in sources {sorted(sources)}; pass source="
        )


class ManualOverrideError(MatchingError):
    """Raised when an automatic write would replace a manual match."""

    def __init__(self, external_id: str, source: str):
        self.external_id = external_id
        self.source = source
        super().__init__(
            f"Match for {source}/{external_id} is a manual override; clear it before re-matching"
        )


class MatchingUnavailableError(MatchingError):
    """Raised when the index could not be built or results could not be persisted."""


class JobNotFoundError(MatchingError):
    """Raised when a job id is unknown to the registry."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id!r} not found")


class InvalidJobTransitionError(MatchingError):
    """Raised on a job state change the state machine does not allow."""


class JobCancelledError(MatchingError):
    """Raised inside a job body when cancellation was requested."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id!r} was cancelled")
