"""
Monitoring Module
Exports for structured logging with job id injection
"""

from driver_matcher.services.monitoring.logging import (
    setup_logging,
    JobJsonFormatter,
    add_job_id,
    current_job_id,
)

__all__ = [
    "setup_logging",
    "JobJsonFormatter",
    "add_job_id",
    "current_job_id",
]
