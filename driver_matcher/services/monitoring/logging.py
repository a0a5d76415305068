"""
Structured JSON Logging with Job ID
Provides JSON formatter that injects the running job id into all log entries
"""

import logging
import sys
import os
from contextvars import ContextVar
from typing import Optional

import structlog
from pythonjsonlogger import jsonlogger

# Set by JobRegistry while a background job runs
current_job_id: ContextVar[Optional[str]] = ContextVar("current_job_id", default=None)


class JobJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter with automatic job ID injection.

    Extends python-json-logger to add job_id field to every log record.
    The job ID is retrieved from the context variable set by JobRegistry.
    """

    def add_fields(self, log_record, record, message_dict):
        """
        Add custom fields to log record.

        Adds:
        - job_id: From context or 'none' outside a job
        - service: Application name for multi-service environments
        - environment: Deployment environment (development/production)
        """
        super().add_fields(log_record, record, message_dict)

        log_record['job_id'] = current_job_id.get() or 'none'
        log_record['service'] = 'driver-matcher'
        log_record['environment'] = os.getenv('ENVIRONMENT', 'development')


def add_job_id(logger, method_name, event_dict):
    """structlog processor adding the current job id, when there is one."""
    job_id = current_job_id.get()
    if job_id is not None:
        event_dict.setdefault("job_id", job_id)
    return event_dict


def setup_logging(level: str = "INFO"):
    """
    Configure structured JSON logging to stdout.

    Sets up:
    - structlog with ISO timestamps, log level and JSON rendering
    - root logger with JobJsonFormatter for stdlib loggers (SQLAlchemy etc.)

    Returns:
        logging.Handler: The configured handler (for testing)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            add_job_id,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
    )

    handler = logging.StreamHandler(sys.stdout)

    formatter = JobJsonFormatter(
        '%(timestamp)s %(level)s %(name)s %(message)s',
        rename_fields={
            'timestamp': 'asctime',
            'level': 'levelname'
        }
    )
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    return handler
