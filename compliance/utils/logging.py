"""
Structured logging setup using structlog with data masking for sensitive information.
"""

import logging
import re
import sys
from typing import Any, Dict, Union

import structlog
from rich.console import Console
from rich.logging import RichHandler

from compliance.core.config import settings


def setup_logging() -> None:
    """Configure structured logging for the application."""

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL),
    )

    # Configure structlog processors
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        mask_processor,  # Add data masking processor
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.LOG_FORMAT == "json":
        # JSON formatting for production
        processors.extend(
            [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
        )
    else:
        # Human-readable formatting for development
        processors.extend([structlog.dev.ConsoleRenderer(colors=True)])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.LOG_LEVEL)
        ),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Set up rich handler for development
    if settings.ENVIRONMENT == "development" and settings.LOG_FORMAT == "text":
        console = Console()
        rich_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=True,
            markup=True,
            rich_tracebacks=True,
        )

        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.addHandler(rich_handler)


# Sensitive data patterns for masking
SENSITIVE_PATTERNS = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b"),
    "iso_date": re.compile(r"\b\d{4}-\d{2}-\d{2}\b(?!T)"),
    "phone": re.compile(r"\+?[\d\s\-\(\)]{10,}"),
    "passport": re.compile(r"\b[A-Z]{1,2}\d{6,9}\b"),
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
}

SENSITIVE_FIELDS = {
    "password",
    "token",
    "secret",
    "key",
    "legal_name",
    "date_of_birth",
    "birth",
    "document_number",
    "passport_number",
    "ssn",
}


def mask_sensitive_data(data: Union[str, Dict, Any]) -> Union[str, Dict, Any]:
    """Mask sensitive data in logs."""
    if isinstance(data, str):
        return _mask_string(data)
    elif isinstance(data, dict):
        return _mask_dict(data)
    elif isinstance(data, (list, tuple)):
        return [mask_sensitive_data(item) for item in data]
    else:
        return data


def _mask_string(text: str) -> str:
    """Mask sensitive patterns in a string."""
    masked_text = text

    masked_text = SENSITIVE_PATTERNS["email"].sub(
        lambda m: f"{m.group()[:2]}***@{m.group().split('@')[1]}", masked_text
    )

    # Dates before phone numbers, the phone pattern would swallow them
    masked_text = SENSITIVE_PATTERNS["iso_date"].sub("****-**-**", masked_text)

    masked_text = SENSITIVE_PATTERNS["ssn"].sub("***-**-****", masked_text)

    masked_text = SENSITIVE_PATTERNS["phone"].sub("***-***-****", masked_text)

    masked_text = SENSITIVE_PATTERNS["passport"].sub("XX******", masked_text)

    return masked_text


def _mask_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Mask sensitive fields in a dictionary."""
    masked_data = {}

    for key, value in data.items():
        key_lower = key.lower()

        if any(sensitive_field in key_lower for sensitive_field in SENSITIVE_FIELDS):
            if isinstance(value, str) and value:
                # Keep a few characters for debugging
                if len(value) <= 4:
                    masked_data[key] = "***"
                else:
                    masked_data[key] = f"{value[:2]}***{value[-2:]}"
            else:
                masked_data[key] = "***"
        else:
            masked_data[key] = mask_sensitive_data(value)

    return masked_data


def mask_processor(logger, method_name, event_dict):
    """Structlog processor to mask sensitive data."""
    return _mask_dict(event_dict) if event_dict else event_dict


def get_logger(name: str = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_audit_event(
    event_type: str,
    address: str,
    severity: str = None,
    details: str = None,
    **kwargs: Any,
) -> None:
    """Mirror a compliance audit entry into the application log."""
    logger = get_logger("audit")

    log_data = {"event_type": event_type, "address": address, **kwargs}

    if details:
        log_data["details"] = details

    if severity in ("CRITICAL", "ERROR"):
        logger.error("Compliance audit event", severity=severity, **log_data)
    elif severity == "WARNING":
        logger.warning("Compliance audit event", severity=severity, **log_data)
    else:
        logger.info("Compliance audit event", **log_data)
