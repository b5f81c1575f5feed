"""Structured logging (structlog) and CloudWatch Embedded Metrics setup.

Call ``init_observability()`` once at process start, before the app or a
maintenance script logs anything. Business functions that emit metrics are
decorated with the re-exported ``metric_scope``; the namespace and service
name come from settings so call sites only add dimensions.
"""
from __future__ import annotations

import logging

import structlog
from aws_embedded_metrics import metric_scope
from aws_embedded_metrics.config import get_config

from settings import get_settings

__all__ = [
    "init_observability",
    "metric_scope",
    "redact_secrets",
]

# Keys whose values never reach the log stream
SECRET_KEYS = frozenset(
    {
        "authorization",
        "access_token",
        "api_key",
        "password",
        "secret",
        "signature",
        "x_maya_signature",
    }
)
REDACTED = "[redacted]"

_configured = False


def redact_secrets(logger, method_name, event_dict):
    for key in event_dict:
        if key.lower() in SECRET_KEYS:
            event_dict[key] = REDACTED
    return event_dict


def _add_service(service_name: str) -> structlog.types.Processor:
    def processor(logger, method_name, event_dict):
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def _setup_logging(log_format: str, log_level: str, service_name: str) -> None:
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_service(service_name),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.addHandler(logging.StreamHandler())
    root_logger.setLevel(log_level)

    # Per-request access lines duplicate our own request logging
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _setup_metrics(namespace: str, service_name: str) -> None:
    config = get_config()
    config.namespace = namespace
    config.service_name = service_name


def init_observability() -> None:
    """Configure logging and metrics. Only the first call has an effect."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    _setup_logging(settings.log_format.lower(), settings.log_level.upper(), settings.service_name)
    _setup_metrics(settings.metrics_namespace, settings.service_name)
    _configured = True

    structlog.get_logger(__name__).info(
        "Observability initialized",
        log_format=settings.log_format,
        metrics_namespace=settings.metrics_namespace,
    )
