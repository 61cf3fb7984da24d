"""Structured logging for the inventory services."""

from __future__ import annotations

import logging
import sys

import structlog

SECRET_FIELDS = frozenset({"community", "snmp_community", "authpass", "snmp_authpass",
                           "cryptopass", "snmp_cryptopass"})

_hide_auth = True


def redact_secrets(logger, method_name: str, event_dict: dict) -> dict:
    """Mask SNMP credentials in log records unless auth hiding is disabled."""
    if not _hide_auth:
        return event_dict
    for key in SECRET_FIELDS.intersection(event_dict):
        if event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def configure_logging(log_level: str = "info", hide_auth: bool = True, json: bool = True) -> None:
    """Set up structlog; JSON lines for services, console rendering for the CLI."""
    global _hide_auth
    _hide_auth = hide_auth

    level = getattr(logging, log_level.upper(), logging.INFO)
    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # pysnmp debug chatter is only useful when chasing PDU problems
    logging.getLogger("pysnmp").setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name or __name__)
