"""Logging setup and per-source context.

Usage:
    configure_logging("INFO")
    log = source_logger(__name__, "eurobrussels")
    log.info("Saved listing")  # ... [source=eurobrussels] Saved listing
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping, Optional, Tuple

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure the root logger once for CLI runs."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


class SourceLoggerAdapter(logging.LoggerAdapter):
    """Prefixes messages with ``[key=value | ...]`` context."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        context = " | ".join(f"{k}={v}" for k, v in (self.extra or {}).items() if v is not None)
        return (f"[{context}] {msg}" if context else msg), kwargs


def source_logger(name: str, source: Optional[str] = None, **context: Any) -> SourceLoggerAdapter:
    return SourceLoggerAdapter(logging.getLogger(name), {"source": source, **context})
