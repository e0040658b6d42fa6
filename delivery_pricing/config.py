"""
Service configuration for the HTTP and Lambda entry points.

Read from environment variables; the pricing engine itself takes no
environment input.
"""

import os
from dataclasses import dataclass
from typing import Optional

from .defaults import build_default_stores
from .history import InMemoryHistorySink
from .processor import CalculationProcessor
from .store import load_seed_file


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(key)
    return v if v is not None and v != "" else default


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ServiceConfig:
    environment: str
    port: int
    seed_file: Optional[str]
    history_enabled: bool
    store_timeout: Optional[float]  # seconds
    history_max_records: int


def get_service_config() -> ServiceConfig:
    timeout = _env("STORE_TIMEOUT_SECONDS")
    return ServiceConfig(
        environment=_env("ENVIRONMENT", "dev"),
        port=int(_env("PORT", "8080")),
        seed_file=_env("PRICING_SEED_FILE"),
        history_enabled=_flag(_env("HISTORY_ENABLED"), True),
        store_timeout=float(timeout) if timeout is not None else None,
        history_max_records=int(_env("HISTORY_MAX_RECORDS", "1000")),
    )


def build_processor(config: ServiceConfig) -> CalculationProcessor:
    """
    Processor wired to the built-in stores, plus the seed file if configured.

    Seed entries are published on top of the defaults, so a seed template with
    a built-in id replaces it as a new version.
    """
    template_store, client_store = build_default_stores()
    if config.seed_file:
        load_seed_file(config.seed_file, template_store, client_store)

    return CalculationProcessor(
        template_store=template_store,
        client_store=client_store,
        history_sink=InMemoryHistorySink(max_records=config.history_max_records),
    )
