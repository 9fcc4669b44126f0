"""Configuration helpers for backend runtime."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass


DEFAULT_VERB_PREFIX = "http://dominknow.com/expapi/verbs/"


@dataclass(frozen=True)
class BackendSettings:
    server_salt: str
    database_url: str | None
    lrs_endpoint: str | None
    lrs_username: str | None
    lrs_password: str | None
    verb_prefix: str
    poll_interval: float
    sentence_window: float
    max_join_attempts: int
    page_size: int
    host: str
    port: int
    log_level: str


def load_settings() -> BackendSettings:
    port_raw = os.getenv("CARDROOM_PORT", "8000")
    return BackendSettings(
        server_salt=os.getenv("CARDROOM_SERVER_SALT", "dev-salt"),
        database_url=os.getenv("CARDROOM_DATABASE_URL"),
        lrs_endpoint=os.getenv("CARDROOM_LRS_ENDPOINT"),
        lrs_username=os.getenv("CARDROOM_LRS_USERNAME"),
        lrs_password=os.getenv("CARDROOM_LRS_PASSWORD"),
        verb_prefix=os.getenv("CARDROOM_VERB_PREFIX", DEFAULT_VERB_PREFIX),
        poll_interval=float(os.getenv("CARDROOM_POLL_INTERVAL", "1.0")),
        sentence_window=float(os.getenv("CARDROOM_SENTENCE_WINDOW", "29.0")),
        max_join_attempts=int(os.getenv("CARDROOM_MAX_JOIN_ATTEMPTS", "6")),
        page_size=int(os.getenv("CARDROOM_PAGE_SIZE", "100")),
        host=os.getenv("CARDROOM_HOST", "127.0.0.1"),
        port=int(port_raw),
        log_level=os.getenv("CARDROOM_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(settings: BackendSettings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
