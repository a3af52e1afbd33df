"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the translation server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m translation_server --port 0                     │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── TRANSLATOR_PORT=0 python -m translation_server            │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
COMPATIBILITY SWITCHES
=============================================================================

Two settings choose between the reference wire behavior and a hardened
one. Both default to the reference behavior:

    single_read=True      One recv() per request. A request split across
                          TCP segments is mis-parsed.
    single_read=False     Buffer until the headers and the
                          Content-Length body are complete.

    admission="supersede" A new translation replaces the pending one;
                          the earlier client never gets an answer.
    admission="queue"     Later submissions wait in a FIFO of
                          max_queued_jobs; overflow is answered with 429.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


ADMISSION_POLICIES = ("supersede", "queue")
ENGINES = ("echo", "libretranslate")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    return float(value)


@dataclass
class ServerConfig:
    """
    Configuration for the translation server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, idle_timeout, accept_timeout

    HTTP SETTINGS
    - single_read

    THREADING SETTINGS
    - min_workers, max_workers

    TRANSLATION SETTINGS
    - admission, max_queued_jobs, engine, libretranslate_url,
      libretranslate_api_key, engine_timeout

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """
    The IP address to bind to. The service is meant for local clients,
    so loopback is the default.
    """

    port: int = 5308
    """
    The port number to listen on. 0 asks the OS for a free ephemeral
    port; the bound port is reported once listening begins.
    """

    backlog: int = 128
    """Maximum number of queued, not yet accepted connections."""

    buffer_size: int = 65536
    """
    Maximum bytes taken from the socket by one receive operation.
    In single-read mode this is also the largest request we can parse.
    """

    idle_timeout: Optional[float] = None
    """
    Seconds a connection may sit idle between requests before it is
    closed. None = wait forever (reference behavior).
    """

    accept_timeout: float = 0.5
    """How often the accept loop wakes up to check for shutdown."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    single_read: bool = True
    """
    Parse each request from exactly one receive operation.
    Set to False to buffer by Content-Length instead.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads created at startup."""

    max_workers: int = 32
    """
    Upper bound on worker threads. A worker is held only while a
    connection with input waiting is read and dispatched; idle and
    parked connections hold none.
    """

    # ─────────────────────────────────────────────────────────────────────
    # TRANSLATION SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    admission: str = "supersede"
    """What to do with a translation submitted while another is pending."""

    max_queued_jobs: int = 8
    """FIFO depth behind the pending job when admission is 'queue'."""

    engine: str = "echo"
    """Translation capability: 'echo' or 'libretranslate'."""

    libretranslate_url: str = "http://127.0.0.1:5000"
    """Base URL of a LibreTranslate-compatible API."""

    libretranslate_api_key: Optional[str] = None
    """API key sent with LibreTranslate requests, if the instance needs one."""

    engine_timeout: float = 30.0
    """Seconds to wait for a remote engine reply."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        TRANSLATOR_HOST              Server host (default: 127.0.0.1)
        TRANSLATOR_PORT              Server port (default: 5308, 0 = any)
        TRANSLATOR_WORKERS           Max worker threads (default: 32)
        TRANSLATOR_MIN_WORKERS       Workers at startup (default: 4, capped at max)
        TRANSLATOR_IDLE_TIMEOUT      Idle connection timeout (default: none)
        TRANSLATOR_SINGLE_READ       1/0 (default: 1)
        TRANSLATOR_ADMISSION         supersede | queue (default: supersede)
        TRANSLATOR_MAX_QUEUED        Queue depth (default: 8)
        TRANSLATOR_ENGINE            echo | libretranslate (default: echo)
        TRANSLATOR_LIBRETRANSLATE_URL
        TRANSLATOR_LIBRETRANSLATE_KEY
        TRANSLATOR_ENGINE_TIMEOUT    Remote engine timeout in seconds (default: 30)
        TRANSLATOR_LOG_LEVEL         Logging level (default: INFO)

        backlog, buffer_size and accept_timeout have no variable; set them
        on the dataclass directly.

        =====================================================================
        """
        max_workers = int(os.getenv("TRANSLATOR_WORKERS", "32"))
        min_workers = os.getenv("TRANSLATOR_MIN_WORKERS")
        return cls(
            host=os.getenv("TRANSLATOR_HOST", "127.0.0.1"),
            port=int(os.getenv("TRANSLATOR_PORT", "5308")),
            min_workers=int(min_workers) if min_workers else min(4, max_workers),
            max_workers=max_workers,
            idle_timeout=_env_float("TRANSLATOR_IDLE_TIMEOUT"),
            single_read=_env_bool("TRANSLATOR_SINGLE_READ", True),
            admission=os.getenv("TRANSLATOR_ADMISSION", "supersede"),
            max_queued_jobs=int(os.getenv("TRANSLATOR_MAX_QUEUED", "8")),
            engine=os.getenv("TRANSLATOR_ENGINE", "echo"),
            libretranslate_url=os.getenv(
                "TRANSLATOR_LIBRETRANSLATE_URL", "http://127.0.0.1:5000"
            ),
            libretranslate_api_key=os.getenv("TRANSLATOR_LIBRETRANSLATE_KEY") or None,
            engine_timeout=float(os.getenv("TRANSLATOR_ENGINE_TIMEOUT", "30")),
            log_level=os.getenv("TRANSLATOR_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by TranslationServer at construction so mistakes surface at
        startup. A port that cannot be bound is NOT a config error; that is
        reported through the server state instead.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.idle_timeout is not None and self.idle_timeout <= 0:
            raise ValueError("idle_timeout must be > 0")

        if self.accept_timeout <= 0:
            raise ValueError("accept_timeout must be > 0")

        if self.admission not in ADMISSION_POLICIES:
            raise ValueError(
                f"Unknown admission policy: {self.admission!r}. "
                f"Choose one of {', '.join(ADMISSION_POLICIES)}."
            )

        if self.max_queued_jobs < 0:
            raise ValueError("max_queued_jobs must be >= 0")

        if self.engine not in ENGINES:
            raise ValueError(
                f"Unknown engine: {self.engine!r}. Choose one of {', '.join(ENGINES)}."
            )

        if self.engine_timeout <= 0:
            raise ValueError("engine_timeout must be > 0")
