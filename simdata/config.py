import logging
from typing import Any, ClassVar, FrozenSet, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

_logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SIMDATA_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    LOG_LEVEL: str = "INFO"

    # Owners are registered as "<user><TEST_DOMAIN>", e.g. joe.simpletelemetry@hackystat.org
    TEST_DOMAIN: str = "@hackystat.org"

    # Random source. Every scenario run gets a fresh source seeded with SEED.
    # lcg48 is java.util.Random and reproduces the SimpleTelemetry reference values.
    SEED: int = 0
    RANDOM_ALGORITHM: Literal["lcg48", "mt19937"] = "lcg48"

    # Catalog
    # Comma-separated scenario names; empty = the whole catalog in catalog order.
    SCENARIOS: str = ""
    # Directory holding index.json + <name>/scenario.json; None = packaged catalog.
    CATALOG_DIR: Optional[str] = None

    # Collection service transport
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    # Owners without an explicit password use their owner id (test users).
    OWNER_PASSWORD: Optional[str] = None

    # Submission pipeline
    MAX_IN_FLIGHT: int = 8
    OWNER_QUEUE_SIZE: int = 1000

    _LOG_LEVELS: ClassVar[FrozenSet[str]] = frozenset(
        {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
    )

    def model_post_init(self, __context: Any) -> None:
        # Runs on every Settings() instantiation (including module-level `settings = Settings()`).
        self._guardrail_pipeline()
        self._guardrail_identity()

    def _guardrail_pipeline(self) -> None:
        problems: list[str] = []
        if self.MAX_IN_FLIGHT < 1:
            problems.append("MAX_IN_FLIGHT")
        if self.OWNER_QUEUE_SIZE < 1:
            problems.append("OWNER_QUEUE_SIZE")
        if self.REQUEST_TIMEOUT_SECONDS <= 0:
            problems.append("REQUEST_TIMEOUT_SECONDS")

        if problems:
            fields = ", ".join(problems)
            raise RuntimeError(
                f"Refusing to start with non-positive pipeline settings: {fields}. "
                "Set positive values via SIMDATA_* environment variables."
            )

    def _guardrail_identity(self) -> None:
        domain = (self.TEST_DOMAIN or "").strip()
        if not domain.startswith("@") or len(domain) < 2:
            raise RuntimeError(
                f"TEST_DOMAIN must look like '@example.org', got {self.TEST_DOMAIN!r}."
            )
        if self.LOG_LEVEL.upper() not in self._LOG_LEVELS:
            _logger.warning("config.unknown_log_level value=%s fallback=INFO", self.LOG_LEVEL)

    def scenario_names(self) -> list[str]:
        """Return the SCENARIOS selection as a list (empty = everything)."""
        return [s.strip() for s in (self.SCENARIOS or "").split(",") if s.strip()]


settings = Settings()


def get_settings() -> Settings:
    """Return the global settings instance.

    Provided as a callable for test mocking convenience.
    """
    return settings
