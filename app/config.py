from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://localhost:5432/quests"
    quests_api_key: str | None = None

    log_level: str = "INFO"
    log_format: str = "json"  # "json" | "text"

    # Conditional upserts that lose a serialization race are retried verbatim.
    quest_write_max_attempts: int = 3
    quest_write_retry_delay_ms: int = 50

    # One completion push per recipient per quest per window.
    push_cooldown_seconds: int = 300

    # quest_progress rows reference quest_templates, so seeding is on unless
    # templates are managed out of band. Seeding is an idempotent upsert.
    seed_templates_on_startup: bool = True
    create_schema_on_startup: bool = False

    model_config = {"env_file": ".env", "extra": "ignore"}

    @field_validator("database_url", mode="before")
    @classmethod
    def _asyncpg_url(cls, v: str) -> str:
        if isinstance(v, str):
            if v.startswith("postgres://"):
                return v.replace("postgres://", "postgresql+asyncpg://", 1)
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v


settings = Settings()
