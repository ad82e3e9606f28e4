from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    # Runtime
    environment: str = Field(default="development", validation_alias="NODE_ENV")
    port: int = Field(default=8080, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # AWS / data
    aws_region: str = Field(default="us-east-1", validation_alias="AWS_REGION")
    ddb_table_name: str | None = Field(default=None, validation_alias="DDB_TABLE_NAME")

    # Slack
    slack_enabled: bool = Field(default=False, validation_alias="SLACK_ENABLED")
    # Single-workspace installs can skip the token table and set the bot token directly.
    slack_bot_token: str | None = Field(default=None, validation_alias="SLACK_BOT_TOKEN")
    slack_signing_secret: str | None = Field(default=None, validation_alias="SLACK_SIGNING_SECRET")
    # Prefer injecting a single Secrets Manager ARN and resolving keys at runtime.
    slack_secret_arn: str | None = Field(default=None, validation_alias="SLACK_SECRET_ARN")
    # Unauthenticated admin route; enable only behind a private network or gateway.
    slack_thread_admin_enabled: bool = Field(default=False, validation_alias="SLACK_THREAD_ADMIN_ENABLED")

    # OpenAI
    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4o-mini", validation_alias="OPENAI_MODEL")
    openai_max_output_tokens: int = Field(default=500, validation_alias="OPENAI_MAX_OUTPUT_TOKENS")
    openai_timeout_seconds: int = Field(default=30, validation_alias="OPENAI_TIMEOUT_SECONDS")

    # Google Gemini
    gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-1.5-flash", validation_alias="GEMINI_MODEL")
    gemini_max_output_tokens: int = Field(default=500, validation_alias="GEMINI_MAX_OUTPUT_TOKENS")
    gemini_timeout_seconds: int = Field(default=30, validation_alias="GEMINI_TIMEOUT_SECONDS")

    # AI provider chain
    # Comma-separated, highest priority first. Unknown names are ignored.
    ai_provider_order: str = Field(default="openai,gemini", validation_alias="AI_PROVIDER_ORDER")
    ai_system_prompt: str = Field(
        default="You are a helpful, friendly assistant. Answer clearly and concisely.",
        validation_alias="AI_SYSTEM_PROMPT",
    )
    ai_temperature: float = Field(default=0.7, validation_alias="AI_TEMPERATURE")

    # Bot behaviour
    bot_command_prefix: str = Field(default="!", validation_alias="BOT_COMMAND_PREFIX")
    bot_max_command_attempts: int = Field(default=3, validation_alias="BOT_MAX_COMMAND_ATTEMPTS")
    bot_timezone: str = Field(default="America/Sao_Paulo", validation_alias="BOT_TIMEZONE")

    # In-process caches
    event_dedupe_retention_seconds: int = Field(
        default=3600, validation_alias="EVENT_DEDUPE_RETENTION_SECONDS"
    )
    cache_sweep_interval_seconds: int = Field(
        default=3600, validation_alias="CACHE_SWEEP_INTERVAL_SECONDS"
    )
    ai_mode_ttl_seconds: int = Field(default=24 * 3600, validation_alias="AI_MODE_TTL_SECONDS")

    # Conversation history compaction
    history_compaction_threshold: int = Field(
        default=20, validation_alias="HISTORY_COMPACTION_THRESHOLD"
    )
    history_keep_recent: int = Field(default=10, validation_alias="HISTORY_KEEP_RECENT")

    # ---- helpers / derived flags ----
    @property
    def normalized_environment(self) -> str:
        v = (self.environment or "").strip().lower()
        if v in ("prod", "production"):
            return "production"
        if v in ("stage", "staging"):
            return "staging"
        if v in ("dev", "development"):
            return "development"
        return v or "development"

    @property
    def is_production(self) -> bool:
        return self.normalized_environment == "production"

    @property
    def ai_provider_names(self) -> list[str]:
        out: list[str] = []
        for raw in str(self.ai_provider_order or "").split(","):
            name = raw.strip().lower()
            if name and name not in out:
                out.append(name)
        return out

    def require_in_production(self) -> None:
        """
        Enforce required settings in production.

        Development/staging are allowed to run with partial config for local work,
        but production must be fully configured.
        """
        if not self.is_production:
            return

        missing: list[str] = []

        if not self.ddb_table_name:
            missing.append("DDB_TABLE_NAME")

        if bool(self.slack_enabled):
            # Allow either direct env vars or a Secrets Manager ARN.
            if not (self.slack_secret_arn and str(self.slack_secret_arn).strip()):
                if not self.slack_signing_secret:
                    missing.append("SLACK_SIGNING_SECRET (or SLACK_SECRET_ARN)")

        if missing:
            raise RuntimeError(
                "Missing required production environment variables: "
                + ", ".join(missing)
            )

    def to_log_safe_dict(self) -> dict[str, object]:
        """
        A redacted representation safe for structured logs / diagnostics.
        """
        def _has(v: object) -> bool:
            return v is not None and str(v).strip() != ""

        return {
            "environment": self.normalized_environment,
            "port": self.port,
            "log_level": self.log_level,
            "aws": {
                "aws_region": self.aws_region,
                "ddb_table_name": self.ddb_table_name,
            },
            "integrations": {
                "slack_enabled": bool(self.slack_enabled),
                "slack_bot_token_configured": _has(self.slack_bot_token),
                "slack_signing_secret_configured": _has(self.slack_signing_secret),
                "slack_secret_arn_configured": _has(self.slack_secret_arn),
                "slack_thread_admin_enabled": bool(self.slack_thread_admin_enabled),
                "openai_api_key_configured": _has(self.openai_api_key),
                "openai_model": self.openai_model,
                "gemini_api_key_configured": _has(self.gemini_api_key),
                "gemini_model": self.gemini_model,
                "ai_provider_order": self.ai_provider_names,
            },
            "bot": {
                "command_prefix": self.bot_command_prefix,
                "max_command_attempts": self.bot_max_command_attempts,
                "timezone": self.bot_timezone,
            },
            "caches": {
                "event_dedupe_retention_seconds": self.event_dedupe_retention_seconds,
                "cache_sweep_interval_seconds": self.cache_sweep_interval_seconds,
                "ai_mode_ttl_seconds": self.ai_mode_ttl_seconds,
                "history_compaction_threshold": self.history_compaction_threshold,
                "history_keep_recent": self.history_keep_recent,
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings()
    s.require_in_production()
    return s


# Backwards-compatible module-level singleton.
settings = get_settings()
