from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://watchguard:watchguard@db:5432/watchguard"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://myapp.com,https://api.myapp.com"
    CORS_ORIGINS: str = "*"

    # --- Guardrail thresholds ---
    DISCARD_BELOW_SECONDS: float = 5.0
    ATTENTION_THRESHOLD_PERCENT: float = 25.0
    ATTENTION_RULE_SESSION_MINUTES: float = 8.0
    DURATION_RULE_SESSION_MINUTES: float = 20.0

    # --- Break lengths (minutes); parental controls override per user ---
    BREAK_SHORT_MINUTES: float = 3.0
    BREAK_MEDIUM_MINUTES: float = 6.5
    BREAK_LONG_MINUTES: float = 10.0

    # --- Profile weighting ---
    DECAY_POLICY: Literal["linear_rank", "exponential"] = "linear_rank"
    # Required when DECAY_POLICY=exponential.
    DECAY_HALF_LIFE_HOURS: Optional[float] = None
    LIKE_BOOST: float = 2.0

    # --- Ranking ---
    HYBRID_SEQUENCE_WEIGHT: float = 0.5
    RANK_TOP_N: int = 8
    TFIDF_CORPUS: Literal["user", "global"] = "user"

    # --- Feed collaborators ---
    QUERY_STRATEGY: Literal["combined", "per_term"] = "combined"
    # Empty → use the local catalog built from recorded watch events.
    SEARCH_SERVICE_URL: str = ""
    TRENDING_SERVICE_URL: str = ""
    COLLABORATOR_TIMEOUT_SECONDS: float = 2.0
    TRENDING_WINDOW_DAYS: int = 7
    FEED_SIZE: int = 20

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
