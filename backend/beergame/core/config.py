from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    PROJECT_NAME: str = "Beer Distribution Game"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    # Game Settings
    INVENTORY_COST: float = 0.5  # per unit per week
    BACKLOG_COST: float = 1.0  # per unit per week
    STARTING_INVENTORY: int = 12
    STARTING_THROUGHPUT: int = 4
    # Customer demand steps: CUSTOMER_DEMAND[k] applies from DEMAND_CHANGE_WEEKS[k-1]
    CUSTOMER_DEMAND: List[int] = [4, 8, 12, 16, 20]
    DEMAND_CHANGE_WEEKS: List[int] = [8, 19, 26, 39]
    # 40 weeks covers the initial stable stretch, every demand step and the adaptation
    MAX_WEEKS: int = 40

    # AI Settings
    AI_THINKING_DELAY: float = 1.5  # seconds before an AI batch is requested
    MAX_AI_RETRIES: int = 3
    DEFAULT_RETRY_AFTER: float = 5.0  # seconds, used when the provider gives no hint
    AI_REQUEST_TIMEOUT: float = 60.0
    AI_MODELS: Dict[str, str] = {
        "gpt-5-mini": "openai",
        "gpt-5.2": "openai",
        "claude-sonnet-4-5": "anthropic",
        "claude-opus-4-5": "anthropic",
        "naive": "policy",
        "pi": "policy",
    }
    OPENAI_API_KEY: Optional[str] = None
    ANTHROPIC_API_KEY: Optional[str] = None

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_DIR: Optional[str] = None

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        return v

    @field_validator("CUSTOMER_DEMAND")
    @classmethod
    def demand_not_negative(cls, v: List[int]) -> List[int]:
        if any(qty < 0 for qty in v):
            raise ValueError("customer demand cannot be negative")
        return v

    @model_validator(mode="after")
    def check_schedule(self) -> "Settings":
        if len(self.CUSTOMER_DEMAND) != len(self.DEMAND_CHANGE_WEEKS) + 1:
            raise ValueError("CUSTOMER_DEMAND needs exactly one more level than DEMAND_CHANGE_WEEKS")
        weeks = self.DEMAND_CHANGE_WEEKS
        if any(later <= earlier for earlier, later in zip(weeks, weeks[1:])):
            raise ValueError("DEMAND_CHANGE_WEEKS must be strictly ascending")
        if self.MAX_WEEKS < 1:
            raise ValueError("MAX_WEEKS must be at least 1")
        if self.MAX_AI_RETRIES < 1:
            raise ValueError("MAX_AI_RETRIES must be at least 1")
        if self.STARTING_INVENTORY < 0 or self.STARTING_THROUGHPUT < 0:
            raise ValueError("starting inventory and throughput cannot be negative")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings, read once from the environment."""
    return Settings()
