from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Values are read from the process environment first and then from a `.env`
    file in the working directory, so a deployment can keep the repository
    location and author identity outside the code.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Working copy and remote
    REPOSITORY_PATH: str = "./shared"
    REMOTE_URL: str = ""

    # Identity used for commits made on behalf of the user
    USER_NAME: str = "Unknown"
    USER_EMAIL: str = "unknown@localhost"

    # History queries
    HISTORY_WINDOW: str = "1.month"
    HISTORY_FALLBACK_LIMIT: int = 75
    MAX_CHANGES_PER_COMMIT: int = 250

    # Passes of the conflict resolution loop before giving up
    CONFLICT_RETRY_LIMIT: int = 10

    # Development and debugging
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()
