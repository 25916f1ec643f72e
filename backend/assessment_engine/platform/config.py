from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # Deployment environment
    DEPLOYMENT_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./assessment_engine.db"

    # Judge0 code execution sandbox
    JUDGE0_BASE_URL: str = "https://judge0-ce.p.rapidapi.com"
    JUDGE0_API_KEY: str = ""
    # RapidAPI-hosted Judge0 uses key/host headers instead of a bearer token.
    JUDGE0_USE_RAPIDAPI: bool = True
    JUDGE0_RAPIDAPI_HOST: str = "judge0-ce.p.rapidapi.com"
    JUDGE0_HTTP_TIMEOUT_SECONDS: float = 30.0
    # True: single blocking call with wait=true. False: submit, then poll by token.
    JUDGE0_WAIT_FOR_RESULT: bool = True
    JUDGE0_POLL_INTERVAL_SECONDS: float = 1.0
    JUDGE0_MAX_WAIT_SECONDS: float = 30.0
    JUDGE0_CPU_TIME_LIMIT: Optional[float] = None
    JUDGE0_MEMORY_LIMIT: Optional[int] = None

    # Assessment session
    ASSESSMENT_DEFAULT_DURATION_MINUTES: int = 30
    TIMER_TICK_SECONDS: float = 1.0
    MAX_ATTEMPTS_PER_ASSESSMENT: int = 3
    LOCAL_ATTEMPT_ID_PREFIX: str = "temp_"

    @property
    def judge0_base_url(self) -> str:
        return (self.JUDGE0_BASE_URL or "").strip().rstrip("/")

    @property
    def judge0_uses_rapidapi(self) -> bool:
        return self.JUDGE0_USE_RAPIDAPI or "rapidapi.com" in self.judge0_base_url

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


settings = Settings()
