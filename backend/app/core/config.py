from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "Tool Wizard Bot"
    API_V1_STR: str = "/api/v1"

    # Telegram
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_API_URL: str = "https://api.telegram.org"
    TELEGRAM_WEBHOOK_SECRET: str = ""
    TELEGRAM_RATE_CAPACITY: int = 20
    TELEGRAM_RATE_PER_SECOND: float = 1.0

    # ArangoDB
    ARANGO_HOST: str = "http://localhost:8529"
    ARANGO_USERNAME: str = "root"
    ARANGO_PASSWORD: str = "test"
    ARANGO_DB_NAME: str = "tool_wizard"
    TOOLS_COLLECTION: str = "Tools"

    # Wizard timings (seconds)
    SESSION_TIMEOUT_SECONDS: int = 120
    AUTO_APPROVE_SECONDS: float = 15.0
    CLEANUP_MESSAGE_SECONDS: float = 15.0
    SHORT_NOTICE_SECONDS: float = 5.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""


    class Config:
        env_file = ".env"

settings = Settings()
