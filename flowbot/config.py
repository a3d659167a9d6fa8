from typing import Literal
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application configuration with environment variable mapping.
    All settings can be defined in .env file or as environment variables.
    """

    # Core settings
    PROJECT_NAME: str = Field(default="Flowbot")
    PROJECT_DESCRIPTION: str = Field(
        default="WhatsApp workflow automation engine"
    )
    ENVIRONMENT: Literal["dev", "prod"] = Field(default="dev")
    LOG_LEVEL: str = Field(default="INFO")
    LOG_DIR: str = Field(default="logs")

    # Database
    DATABASE_PATH: str = Field(default="./flowbot.db")
    SQL_ECHO: bool = Field(default=False)

    # WhatsApp
    WHATSAPP_TOKEN: str = Field(default="")
    WHATSAPP_API_VERSION: str = Field(default="v24.0")
    WHATSAPP_VERIFY_TOKEN: str = Field(default="change-me")

    # Workflow engine
    WORKFLOW_MAX_HOPS: int = Field(default=50, ge=1)
    WORKFLOW_PACING_DELAY: float = Field(default=0.8, ge=0)
    WORKFLOW_GALLERY_DELAY: float = Field(default=0.5, ge=0)
    SESSION_IDLE_TIMEOUT_MINUTES: int = Field(default=1440, ge=0)

    class Config:
        case_sensitive = True
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
