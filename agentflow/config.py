
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    database_url: str = "sqlite:///./agentflow.db"
    sql_echo: bool = False
    log_level: str = "INFO"

    # listados
    default_page_size: int = 20
    max_page_size: int = 100
    default_log_limit: int = 100
    max_log_limit: int = 1000
    log_retention_days: int = 30

    # reintentos del flip de versión actual ante conflictos entre procesos
    version_write_retries: int = 3

    # settings por defecto de cada workflow nuevo
    workflow_auto_save: bool = True
    workflow_timeout_ms: int = 300000
    workflow_retry_attempts: int = 3
    workflow_enable_logging: bool = True
    workflow_log_level: str = "info"

    def default_workflow_settings(self) -> dict:
        return {
            "auto_save": self.workflow_auto_save,
            "timeout": self.workflow_timeout_ms,
            "retry_attempts": self.workflow_retry_attempts,
            "enable_logging": self.workflow_enable_logging,
            "log_level": self.workflow_log_level,
        }

settings = Settings()  # reads from env
