"""运行配置（环境变量前缀 ALUVIA_）"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "page-retry"
    app_version: str = "0.1.0"

    # Aluvia 代理凭证接口
    api_key: str = ""
    api_base: str = "https://api.aluvia.io/v1"
    api_timeout_sec: float = 10.0

    # 导航重试默认值，可被 retry_with_proxy 的参数覆盖
    max_retries: int = 1
    backoff_ms: int = 300
    retry_on: str = "ECONNRESET,ETIMEDOUT,net::ERR,Timeout"
    goto_timeout_ms: int = 15_000
    close_old_browser: bool = True

    log_level: str = "INFO"
    log_file: str = ""
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5
    log_mask_mode: str = "basic"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="ALUVIA_", extra="ignore")


settings = Settings()
