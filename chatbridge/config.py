from __future__ import annotations
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CB_", env_file=".env", extra="ignore")

    # Core
    data_dir: str = Field(default="./data")
    sqlite_path: str = Field(default="./data/chatbridge.sqlite")
    auth_dir: str = Field(default="./.sessions/auth", description="Where protocol credentials are kept between restarts.")

    # Transport
    transport: str = Field(default="loopback", description="Protocol transport: loopback (only one included).")
    auto_connect: bool = Field(default=True, description="Initialize the connection on server startup.")
    reconnect_delay_s: float = Field(default=3.0, description="Fixed delay before retrying a closed connection.")

    # Network
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=5000)
    ws_path: str = Field(default="/ws")
    metrics_path: str = Field(default="/metrics")
    health_path: str = Field(default="/healthz")

    # Security defaults
    require_client_auth: bool = Field(default=True)
    client_api_keys: list[str] = Field(default_factory=list, description="Static API keys for WS control-plane clients.")

    # Logging
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=True)

def load_settings() -> Settings:
    return Settings()
