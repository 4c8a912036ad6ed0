from typing import Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Primary server hosting VIEW_FRAGMENT_LIST
    primary_server: str = "MSI"
    database_name: str = "QLDSV_TC"
    odbc_driver: str = "ODBC Driver 18 for SQL Server"

    # Fixed logins per credential class
    staff_login: str = "HTKN"
    staff_secret: SecretStr
    restricted_login: str = "SV"
    restricted_secret: SecretStr

    transport_encrypt: bool = False
    transport_trust_server_certificate: bool = True

    pool_size: int = 5
    pool_max_overflow: int = 10
    pool_recycle_seconds: int = 3600
    connect_timeout_seconds: int = 15

    # Session tokens handed to clients
    session_secret: SecretStr
    session_algo: str = "HS256"
    session_max_age_seconds: int = 8 * 60 * 60

    # 1 means no automatic reconnect during login
    auth_connect_attempts: int = 1
    auth_retry_delay_seconds: float = 0.5

    admin_api_key: Optional[SecretStr] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CAMPUS_",
        extra="ignore",
    )

settings = Settings()
