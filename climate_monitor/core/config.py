"""
Climate Monitor - Configuration
All settings loaded from environment variables (or a local .env file)
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 3000
    ssl_certfile: str = ""
    ssl_keyfile: str = ""
    static_dir: Path = PROJECT_ROOT / "static"
    server_name: str = "Climate Dashboard Python Server"
    server_version: str = "1.0.0"

    # MQTT (credentials and topics come from the deployment environment)
    mqtt_enabled: bool = True
    mqtt_broker: str = "localhost"
    mqtt_port: int = 8883
    mqtt_tls: bool = True
    mqtt_ca_certs: str = ""
    mqtt_username: str = ""
    mqtt_password: str = ""
    mqtt_client_id: str = ""
    mqtt_topic: str = "climate/telemetry"
    mqtt_command_topic: str = "climate/commands"
    mqtt_ota_status_topic: str = "climate/ota"
    mqtt_keepalive: int = 60
    mqtt_connect_timeout: float = 30.0
    mqtt_reconnect_delay: int = 5

    # Device fallbacks applied by the normalizer
    default_device_id: str = "2020171026"
    default_firmware_version: str = "1.0"

    # History
    history_capacity: int = 100
    history_default_limit: int = 50

    # OTA
    ota_candidate_version: str = ""  # Empty = newest changelog entry
    ota_changelog_file: str = ""  # Empty = built-in changelog

    # Logging
    log_level: str = "INFO"

    @property
    def ssl_enabled(self) -> bool:
        """HTTPS is served only when both certificate and key are configured."""
        return bool(self.ssl_certfile and self.ssl_keyfile)

    @property
    def mqtt_auth_enabled(self) -> bool:
        return bool(self.mqtt_username)

    class Config:
        env_file = ".env"  # Fallback for local development
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
