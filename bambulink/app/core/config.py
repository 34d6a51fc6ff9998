from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

# Application version - single source of truth
APP_VERSION = "0.1.0"

# Base directory for path calculations
_base_dir = Path(__file__).resolve().parent.parent.parent.parent


class Settings(BaseSettings):
    app_name: str = "bambulink"
    debug: bool = False

    # Paths
    base_dir: Path = _base_dir
    log_dir: Path = base_dir / "logs"

    # Logging
    log_level: str = "INFO"  # Override with BAMBULINK_LOG_LEVEL or BAMBULINK_DEBUG=true
    log_to_file: bool = False

    # MQTT
    mqtt_port: int = 8883
    mqtt_username: str = "bblp"  # Fixed LAN-mode account, access code is the password
    mqtt_keepalive: int = 15  # Paho considers the link lost after 1.5x keepalive
    mqtt_connect_timeout: float = 10.0
    mqtt_client_id_prefix: str = "bambulink_"
    subscribe_topic: str = "#"
    subscribe_qos: int = 2
    request_qos: int = 1  # The printer ignores qos=0 requests while busy

    class Config:
        env_prefix = "BAMBULINK_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()


class ConnectionOptions(BaseModel):
    """Where and how to reach one printer.

    ``tls_insecure`` has no default: callers must opt in to skipping
    certificate verification, which LAN-mode printers require because they
    present a self-signed certificate.
    """

    model_config = ConfigDict(frozen=True)

    host: str = Field(..., min_length=1)
    port: int = Field(default_factory=lambda: settings.mqtt_port, ge=1, le=65535)
    access_code: str = Field(..., min_length=1, repr=False)
    tls_insecure: bool
