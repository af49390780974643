"""
Configuration loader for the drive service.

Loads settings from config.yaml. Environment variables are used ONLY for secrets
and for the storage directory override.
Never log secrets.
"""

import hashlib
import os
import socket
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field

TRANSPORT_TOKEN_ENV = "STREAMDRIVE_TRANSPORT_TOKEN"
STORAGE_DIR_ENV = "STREAMDRIVE_STORAGE_DIR"


def generate_device_id() -> str:
    """Stable device identifier derived from the hostname."""
    digest = hashlib.md5(socket.gethostname().encode("utf-8")).hexdigest()
    return f"streamdrive-{digest[:8]}"


class TransportConfig(BaseModel):
    """Configuration for the pub/sub transport."""

    url: str = Field(default="ws://127.0.0.1:8765", description="Pub/sub broker URL")
    channel: str = Field(default="streamdrive", description="Channel to subscribe and publish on")
    token: Optional[str] = Field(default=None, description="Broker token (from environment only)")
    connect_timeout: float = Field(default=10.0, description="Connection timeout in seconds")


class ChunkerConfig(BaseModel):
    """Configuration for the chunk codec."""

    max_message_size: int = Field(
        default=8 * 64000, description="Maximum characters per published chunk"
    )
    ignore_own_messages: bool = Field(default=True, description="Drop our own echoed chunks")
    progress_interval: float = Field(
        default=1.0, description="Seconds between chunk progress reports"
    )
    reassembly_timeout: float = Field(
        default=300.0, description="Seconds before an incomplete message is evicted"
    )


class StorageConfig(BaseModel):
    """Configuration for the storage backend."""

    storage_dir: str = Field(default="./storage", description="Root of the managed filesystem")
    temp_folder_name: str = Field(default="temp", description="Folder emptied periodically")
    temp_cleanup_interval: float = Field(
        default=24 * 60 * 60, description="Seconds between temp folder cleanups"
    )
    serialize_paths: bool = Field(
        default=True, description="Serialize commands touching the same path"
    )


class HistoryConfig(BaseModel):
    """Configuration for message history."""

    per_kind_capacity: int = Field(default=50, ge=1, description="Messages kept per kind")
    overall_capacity: int = Field(default=200, ge=1, description="Messages kept overall")


class StatusApiConfig(BaseModel):
    """Configuration for the HTTP status API."""

    host: str = Field(default="127.0.0.1", description="Host to bind to")
    port: int = Field(default=8000, description="Port to bind to")


class Config(BaseModel):
    """Main configuration object."""

    device_id: str = Field(default_factory=generate_device_id)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    chunker: ChunkerConfig = Field(default_factory=ChunkerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    status_api: StatusApiConfig = Field(default_factory=StatusApiConfig)
    log_level: str = Field(default="INFO", description="Logging level")
    enable_pretty_print: bool = Field(
        default=False, description="Enable custom pretty print for debugging"
    )
    save_to_file: bool = Field(default=False, description="Save logs to file")
    log_file_path: str = Field(default="streamdrive.log", description="Log file path")
    max_log_file_size: int = Field(
        default=10485760, description="Max log file size in bytes (10MB)"
    )
    backup_count: int = Field(default=5, description="Number of backup log files to keep")


_LOGGING_KEYS = {
    "level": "log_level",
    "enable_pretty_print": "enable_pretty_print",
    "save_to_file": "save_to_file",
    "log_file_path": "log_file_path",
    "max_log_file_size": "max_log_file_size",
    "backup_count": "backup_count",
}


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from YAML file.

    Environment variables are used only for the transport token and the storage
    directory override; everything else belongs in config.yaml.

    Args:
        config_path: Path to config.yaml file. Defaults to ./config.yaml

    Returns:
        Loaded configuration object
    """
    if config_path is None:
        config_path = Path("config.yaml")

    config_data: Dict[str, Any] = {}

    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}

    # Handle nested logging configuration
    logging_config = config_data.pop("logging", None) or {}
    for key, field_name in _LOGGING_KEYS.items():
        if key in logging_config:
            config_data[field_name] = logging_config[key]

    token = os.getenv(TRANSPORT_TOKEN_ENV)
    if token:
        config_data["transport"] = {**(config_data.get("transport") or {}), "token": token}

    storage_dir = os.getenv(STORAGE_DIR_ENV)
    if storage_dir:
        config_data["storage"] = {**(config_data.get("storage") or {}), "storage_dir": storage_dir}

    return Config(**config_data)
