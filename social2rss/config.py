"""Configuration management for Social2RSS."""

import json
import os
from dataclasses import dataclass
from pathlib import Path

from .models import Profile


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    """Read an integer environment variable."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    """Read a non-negative float environment variable."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


@dataclass
class SyncConfig:
    """Configuration for the synchronization cycle."""

    chunk_size: int = 5
    inter_chunk_delay: float = 2.0
    max_items: int = 100
    circuit_breaker_threshold: int = 3
    retry_backoff: float = 60.0
    max_retries: int = 3
    discovery_window_hours: int = 2
    account_label: str = "Hesabı"
    content_language: str = "Turkish"


@dataclass
class BedrockConfig:
    """Configuration for Amazon Bedrock discovery calls."""

    model_id: str = "amazon.nova-pro-v1:0"
    fallback_model_id: str | None = "amazon.nova-lite-v1:0"
    region: str = "us-east-1"
    max_tokens: int = 2000


@dataclass
class ChannelConfig:
    """RSS channel envelope."""

    title: str = "Havacılık ve Savunma Gündemi"
    link: str = "https://github.com/gurkankose123/rss"
    description: str = "Otomatik güncellenen RSS akışı (Social2RSS Pro)"
    language: str = "tr"


@dataclass
class StorageConfig:
    """Where the generated feed is persisted."""

    backend: str = "local"
    path: str = "public/feed.xml"
    bucket: str = ""
    key: str = "feed.xml"
    region: str = "us-east-1"


class Config:
    """Main configuration manager."""

    # Default profiles file path
    PROFILES_FILE = "profiles.json"

    def __init__(self):
        """Initialize configuration from environment variables."""
        self.profiles_file = os.getenv("PROFILES_FILE", self.PROFILES_FILE)
        self.aws_region = os.getenv(
            "CURRENT_AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")
        )
        self.bedrock_model_id = os.getenv("BEDROCK_MODEL_ID", BedrockConfig.model_id)
        self.bedrock_fallback_model_id = os.getenv(
            "BEDROCK_FALLBACK_MODEL_ID", BedrockConfig.fallback_model_id
        )

    def get_profiles(self) -> list[Profile]:
        """Get monitored profiles from the profiles file."""
        # Try to find the file in current directory or Lambda root
        profiles_file = Path(self.profiles_file)
        if not profiles_file.exists():
            profiles_file = Path("/var/task") / self.profiles_file

        if not profiles_file.exists():
            raise FileNotFoundError(f"Profiles file not found: {self.profiles_file}")

        try:
            with open(profiles_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in profiles file: {e}")

        entries = data.get("profiles", []) if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise ValueError("Profiles file must contain a list of profiles")

        profiles = [
            Profile.from_dict(entry)
            for entry in entries
            if isinstance(entry, dict)
            and entry.get("enabled", True)
            and entry.get("url")
        ]

        if not profiles:
            raise ValueError("No enabled profiles found in profiles file")

        return profiles

    def get_sync_config(self) -> SyncConfig:
        """Get synchronization cycle configuration."""
        defaults = SyncConfig()
        return SyncConfig(
            chunk_size=_env_int("CHUNK_SIZE", defaults.chunk_size, minimum=1),
            inter_chunk_delay=_env_float(
                "INTER_CHUNK_DELAY", defaults.inter_chunk_delay
            ),
            max_items=_env_int("MAX_ITEMS", defaults.max_items, minimum=1),
            circuit_breaker_threshold=_env_int(
                "CIRCUIT_BREAKER_THRESHOLD",
                defaults.circuit_breaker_threshold,
                minimum=1,
            ),
            retry_backoff=_env_float("RETRY_BACKOFF", defaults.retry_backoff),
            max_retries=_env_int("MAX_RETRIES", defaults.max_retries, minimum=1),
            discovery_window_hours=_env_int(
                "DISCOVERY_WINDOW_HOURS", defaults.discovery_window_hours, minimum=1
            ),
            account_label=os.getenv("ACCOUNT_LABEL", defaults.account_label),
            content_language=os.getenv("CONTENT_LANGUAGE", defaults.content_language),
        )

    def get_bedrock_config(self) -> BedrockConfig:
        """Get Bedrock configuration."""
        return BedrockConfig(
            model_id=self.bedrock_model_id,
            # An empty value disables the fallback model
            fallback_model_id=self.bedrock_fallback_model_id or None,
            region=self.aws_region,
        )

    def get_channel_config(self) -> ChannelConfig:
        """Get RSS channel configuration."""
        defaults = ChannelConfig()
        return ChannelConfig(
            title=os.getenv("FEED_TITLE", defaults.title),
            link=os.getenv("FEED_LINK", defaults.link),
            description=os.getenv("FEED_DESCRIPTION", defaults.description),
            language=os.getenv("FEED_LANGUAGE", defaults.language),
        )

    def get_storage_config(self) -> StorageConfig:
        """Get feed persistence configuration."""
        defaults = StorageConfig()
        backend = os.getenv("FEED_STORAGE", defaults.backend).strip().lower()
        if backend not in ("local", "s3"):
            raise ValueError(f"FEED_STORAGE must be 'local' or 's3', got {backend!r}")
        return StorageConfig(
            backend=backend,
            path=os.getenv("FEED_PATH", defaults.path),
            bucket=os.getenv("FEED_BUCKET", defaults.bucket),
            key=os.getenv("FEED_KEY", defaults.key),
            region=self.aws_region,
        )
