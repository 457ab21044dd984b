"""Configuration handling for the community crawler."""

import os
from dataclasses import dataclass, field
from typing import List, Optional

import yaml
from dotenv import load_dotenv

MEDIA_MODES = ("embed", "skip")
_MEDIA_MODE_ALIASES = {"base64": "embed", "none": "skip"}


@dataclass
class RateLimitConfig:
    """Global request budget and cooldown escalation."""

    requests_per_minute: int = 24
    cooldown_base_sec: int = 20
    cooldown_step_sec: int = 10


@dataclass
class RetryConfig:
    """Retry and backoff knobs for a single navigation."""

    max_attempts: int = 3
    initial_backoff_sec: float = 0.8
    max_backoff_sec: float = 5.0
    backoff_factor: float = 2.0
    overall_deadline_sec: float = 15.0
    deadline_backoff_sec: float = 1.2
    settle_delay_sec: float = 0.3
    verbose: bool = False


@dataclass
class BrowserConfig:
    """Browser session settings shared by all workers."""

    headless: bool = True
    user_data_dir: Optional[str] = None
    proxies_file: Optional[str] = None
    proxies: List[str] = field(default_factory=list)
    navigation_timeout_sec: int = 30
    script_timeout_sec: int = 30


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""

    enable_prometheus: bool = False
    prometheus_port: int = 8000


@dataclass
class MetricsConfig:
    """Derived metrics settings."""

    # Emit a metric row with an empty baseline for items seen for the first time
    include_first_seen: bool = True


@dataclass
class Config:
    """Application configuration combining environment variables and YAML config."""

    communities_path: Optional[str] = None
    communities: List[str] = field(default_factory=list)
    database_url: str = "sqlite:///data/crawl.db"
    max_pages: int = 20
    workers: int = 2
    item_delay_sec: float = 0.8
    max_replies_per_item: int = 500
    media_mode: str = "embed"
    shuffle_seed: int = 42
    base_url: str = "https://old.reddit.com"
    listing_path: str = "/r/{community}/top/?t=day"

    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    browser: BrowserConfig = field(default_factory=BrowserConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)

    # Malformed environment overrides, reported by validate()
    env_errors: List[str] = field(default_factory=list, repr=False)

    @classmethod
    def from_files(cls, config_path: Optional[str] = None, env_path: Optional[str] = None) -> "Config":
        """
        Load configuration from a YAML file and environment variables.

        Args:
            config_path: Path to YAML configuration file (optional)
            env_path: Optional path to .env file (defaults to .env in current directory)

        Returns:
            Config instance with merged configuration
        """
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        config = cls()

        if config_path and os.path.exists(config_path):
            with open(config_path, "r", encoding="utf-8") as file:
                yaml_config = yaml.safe_load(file)

            if yaml_config:
                config.apply_dict(yaml_config)

        config.apply_env()
        config.media_mode = normalize_media_mode(config.media_mode)

        if config.browser.proxies_file and not config.browser.proxies:
            config.browser.proxies = load_proxies(config.browser.proxies_file)

        return config

    def apply_dict(self, values: dict) -> None:
        """Merge a (YAML-shaped) dictionary over the current values."""
        nested = {
            "rate_limit": self.rate_limit,
            "retry": self.retry,
            "browser": self.browser,
            "monitoring": self.monitoring,
            "metrics": self.metrics,
        }
        for key, value in values.items():
            if key in nested:
                if isinstance(value, dict):
                    section = nested[key]
                    for sub_key, sub_value in value.items():
                        if hasattr(section, sub_key):
                            setattr(section, sub_key, sub_value)
                continue
            if hasattr(self, key) and key != "env_errors":
                setattr(self, key, value)

    def apply_env(self) -> None:
        """Apply environment variable overrides."""
        if os.getenv("CRAWLER_DATABASE_URL"):
            self.database_url = os.environ["CRAWLER_DATABASE_URL"]
        if os.getenv("CRAWLER_PROXIES_FILE"):
            self.browser.proxies_file = os.environ["CRAWLER_PROXIES_FILE"]
        self.workers = self._env_int("CRAWLER_WORKERS", self.workers)
        self.rate_limit.requests_per_minute = self._env_int(
            "CRAWLER_RPM", self.rate_limit.requests_per_minute
        )

    def _env_int(self, name: str, current: int) -> int:
        raw = os.getenv(name)
        if not raw:
            return current
        try:
            return int(raw)
        except ValueError:
            self.env_errors.append(f"{name} must be an integer, got {raw!r}")
            return current

    def validate(self) -> List[str]:
        """
        Validate configuration and return a list of validation errors.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = list(self.env_errors)

        if not self.communities and not self.communities_path:
            errors.append("No community source specified (communities or communities_path)")
        if self.workers <= 0:
            errors.append("workers must be greater than 0")
        if self.max_pages <= 0:
            errors.append("max_pages must be greater than 0")
        if self.rate_limit.requests_per_minute <= 0:
            errors.append("rate_limit.requests_per_minute must be greater than 0")
        if self.retry.max_attempts <= 0:
            errors.append("retry.max_attempts must be greater than 0")
        if self.retry.initial_backoff_sec > self.retry.max_backoff_sec:
            errors.append("retry.initial_backoff_sec must not exceed retry.max_backoff_sec")
        if self.max_replies_per_item < 0:
            errors.append("max_replies_per_item must not be negative")
        if self.item_delay_sec < 0:
            errors.append("item_delay_sec must not be negative")
        if self.media_mode not in MEDIA_MODES:
            errors.append(f"media_mode must be one of {', '.join(MEDIA_MODES)}")

        return errors


def normalize_media_mode(mode: str) -> str:
    """Map legacy media mode names onto the canonical ones."""
    mode = (mode or "").strip().lower()
    return _MEDIA_MODE_ALIASES.get(mode, mode)


def load_proxies(path: str) -> List[str]:
    """
    Read a proxy list, one proxy per line.

    Blank lines and lines starting with '#' are ignored. A missing file yields
    an empty list.
    """
    if not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8") as file:
        lines = [line.strip() for line in file]
    return [line for line in lines if line and not line.startswith("#")]
