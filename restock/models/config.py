"""Configuration management for the retailer availability service."""

import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from restock.models.data_models import RetailerType


class RateLimitConfig(BaseModel):
    """Request budget for a single retailer."""
    requests_per_minute: int = Field(default=5, description="Requests allowed per minute")
    requests_per_hour: int = Field(default=100, description="Requests allowed per hour")

    @field_validator('requests_per_minute', 'requests_per_hour')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"rate limit must be positive, got: {v}")
        return v


class RetryConfig(BaseModel):
    """In-call retry policy for a single retailer."""
    max_retries: int = Field(default=3, description="Maximum retry attempts per request")
    retry_delay: float = Field(default=1.0, description="Base delay for exponential backoff in seconds")

    @field_validator('max_retries')
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"max_retries must not be negative, got: {v}")
        return v


class RetailerConfig(BaseModel):
    """Configuration for one retailer integration."""
    id: str = Field(description="Stable retailer identifier")
    name: str = Field(description="Display name")
    slug: str = Field(description="Adapter and URL pattern key")
    type: RetailerType = Field(description="Integration type: api, affiliate or scraping")
    base_url: str = Field(description="Base URL for API calls or storefront pages")
    website: Optional[str] = Field(default=None, description="Public storefront URL")
    api_key: Optional[str] = Field(default=None, description="Opaque API credential")
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    timeout: float = Field(default=10.0, description="HTTP timeout in seconds")
    call_timeout: Optional[float] = Field(
        default=None,
        description="Upper bound for one adapter call including retries"
    )
    retry: RetryConfig = Field(default_factory=RetryConfig)
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    is_active: bool = Field(default=True, description="Whether the retailer takes part in fan-outs")

    @field_validator('base_url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError(f"URL must start with http:// or https://, got: {v}")
        return v.rstrip('/')

    @field_validator('timeout')
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeout must be positive, got: {v}")
        return v

    @property
    def requires_api_key(self) -> bool:
        return self.type in (RetailerType.API, RetailerType.AFFILIATE)


def default_retailers() -> List[RetailerConfig]:
    """Built-in retailer set used when no configuration file provides one."""
    scraping_limits = RateLimitConfig(requests_per_minute=10, requests_per_hour=200)
    scraping_retry = RetryConfig(max_retries=2, retry_delay=2.0)
    return [
        RetailerConfig(
            id="best-buy", name="Best Buy", slug="best-buy", type=RetailerType.API,
            base_url="https://api.bestbuy.com/v1", website="https://www.bestbuy.com",
            rate_limit=RateLimitConfig(requests_per_minute=5, requests_per_hour=100),
            timeout=10.0, retry=RetryConfig(max_retries=3, retry_delay=1.0),
        ),
        RetailerConfig(
            id="walmart", name="Walmart", slug="walmart", type=RetailerType.AFFILIATE,
            base_url="https://api.walmartlabs.com/v1", website="https://www.walmart.com",
            rate_limit=RateLimitConfig(requests_per_minute=5, requests_per_hour=100),
            timeout=10.0, retry=RetryConfig(max_retries=3, retry_delay=1.0),
        ),
        RetailerConfig(
            id="target", name="Target", slug="target", type=RetailerType.SCRAPING,
            base_url="https://www.target.com",
            rate_limit=scraping_limits, timeout=15.0, retry=scraping_retry,
        ),
        RetailerConfig(
            id="gamestop", name="GameStop", slug="gamestop", type=RetailerType.SCRAPING,
            base_url="https://www.gamestop.com",
            rate_limit=scraping_limits, timeout=15.0, retry=scraping_retry,
        ),
        RetailerConfig(
            id="costco", name="Costco", slug="costco", type=RetailerType.SCRAPING,
            base_url="https://www.costco.com",
            rate_limit=scraping_limits, timeout=15.0, retry=scraping_retry,
        ),
        RetailerConfig(
            id="sams-club", name="Sam's Club", slug="sams-club", type=RetailerType.SCRAPING,
            base_url="https://www.samsclub.com",
            rate_limit=scraping_limits, timeout=15.0, retry=scraping_retry,
        ),
        RetailerConfig(
            id="barnes-noble", name="Barnes & Noble", slug="barnes-noble", type=RetailerType.SCRAPING,
            base_url="https://www.barnesandnoble.com",
            rate_limit=scraping_limits, timeout=15.0, retry=scraping_retry,
            is_active=False,
        ),
        RetailerConfig(
            id="amazon", name="Amazon", slug="amazon", type=RetailerType.SCRAPING,
            base_url="https://www.amazon.com",
            rate_limit=scraping_limits, timeout=15.0, retry=scraping_retry,
            is_active=False,
        ),
    ]


class ServiceConfig(BaseModel):
    """Top level service configuration."""

    # Circuit breaker
    circuit_breaker_failure_threshold: int = Field(default=5, description="Failures before opening circuit")
    circuit_breaker_cooldown: float = Field(default=60.0, description="Cooldown period in seconds")

    # Fan-out
    adapter_timeout: float = Field(
        default=30.0,
        description="Minimum per-call timeout when a retailer sets no call_timeout"
    )

    # Health monitoring
    health_check_interval: float = Field(default=300.0, description="Seconds between health probes")

    # Candidate checker
    candidate_batch_limit: int = Field(default=50, description="Candidates checked per batch")
    candidate_qpm: int = Field(default=6, description="Candidate fetches per retailer per minute")
    candidate_timeout: float = Field(default=8.0, description="Candidate fetch timeout in seconds")
    candidate_pacing: float = Field(default=0.25, description="Delay between candidate fetches")
    live_rule_overrides: Dict[str, str] = Field(
        default_factory=lambda: {"target": "jsonld"},
        description="Per-retailer live rule, 'jsonld' accepts JSON-LD in place of a CTA"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Output
    output_directory: str = Field(default="out", description="Output directory for smoke reports")
    output_filename: str = Field(default="smoke.json", description="Smoke report filename")

    retailers: List[RetailerConfig] = Field(default_factory=default_retailers)

    @field_validator('circuit_breaker_failure_threshold', 'candidate_batch_limit', 'candidate_qpm')
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"value must be positive, got: {v}")
        return v

    @field_validator('circuit_breaker_cooldown', 'adapter_timeout', 'health_check_interval')
    @classmethod
    def validate_positive_float(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"value must be positive, got: {v}")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"log_level must be a logging level name, got: {v}")
        return level

    @field_validator('retailers')
    @classmethod
    def validate_unique_ids(cls, v: List[RetailerConfig]) -> List[RetailerConfig]:
        seen = set()
        for retailer in v:
            if retailer.id in seen:
                raise ValueError(f"duplicate retailer id: {retailer.id}")
            seen.add(retailer.id)
        return v

    @property
    def output_path(self) -> Path:
        """Get full output file path."""
        return Path(self.output_directory) / self.output_filename

    def retailer(self, retailer_id: str) -> Optional[RetailerConfig]:
        for config in self.retailers:
            if config.id == retailer_id:
                return config
        return None


# Environment variable -> ServiceConfig field
ENV_MAPPINGS = {
    "RESTOCK_LOG_LEVEL": "log_level",
    "RESTOCK_CB_THRESHOLD": "circuit_breaker_failure_threshold",
    "RESTOCK_CB_COOLDOWN": "circuit_breaker_cooldown",
    "RESTOCK_ADAPTER_TIMEOUT": "adapter_timeout",
    "RESTOCK_HEALTH_INTERVAL": "health_check_interval",
    "RESTOCK_CANDIDATE_QPM": "candidate_qpm",
}

# Environment variable -> retailer id receiving the API key
API_KEY_ENV = {
    "BEST_BUY_API_KEY": "best-buy",
    "WALMART_API_KEY": "walmart",
}


class ConfigManager:
    """Manages configuration loading with override precedence."""

    def __init__(self, config_file: Optional[Path] = None, environ: Optional[Dict[str, str]] = None):
        self.config_file = Path(config_file) if config_file else Path("config/config.yaml")
        self.environ = os.environ if environ is None else environ
        self._config: Optional[ServiceConfig] = None

    def load_config(self, overrides: Optional[Dict] = None) -> ServiceConfig:
        """
        Load configuration with override precedence: overrides > ENV > YAML.

        API-backed retailers without a key after merging are marked inactive.

        Args:
            overrides: Optional dictionary of programmatic or CLI overrides

        Returns:
            Fully merged ServiceConfig instance

        Raises:
            ValueError: If configuration validation fails
        """
        config_dict: Dict = {}

        if self.config_file.exists():
            with open(self.config_file, 'r') as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    config_dict.update(yaml_config)

        for env_var, field_name in ENV_MAPPINGS.items():
            if env_var in self.environ:
                config_dict[field_name] = self.environ[env_var]

        if overrides:
            config_dict.update({k: v for k, v in overrides.items() if v is not None})

        config = ServiceConfig(**config_dict)
        self._apply_api_keys(config)
        self._config = config
        return config

    def _apply_api_keys(self, config: ServiceConfig) -> None:
        for env_var, retailer_id in API_KEY_ENV.items():
            retailer = config.retailer(retailer_id)
            if retailer is not None and not retailer.api_key and self.environ.get(env_var):
                retailer.api_key = self.environ[env_var]

        for retailer in config.retailers:
            if retailer.requires_api_key and not retailer.api_key:
                retailer.is_active = False

    @property
    def config(self) -> ServiceConfig:
        """Get the loaded configuration."""
        if self._config is None:
            self._config = self.load_config()
        return self._config
