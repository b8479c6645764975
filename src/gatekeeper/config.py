"""Configuration settings for Gatekeeper."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_prefix="GATEKEEPER_", env_file=".env")

    # Server
    host: str = "127.0.0.1"  # Use GATEKEEPER_HOST=0.0.0.0 for Docker
    port: int = 8080
    debug: bool = False
    environment: Literal["development", "production"] = "development"

    # Rate limiting
    rate_limit_requests: int = Field(100, ge=1)
    rate_limit_window_seconds: int = Field(15 * 60, ge=1)
    store_backend: Literal["memory", "redis"] = "memory"
    store_sweep_interval_seconds: int = Field(60, ge=1)
    store_cas_attempts: int = Field(16, ge=1)

    # Redis (only used when store_backend == "redis")
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0
    redis_pool_size: int = 50
    redis_key_prefix: str = "gatekeeper:rl:"

    # Request screening
    max_header_bytes: int = 8192
    api_path_prefix: str = "/api/"

    # Deny-lists
    blocked_ips: list[str] = ["192.168.1.100"]
    blocked_user_agents: list[str] = [
        "bot",
        "crawler",
        "spider",
        "scraper",
        "wget",
        "curl",
        "python-requests",
        "http-client",
        "httpie",
        "postman",
    ]
    blocked_paths: list[str] = [
        "/wp-admin",
        "/wp-login.php",
        "/admin",
        "/administrator",
        "/phpmyadmin",
        "/mysql",
        "/.env",
        "/.git",
        "/config",
        "/api/config",
    ]

    # Routes the gate never sees
    excluded_path_prefixes: list[str] = [
        "/_next/static",
        "/_next/image",
        "/favicon.ico",
        "/health",
        "/ready",
        "/metrics",
    ]
    excluded_extensions: list[str] = ["ico", "png", "svg", "jpg", "jpeg", "gif", "webp", "css", "js"]

    # Headers added to every admitted response
    security_headers: dict[str, str] = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "origin-when-cross-origin",
    }

    # Behaviour when a check raises unexpectedly
    fail_mode: Literal["open", "closed"] = "closed"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Metrics
    metrics_enabled: bool = True

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
