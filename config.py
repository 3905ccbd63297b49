"""
Application configuration via Pydantic Settings.

All values can be overridden by environment variables or a .env file.
The settings object is frozen: build it once with ``load_settings()`` and pass
it to the orchestrator and triggers explicitly.
"""
from __future__ import annotations

import re
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DIRECTORY_PRESETS = {
    "letsencrypt":         "https://acme-v02.api.letsencrypt.org/directory",
    "letsencrypt_staging": "https://acme-staging-v02.api.letsencrypt.org/directory",
    "zerossl":             "https://acme.zerossl.com/v2/DV90",
}

_SCHEDULE_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # ── CA / ACME ──────────────────────────────────────────────────────────
    CA_PROVIDER: Literal["letsencrypt", "letsencrypt_staging", "zerossl", "custom"] = "letsencrypt"
    # Only consulted when CA_PROVIDER="custom"
    ACME_DIRECTORY_URL: str = ""
    ACME_CONTACT_EMAIL: str = ""
    ACME_EAB_KEY_ID: str = ""
    ACME_EAB_HMAC_KEY: str = ""
    ACME_CA_BUNDLE: str = ""       # Path to CA cert bundle; empty = system default
    ACME_INSECURE: bool = False    # Skip TLS verification (never use in production)

    # ── Target domain ──────────────────────────────────────────────────────
    DOMAIN_NAME: str = ""

    # ── DNS provider (Cloudflare) ──────────────────────────────────────────
    CLOUDFLARE_ZONE_ID: str = ""
    CLOUDFLARE_API_TOKEN: str = ""
    CLOUDFLARE_API_EMAIL: str = ""
    CLOUDFLARE_API_KEY: str = ""
    DNS_RECORD_TTL: int = 120

    # ── Propagation / verification ─────────────────────────────────────────
    DNS_RESOLVER_URL: str = "https://dns.google/resolve"
    DNS_PROPAGATION_ATTEMPTS: int = 10
    DNS_PROPAGATION_INTERVAL_SECONDS: float = 5.0
    DNS_PROPAGATION_EXACT_MATCH: bool = False
    CHALLENGE_VERIFY_ATTEMPTS: int = 3
    CHALLENGE_VERIFY_INTERVAL_SECONDS: float = 5.0

    # ── CDN (Aliyun) ───────────────────────────────────────────────────────
    CDN_ACCESS_KEY_ID: str = ""
    CDN_ACCESS_KEY_SECRET: str = ""
    CDN_CERT_NAME_PREFIX: str = "auto-renewed-cert"
    CDN_ENDPOINT: str = "https://cdn.aliyuncs.com"
    CDN_REGION_ID: str = ""
    CDN_API_VERSION: str = "2018-05-10"

    # ── Triggers ───────────────────────────────────────────────────────────
    TRIGGER_BEARER_TOKEN: str = ""
    TRIGGER_HOST: str = "0.0.0.0"
    TRIGGER_PORT: int = 8080
    SCHEDULE_TIME: str = "06:00"

    # ── Transport ──────────────────────────────────────────────────────────
    HTTP_TIMEOUT_SECONDS: float = 30.0

    @field_validator("DNS_PROPAGATION_ATTEMPTS", "CHALLENGE_VERIFY_ATTEMPTS")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("attempt counts must be at least 1")
        return v

    @field_validator("DNS_PROPAGATION_INTERVAL_SECONDS", "CHALLENGE_VERIFY_INTERVAL_SECONDS")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError("intervals must not be negative")
        return v

    @field_validator("SCHEDULE_TIME")
    @classmethod
    def validate_schedule_time(cls, v: str) -> str:
        if not _SCHEDULE_TIME_RE.match(v):
            raise ValueError("SCHEDULE_TIME must be HH:MM (24h)")
        return v

    @model_validator(mode="before")
    @classmethod
    def resolve_acme_directory(cls, data: object) -> object:
        # Runs before freezing, so the preset is written into the input mapping.
        if not isinstance(data, dict):
            return data
        provider = next(
            (v for k, v in data.items() if k.upper() == "CA_PROVIDER"), "letsencrypt"
        )
        if provider in _DIRECTORY_PRESETS:
            data = {k: v for k, v in data.items() if k.upper() != "ACME_DIRECTORY_URL"}
            data["ACME_DIRECTORY_URL"] = _DIRECTORY_PRESETS[provider]
        return data

    @model_validator(mode="after")
    def validate_custom_directory(self) -> "Settings":
        if self.CA_PROVIDER == "custom" and not self.ACME_DIRECTORY_URL:
            raise ValueError("ACME_DIRECTORY_URL must be set when CA_PROVIDER='custom'")
        return self


def load_settings(**overrides: object) -> Settings:
    """Build the immutable settings value from the environment (plus overrides)."""
    return Settings(**overrides)
