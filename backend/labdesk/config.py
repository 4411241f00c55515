"""
Configuration management for the labdesk backend.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Hosted database (PostgREST / Supabase REST)
    supabase_url: str = ""
    supabase_key: str = ""
    data_timeout_s: float = 10.0

    # Logical tables consulted by the patient resolver
    appointments_table: str = "appointments"
    patients_table: str = "users"
    walk_in_table: str = "walk_in_patients"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    allowed_origins: str = "http://localhost:3000,http://localhost:5173"
    allowed_hosts: str = "localhost,127.0.0.1"

    # App metadata
    app_version: str = "1.0.0"

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("supabase_url", mode="before")
    @classmethod
    def _strip_url(cls, v: Optional[str]) -> str:
        return (v or "").strip().rstrip("/")

    def cors_origins(self) -> List[str]:
        """Return CORS origins as a list."""
        return [o.strip().rstrip("/") for o in self.allowed_origins.split(",") if o.strip()]

    def trusted_hosts(self) -> List[str]:
        """Return trusted host names as a list, always allowing the test client."""
        hosts = [h.strip() for h in self.allowed_hosts.split(",") if h.strip()]
        if "testserver" not in hosts:
            hosts.append("testserver")
        return hosts

    def data_service_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key.strip())


# Global settings instance
settings = Settings()
