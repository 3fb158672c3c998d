"""Config models and loader.

This module defines Pydantic models for the host-provided datasource settings
blob, the file-based application config and environment-based settings. JSON
parsing prefers `orjson` when available for speed, but falls back to the
Python standard library's `json` module so the loader keeps working in
minimal environments.
"""

from __future__ import annotations

import json as _json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

try:
    import orjson as _orjson_mod  # type: ignore[assignment]
except ImportError:  # pragma: no cover - optional dependency
    _orjson_mod = None  # type: ignore[assignment]
    _loads_orjson: Optional[Callable[[bytes], Any]] = None
else:

    def _loads_orjson(buf: bytes) -> Any:
        loader = getattr(_orjson_mod, "loads")  # type: ignore[assignment]
        return loader(buf)


from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://c1.api.wago.com/wems"

# WEMS tokens are valid for 20 minutes after issue
DEFAULT_TOKEN_VALIDITY_SECONDS = 20 * 60


def normalize_base_url(base_url: Optional[str]) -> str:
    """Return ``base_url`` with the default applied and one trailing slash removed."""
    if not base_url:
        return DEFAULT_BASE_URL
    if base_url.endswith("/"):
        return base_url[:-1]
    return base_url


@dataclass(frozen=True)
class Credentials:
    """Upstream credentials of one datasource instance.

    Immutable after construction. ``base_url`` is always normalized.
    """

    client_id: str
    client_secret: str
    base_url: str

    def __repr__(self) -> str:
        return (
            f"Credentials(client_id={self.client_id!r}, client_secret='***', "
            f"base_url={self.base_url!r})"
        )


class DatasourceInstanceSettings(BaseModel):
    """Settings blob as delivered by the host runtime.

    Attributes
    ----------
    json_data: Dict[str, Any]
        Non-sensitive settings (``client_id``, ``base_url``, tuning fields).
    secure_json_data: Dict[str, str]
        Decrypted sensitive settings (``client_secret``).
    """

    model_config = ConfigDict(populate_by_name=True)

    json_data: Dict[str, Any] = Field(default_factory=dict, alias="jsonData")
    secure_json_data: Dict[str, str] = Field(
        default_factory=dict, alias="secureJsonData"
    )


class DatasourceSettings(BaseModel):
    """Structured configuration for one WEMS datasource instance.

    Attributes
    ----------
    client_id: str
        WEMS client identifier.
    client_secret: str
        WEMS client secret. Normally delivered through ``secureJsonData``.
    base_url: str
        WEMS API base URL; normalized on load.
    token_validity_seconds: int
        Lifetime assumed for a freshly issued token.
    fan_out_limit: int
        Maximum concurrent appliance-model lookups; ``0`` means unbounded.
    prefetch_token: bool
        Acquire the first token when the server starts.
    """

    model_config = ConfigDict(extra="ignore")

    client_id: str = Field("", description="WEMS client identifier")
    client_secret: str = Field("", description="WEMS client secret", repr=False)
    base_url: str = Field(DEFAULT_BASE_URL, description="WEMS API base URL")
    token_validity_seconds: int = Field(DEFAULT_TOKEN_VALIDITY_SECONDS, ge=120)
    fan_out_limit: int = Field(0, ge=0)
    prefetch_token: bool = Field(True)

    @classmethod
    def from_instance_settings(
        cls, settings: DatasourceInstanceSettings
    ) -> "DatasourceSettings":
        """Build structured settings from a host settings blob.

        Raises
        ------
        ValueError
            If the blob does not validate.
        """
        data = dict(settings.json_data)
        secret = settings.secure_json_data.get("client_secret")
        if secret is not None:
            data["client_secret"] = secret
        data["base_url"] = normalize_base_url(data.get("base_url"))
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"failed to parse datasource settings: {exc}") from exc

    def credentials(self) -> Credentials:
        """Return the immutable credentials for this datasource."""
        return Credentials(
            client_id=self.client_id,
            client_secret=self.client_secret,
            base_url=normalize_base_url(self.base_url),
        )


class AppConfig(BaseModel):
    """Top-level application configuration.

    Attributes
    ----------
    datasources: Dict[str, DatasourceInstanceSettings]
        Mapping from datasource uid to its host settings blob.
    """

    datasources: Dict[str, DatasourceInstanceSettings] = Field(default_factory=dict)

    @staticmethod
    def load(path: Path) -> "AppConfig":
        """Load application config from a JSON file."""
        raw = path.read_bytes()
        if _loads_orjson is not None:
            data = _loads_orjson(raw)
        else:
            data = _json.loads(raw.decode("utf-8"))
        return AppConfig.model_validate(data)


class EnvSettings(BaseSettings):
    """Environment-driven settings and .env support.

    Attributes
    ----------
    log_level: str
        Logging level name (e.g., "DEBUG", "INFO"). Defaults to "INFO".
    config: Optional[str]
        Path to the JSON application config.
    client_id, client_secret, base_url: Optional[str]
        Single-datasource mode; registers uid ``default`` when set.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="WEMS_DS_", extra="ignore"
    )

    log_level: str = Field("INFO")
    config: Optional[str] = None

    client_id: Optional[str] = None
    client_secret: Optional[str] = Field(None, repr=False)
    base_url: Optional[str] = None

    def default_instance_settings(self) -> Optional[DatasourceInstanceSettings]:
        """Return a settings blob for single-datasource mode, if configured."""
        if not self.client_id:
            return None
        json_data: Dict[str, Any] = {"client_id": self.client_id}
        if self.base_url:
            json_data["base_url"] = self.base_url
        secure: Dict[str, str] = {}
        if self.client_secret:
            secure["client_secret"] = self.client_secret
        return DatasourceInstanceSettings(json_data=json_data, secure_json_data=secure)
