import json
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from docker2lm.core.exceptions import (
    ConfigurationError,
    MissingApiKeyError,
    MissingConfigSectionError,
)


class LabelRule(BaseModel):
    rename: Optional[str] = None


class AppLogConfig(BaseModel):
    label: Dict[str, LabelRule] = Field(default_factory=dict)

    @field_validator("label", mode="before")
    @classmethod
    def default_label(cls, v):
        if v is None:
            return {}
        return v


class RelayConfig(BaseModel):
    """The shipping document read from DOCKER_LM_CONFIG"""

    apikey: str
    custom_field: Any = Field(default_factory=dict)
    applog: AppLogConfig
    stats: Dict[str, Any] = Field(default_factory=dict)
    event: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("custom_field", mode="before")
    @classmethod
    def default_custom_field(cls, v):
        if v is None:
            return {}
        return v

    def label_name_mapping(self) -> Dict[str, str]:
        """Source label key -> output key; rules without a rename keep their key"""
        return {
            source: rule.rename or source
            for source, rule in self.applog.label.items()
        }


class Settings(BaseSettings):
    # Application
    app_name: str = "docker2lm"
    app_version: str = "0.1.0"

    # Shipping document (JSON)
    relay_config: Optional[str] = Field(None, validation_alias="DOCKER_LM_CONFIG")

    # Intake endpoint
    intake_host: str = "api.logmatic.io"
    intake_port: int = 10515
    reconnect_delay: float = 0.0

    # Docker
    docker_url: Optional[str] = None

    # Timers (seconds)
    log_interval: float = 5.0
    event_interval: float = 5.0
    stats_interval: float = 30.0
    gc_interval: float = 600.0

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="DOCKER_LM_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


def load_relay_config(raw: Optional[str]) -> RelayConfig:
    """
    Parse and validate the shipping document

    Raises:
        MissingConfigSectionError: if the "applog" section is absent
        MissingApiKeyError: if "apikey" is absent or empty
        ConfigurationError: for anything else that fails to parse
    """
    if not raw:
        raise ConfigurationError("DOCKER_LM_CONFIG is not set", "CONFIG_NOT_SET")

    try:
        document = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"DOCKER_LM_CONFIG is not valid JSON: {e}", "CONFIG_NOT_JSON")

    if not isinstance(document, dict):
        raise ConfigurationError("DOCKER_LM_CONFIG must be a JSON object", "CONFIG_NOT_OBJECT")

    if document.get("applog") is None:
        raise MissingConfigSectionError("applog")

    if not document.get("apikey"):
        raise MissingApiKeyError()

    try:
        return RelayConfig.model_validate(document)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid DOCKER_LM_CONFIG: {e}", details={"errors": e.errors()})


def get_settings() -> Settings:
    return Settings()
