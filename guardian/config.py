"""
Guardian Configuration.

============================================================
PURPOSE
============================================================
Typed configuration for guardians, monitors and actions, and
the YAML loader used by the CLI.

- Pydantic models validate every guardian config on creation
- camelCase keys (as written in YAML) and snake_case both work
- ${ENV_VAR} placeholders are expanded from the environment
  (a local .env file is loaded first)

============================================================
FILE FORMAT
============================================================
```yaml
version: "0.1"
guardians:
  laminar-guardian:
    networkType: laminarChain
    network: dev
    nodeEndpoint: ws://localhost:9944
    confirmation: finalize
    monitors:
      pools:
        task: synthetic.liquidityPool
        arguments: { poolId: all, currencyId: fTokens }
        actions:
          - method: POST
            url: ${ALERT_WEBHOOK_URL}
```

============================================================
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Union

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from guardian.exceptions import ConfigurationError, ValidationError
from guardian.models import Confirmation


logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


# ============================================================
# BASE MODEL
# ============================================================

class ConfigModel(BaseModel):
    """Frozen model accepting camelCase or snake_case keys."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )


# ============================================================
# MONITORS
# ============================================================

class ActionConfig(ConfigModel):
    """What to do with each emitted record."""

    method: Literal["POST"] = "POST"
    url: str = Field(min_length=1)
    headers: Dict[str, str] = Field(default_factory=dict)


class MonitorConfig(ConfigModel):
    """Binds a task and its arguments to a list of actions."""

    task: str = Field(min_length=1)
    arguments: Dict[str, Any] = Field(default_factory=dict)
    actions: List[ActionConfig] = Field(default_factory=list)


# ============================================================
# GUARDIANS
# ============================================================

class GuardianConfig(ConfigModel):
    """
    Configuration common to every guardian type.

    Custom guardian types may carry extra keys.
    """

    model_config = ConfigDict(extra="allow")

    network_type: str = Field(min_length=1)
    monitors: Dict[str, MonitorConfig] = Field(default_factory=dict)


class SubstrateGuardianConfig(GuardianConfig):
    """Configuration for guardians connected to a substrate node."""

    model_config = ConfigDict(extra="forbid")

    network: Literal["dev", "testnet", "mainnet"] = "dev"
    node_endpoint: Union[str, List[str]]
    confirmation: Confirmation = Confirmation.FINALIZE
    request_timeout: float = Field(default=30.0, gt=0)

    @property
    def endpoints(self) -> List[str]:
        if isinstance(self.node_endpoint, str):
            return [self.node_endpoint]
        return list(self.node_endpoint)


class LaminarGuardianConfig(SubstrateGuardianConfig):
    network_type: Literal["laminarChain"] = "laminarChain"


class AcalaGuardianConfig(SubstrateGuardianConfig):
    network_type: Literal["acalaChain"] = "acalaChain"


# ============================================================
# FILE
# ============================================================

class AppConfig(ConfigModel):
    """
    Top-level configuration file.

    Guardian entries stay raw here; each guardian class validates
    its own entry when the registry creates it.
    """

    version: str = "0.1"
    guardians: Dict[str, Dict[str, Any]] = Field(default_factory=dict)


def validate_config(model: type, data: Any, subject: str, **kwargs: Any) -> Any:
    """
    Validate data against a pydantic model.

    Raises:
        ValidationError: Naming the first offending field
    """
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True)
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e, subject, **kwargs)


def expand_env(value: Any) -> Any:
    """Recursively replace ${VAR} placeholders with environment values."""
    if isinstance(value, str):
        def replace(match: "re.Match[str]") -> str:
            name = match.group(1)
            if name not in os.environ:
                raise ConfigurationError(
                    f"Environment variable '{name}' is not set",
                    config_key=name,
                )
            return os.environ[name]
        return _ENV_PATTERN.sub(replace, value)
    if isinstance(value, dict):
        return {key: expand_env(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    return value


def load_config(path: Union[str, Path]) -> AppConfig:
    """
    Load the guardian configuration file.

    Raises:
        ConfigurationError: File missing or not valid YAML
        ValidationError: File does not match the expected shape
    """
    path = Path(path)
    load_dotenv(find_dotenv(usecwd=True))

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read config file: {e}",
            path=str(path),
            original_error=e,
        )
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Invalid YAML: {e}",
            path=str(path),
            original_error=e,
        )

    if not isinstance(data, dict):
        raise ConfigurationError("Config root must be a mapping", path=str(path))

    try:
        data = expand_env(data)
    except ConfigurationError as e:
        e.path = str(path)
        raise

    config = validate_config(AppConfig, data, "config file")
    logger.info(f"Loaded {len(config.guardians)} guardian(s) from {path}")
    return config
