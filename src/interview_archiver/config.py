import yaml
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import ArchiverConfig

DEFAULT_CONFIG_PATH = Path("config/default.yaml")
LOCAL_CONFIG_PATH = Path("config/local.yaml")


class EnvOverrides(BaseSettings):
    """Deployment settings read from the environment (and ``.env``)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    google_drive_folder_id: Optional[str] = None
    google_access_token: Optional[str] = None
    whisper_cpp_path: Optional[str] = None
    whisper_model_path: Optional[str] = None
    employee_id: Optional[int] = None
    record_store_url: Optional[str] = None
    record_store_token: Optional[str] = None
    compressed_storage: Optional[str] = None

    def as_config_dict(self) -> Dict[str, Any]:
        """Nested dict containing only the variables that are set."""
        mapping = {
            "google_drive_folder_id": ("google", "drive_folder_id"),
            "google_access_token": ("google", "access_token"),
            "whisper_cpp_path": ("transcription", "whisper_path"),
            "whisper_model_path": ("transcription", "model_path"),
            "employee_id": ("record_store", "employee_id"),
            "record_store_url": ("record_store", "base_url"),
            "record_store_token": ("record_store", "token"),
            "compressed_storage": ("storage", "compressed_storage"),
        }
        result: Dict[str, Any] = {}
        for field, (section, key) in mapping.items():
            value = getattr(self, field)
            if value is not None:
                result.setdefault(section, {})[key] = value
        return result


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file, returning empty dict if not found."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def merge_dicts(base: Dict, override: Dict) -> Dict:
    """Recursive merge of two dictionaries."""
    result = base.copy()
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = merge_dicts(result[k], v)
        else:
            result[k] = v
    return result


def resolve_config(
    cli_args: Dict[str, Any] = None,
    config_path: Optional[Path] = None,
    use_env: bool = True,
) -> ArchiverConfig:
    """
    Resolve config: Default < Local (or --config file) < Environment < CLI.
    Returns validated Pydantic ArchiverConfig model.

    Raises:
        pydantic.ValidationError: If the merged configuration is invalid.
    """
    cli_args = cli_args or {}

    config_data = load_yaml(DEFAULT_CONFIG_PATH)

    local_data = load_yaml(config_path or LOCAL_CONFIG_PATH)
    config_data = merge_dicts(config_data, local_data)

    if use_env:
        config_data = merge_dicts(config_data, EnvOverrides().as_config_dict())

    config = ArchiverConfig.from_dict(config_data)
    return config.merge_cli_overrides(cli_args)
