from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Sequence

from mpaka.config.models import (
    AppConfig,
    ConfigLoadRequest,
)

logger = logging.getLogger(__name__)

# Flat variable names accepted for deployment compatibility.
FLAT_ENV_OVERRIDES: Mapping[str, Sequence[str]] = {
    "CACHE_VERSION": ("cache", "version"),
    "APP_NAME": ("cache", "app_name"),
    "FIRST_TIME_TIMEOUT_MS": ("cache", "first_time_timeout_ms"),
    "RETURNING_USER_TIMEOUT_MS": ("cache", "returning_user_timeout_ms"),
    "ENABLE_LOGS": ("logging", "enabled"),
    "PORT": ("server", "port"),
}


def _read_yaml_config(path: Path) -> dict[str, Any]:
    try:
        import yaml  # type: ignore[import-not-found]
    except ModuleNotFoundError as e:  # pragma: no cover
        raise ModuleNotFoundError(
            "Missing dependency: PyYAML is required to load the YAML config file. Install 'PyYAML'."
        ) from e

    if not path.exists():
        _ensure_default_config(path)
    if not path.exists():
        logger.debug("config.yaml_missing path=%s using_defaults=true", path)
        return {}

    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Top-level YAML must be a mapping, got: {type(data).__name__}")
    return data


def _ensure_default_config(target_path: Path) -> None:
    example_path = Path("examples/config.yaml")
    if not example_path.exists():
        return
    target_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(example_path, target_path)


def _load_dotenv_if_present(dotenv_path: Path) -> None:
    try:
        from dotenv import load_dotenv  # type: ignore[import-not-found]
    except ModuleNotFoundError as e:  # pragma: no cover
        raise ModuleNotFoundError(
            "Missing dependency: python-dotenv is required to load .env. Install 'python-dotenv'."
        ) from e

    if not dotenv_path.exists():
        return
    load_dotenv(dotenv_path=dotenv_path, override=False)


def _deep_merge(base: MutableMapping[str, Any], override: Mapping[str, Any], path: Sequence[str] = ()) -> None:
    for key, value in override.items():
        dotted = ".".join([*path, str(key)])
        if key not in base:
            raise KeyError(f"Unknown configuration key path: {dotted}")
        current = base[key]
        if isinstance(current, dict):
            if not isinstance(value, dict):
                raise TypeError(f"Configuration key path must be a mapping: {dotted}")
            _deep_merge(current, value, [*path, str(key)])
        else:
            base[key] = value


def _env_var_name_to_segments(env_var_name: str, prefix: str) -> Sequence[str]:
    remainder = env_var_name[len(prefix) :]
    parts = [p for p in remainder.split("__") if p]
    if not parts:
        raise ValueError(f"Invalid environment variable override name: {env_var_name}")
    return [p.lower() for p in parts]


def _get_parent_mapping(config: MutableMapping[str, Any], path: Sequence[str]) -> MutableMapping[str, Any]:
    cur: MutableMapping[str, Any] = config
    for segment in path[:-1]:
        if segment not in cur:
            dotted = ".".join(path)
            raise KeyError(f"Unknown configuration key path: {dotted}")
        next_value = cur[segment]
        if not isinstance(next_value, dict):
            dotted = ".".join(path)
            raise TypeError(f"Configuration key path does not point to a mapping: {dotted}")
        cur = next_value
    return cur


def _set_path(config: MutableMapping[str, Any], segments: Sequence[str], value: Any) -> None:
    parent = _get_parent_mapping(config, segments)
    leaf = segments[-1]
    if leaf not in parent:
        raise KeyError(f"Unknown configuration key path: {'.'.join(segments)}")
    # Pydantic handles type coercion/validation later.
    parent[leaf] = value


def _apply_env_overrides(config: MutableMapping[str, Any], env_prefix: str) -> None:
    for name, value in os.environ.items():
        if not name.startswith(env_prefix):
            continue
        _set_path(config, _env_var_name_to_segments(name, env_prefix), value)


def _apply_flat_env_overrides(config: MutableMapping[str, Any]) -> None:
    for name, segments in FLAT_ENV_OVERRIDES.items():
        value = os.environ.get(name)
        if value is None or value == "":
            continue
        _set_path(config, segments, value)


class YamlConfigLoader:
    async def load(self, request: ConfigLoadRequest = ConfigLoadRequest()) -> AppConfig:
        config: dict[str, Any] = AppConfig().model_dump(mode="python")
        _deep_merge(config, _read_yaml_config(Path(request.yaml_path)))

        if request.dotenv_path is not None:
            _load_dotenv_if_present(Path(request.dotenv_path))

        _apply_env_overrides(config, request.env_prefix)
        _apply_flat_env_overrides(config)
        return AppConfig.model_validate(config)
