"""YAML configuration loading with include directive support."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import yaml
from platformdirs import user_config_dir
from pydantic_settings import BaseSettings, YamlConfigSettingsSource

from cpancmd.core.log import logger

CONFIG_NAME = "cpancmd.yaml"
DEFAULTS_FILE = Path(__file__).parent.parent / "defaults" / "default.yaml"


def cli_includes(argv: list[str] | None = None) -> list[str]:
    """Collect `--include FILE` values ahead of pydantic's own parsing."""
    argv = sys.argv if argv is None else argv
    includes = []
    i = 1
    while i < len(argv):
        if argv[i] == "--include" and i + 1 < len(argv):
            includes.append(argv[i + 1])
            i += 1
        i += 1
    return includes


class YamlWithIncludesSettingsSource(YamlConfigSettingsSource):
    """YAML source layering defaults, user, project and included files.

    Merge order, later wins:
        package defaults < user config < ./cpancmd.yaml < --include files.
    Any file may name further files under an `include:` key; those are
    resolved relative to the including file and merged beneath it.
    """

    def __init__(
        self, settings_cls: type[BaseSettings], yaml_file=None
    ):
        includes = cli_includes()
        base = yaml_file or settings_cls.model_config.get("yaml_file")
        if base and includes:
            yaml_file = (
                [base] if isinstance(base, (str, os.PathLike)) else list(base)
            ) + includes
        elif includes:
            yaml_file = includes
        else:
            yaml_file = base

        super().__init__(settings_cls, yaml_file)

    def _read_files(self, files, **kwargs):  # noqa: ARG002
        files_to_load = [
            DEFAULTS_FILE,
            Path(user_config_dir("cpancmd", appauthor=False)) / CONFIG_NAME,
        ]
        if files:
            if isinstance(files, (str, os.PathLike)):
                files = [files]
            files_to_load.extend(Path(f).expanduser() for f in files)

        result = {}
        for file_path in files_to_load:
            if not file_path.is_file():
                logger.debug(
                    "Configuration file not found (skipping)",
                    file=str(file_path),
                )
                continue
            logger.debug("Loading configuration", file=str(file_path))
            data = self._load_file_recursive(file_path, set())
            result = merge_dicts(result, data)
        return result

    def _load_file_recursive(
        self, filepath: Path, visited: set[Path]
    ) -> dict:
        """Load one file with its includes merged in.

        Raises:
            ValueError: If a file includes itself, directly or not
        """
        filepath = filepath.resolve()
        if filepath in visited:
            raise ValueError(f"Circular include: {filepath}")
        visited.add(filepath)

        with open(filepath) as f:
            data = yaml.safe_load(f) or {}

        includes = data.pop("include", None) or []
        if isinstance(includes, str):
            includes = [includes]
        for inc in includes:
            inc_path = resolve_include(inc, filepath)
            inc_data = self._load_file_recursive(inc_path, visited.copy())
            data = merge_dicts(inc_data, data)

        return data


def resolve_include(include_path: str, relative_to: Path) -> Path:
    """Resolve an include path against the directory of the includer."""
    path = Path(include_path).expanduser()
    if path.is_absolute():
        return path
    return (relative_to.parent / path).resolve()


def merge_dicts(base: dict, override: dict) -> dict:
    """Return base updated recursively by override (override wins)."""
    result = base.copy()
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value
    return result
