"""Application state and configuration."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import platformdirs
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    CliSuppress,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from cpancmd.core.base import BaseConfig, BaseState
from cpancmd.core.log import Logger
from cpancmd.core.yaml_settings import YamlWithIncludesSettingsSource

# Modules usable in {module.attr} templates inside YAML values,
# e.g. {platformdirs.user_state_dir} or {Path.home}
TEMPLATE_NAMESPACE = {
    'os': os,
    'platformdirs': platformdirs,
    'Path': Path,
}

# ============================================================
# CONFIG MODELS (loaded from YAML/env/CLI)
# ============================================================

class CpanConfig(BaseConfig):
    """How to reach CPAN.pm."""

    perl: str = Field(
        default="perl",
        description="Perl interpreter that has CPAN.pm installed",
    )
    config_file: Path | None = Field(
        default=None,
        description=(
            "CPAN/Config.pm style file to load instead of the default "
            "CPAN.pm configuration (same as -j)"
        ),
    )
    timeout: int | None = Field(
        default=None,
        description="Seconds before a single CPAN.pm call is abandoned",
    )
    echo: bool = Field(
        default=True,
        description="Show CPAN.pm output while it is being captured",
    )
    changes_url: str = Field(
        default=(
            "https://fastapi.metacpan.org/v1/source/"
            "{author}/{distribution}-{version}/Changes"
        ),
        description=(
            "URL template for Changes files; {author}, {distribution} "
            "and {version} are filled per module"
        ),
    )
    request_timeout: int = Field(
        default=30,
        description="HTTP timeout in seconds for Changes downloads",
    )


class Config(BaseConfig):
    """Application configuration loaded from YAML/env/CLI."""

    logger: Logger = Field(
        default_factory=Logger,
        description="Logger configuration and runtime instance",
    )
    cpan: CpanConfig = Field(
        default_factory=CpanConfig,
        description="CPAN.pm invocation settings",
    )
    log_root: Path = Field(
        default_factory=(
            lambda: Path(platformdirs.user_state_dir("cpancmd", appauthor=False))
        ),
        description=(
            "Root directory for log files and captured build output "
            "(supports {platformdirs.*} templates)"
        ),
    )
    session: str = Field(
        default="cpan",
        description="Name used for this run's log subdirectory",
    )

    def start_logger(self) -> Logger:
        """Start the global logger from the loaded logger section.

        Called once templates in log_root and the sink paths have been
        expanded.
        """
        from cpancmd.core.log import setup_logger

        self.logger = setup_logger(
            log_root=self.log_root,
            session=self.session,
            level=self.logger.level,
            console=self.logger.console,
            file=self.logger.file,
        )
        return self.logger

    def close(self):
        """Close the global logger, then the remaining sections."""
        from cpancmd.core.log import logger
        logger.close()
        super().close()


# ============================================================
# RUNTIME STATE MODELS (mutable during a run)
# ============================================================

class CpanState(BaseState):
    """Objects shared by the handlers of one cpan invocation."""

    shell: Any = Field(
        default=None,
        description="CpanShell (or compatible) the switches dispatch to",
    )
    capture: Any = Field(
        default=None,
        description="OutputCapture hooked into the shell",
    )
    attempts: list = Field(
        default_factory=list,
        description="AttemptResult for every module tried so far",
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def close(self):
        if self.capture is not None:
            self.capture.uninstall()
        super().close()


class Runtime(BaseModel):
    """All runtime state. A container, not a section."""

    cpan: CpanState = Field(
        default_factory=CpanState,
        description="CPAN dispatch runtime state",
    )


# ============================================================
# STATE (config + runtime combined)
# ============================================================

class State(BaseSettings):
    """Complete application state: configuration plus runtime.

    Configuration is read from, highest priority first: init
    arguments, YAML (defaults, user, ./cpancmd.yaml, --include),
    .env, CPANCMD_* environment variables and file secrets.
    """

    config: Config = Field(
        default_factory=Config,
        description="Application configuration (from YAML/env/CLI)",
    )
    runtime: CliSuppress[Runtime] = Field(
        default_factory=Runtime,
        description="Runtime state (mutates during a run)",
    )
    include: list[str] | None = Field(
        default=None,
        description=(
            "Additional YAML files to merge over the configuration. "
            "Use --include on the command line or include: in YAML."
        ),
    )

    model_config = SettingsConfigDict(
        yaml_file="cpancmd.yaml",
        env_file=".env",
        env_prefix="CPANCMD_",
        env_nested_delimiter="__",
        cli_implicit_flags=True,
        cli_use_class_docs_for_groups=True,
        arbitrary_types_allowed=True,
        extra='ignore',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            YamlWithIncludesSettingsSource(settings_cls),
            dotenv_settings,
            env_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def substitute_templates(self) -> "State":
        """Expand {config.*} and {module.attr} templates, then log."""
        self._substitute_recursive(self)
        self.config.start_logger()
        return self

    def _substitute_recursive(self, obj: Any) -> None:
        if isinstance(obj, BaseModel):
            for field_name in obj.__class__.model_fields:
                value = getattr(obj, field_name)
                new_value = self._substitute_value(value)
                if new_value is not value:
                    setattr(obj, field_name, new_value)
        elif isinstance(obj, dict):
            for key in obj:
                obj[key] = self._substitute_value(obj[key])
        elif isinstance(obj, list):
            for i in range(len(obj)):
                obj[i] = self._substitute_value(obj[i])

    def _substitute_value(self, value: Any) -> Any:
        if isinstance(value, str):
            new = self._substitute_string(value)
            return value if new == value else new
        if isinstance(value, Path):
            new = self._substitute_string(str(value))
            return value if new == str(value) else Path(new)
        if isinstance(value, (BaseModel, dict, list)):
            self._substitute_recursive(value)
        return value

    def _substitute_string(self, value: str) -> str:
        """Replace {dotted.path} references that resolve.

        Unresolvable names ({author}, {log_root}, ...) are left for
        the code that fills them in later.

        Examples:
            "{platformdirs.user_log_dir}/cpan"
            -> "/home/me/.local/state/cpancmd/log/cpan"
        """
        def replace_template(match):
            parts = match.group(1).split(".")
            if parts[0] in TEMPLATE_NAMESPACE:
                module = parts[0]
                obj = TEMPLATE_NAMESPACE[module]
                parts = parts[1:]
            else:
                module = None
                obj = self

            try:
                for part in parts:
                    obj = getattr(obj, part)
                if callable(obj):
                    if module == 'platformdirs':
                        obj = obj('cpancmd', appauthor=False)
                    else:
                        obj = obj()
                return str(obj)
            except (AttributeError, TypeError):
                return match.group(0)

        return re.sub(r'\{([A-Za-z_][A-Za-z0-9_.]*)\}', replace_template, value)


__all__ = ["State", "Config", "CpanConfig", "CpanState"]
