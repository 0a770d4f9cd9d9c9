#!/usr/bin/env python3
# -*- coding: utf-8 -*-
#
# Copyright (c) 2026 plumiume
# SPDX-License-Identifier: MIT
# License: MIT License (https://opensource.org/licenses/MIT)
# See LICENSE.txt for details.

"""
Configuration models for workspace containers.

Every record is populated once at startup. Values are layered as
built-in defaults < environment variables < command-line flags.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Type

import typer
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

DEFAULT_IMAGE_REPO = "nawaman/workspace"
DEFAULT_VARIANT = "workspace"
DEFAULT_WORKSPACE_DIR = "/home/coder/workspace"


def _host_uid() -> int:
    getuid = getattr(os, "getuid", None)
    return getuid() if getuid else 1000


def _host_gid() -> int:
    getgid = getattr(os, "getgid", None)
    return getgid() if getgid else 1000


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


# ============================================================================
# Run Modes
# ============================================================================


class RunMode(str, Enum):
    """How the workspace container is entered"""

    INTERACTIVE = "interactive"
    COMMAND = "command"
    DAEMON = "daemon"
    ATTACH = "attach"


def resolve_run_mode(daemon: bool, attach: bool, command: list[str]) -> RunMode:
    """Pick exactly one run mode, rejecting incompatible combinations"""
    if daemon and command:
        raise typer.BadParameter(
            "can't use --daemon and -- <command> together.", param_hint="'--daemon'"
        )
    if attach and (daemon or command):
        raise typer.BadParameter(
            "--attach cannot be combined with --daemon or a one-off command.",
            param_hint="'--attach'",
        )

    if attach:
        return RunMode.ATTACH
    if daemon:
        return RunMode.DAEMON
    if command:
        return RunMode.COMMAND
    return RunMode.INTERACTIVE


# ============================================================================
# Pydantic Settings
# ============================================================================


class EnvSettings(BaseSettings):
    """Base for records read from flags and the process environment"""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """
        Customize settings sources priority.
        Priority: flags (init) > env vars > defaults
        """
        return init_settings, env_settings


class HostIdentity(EnvSettings):
    """Host user identity forwarded into the container"""

    host_uid: int = Field(default_factory=_host_uid, description="Host user id")
    host_gid: int = Field(default_factory=_host_gid, description="Host group id")


class RunSettings(HostIdentity):
    """Plain `docker run` workspace configuration"""

    image_name: str = Field(
        default=DEFAULT_IMAGE_REPO, description="Image repository (without tag)"
    )
    variant: str = Field(default=DEFAULT_VARIANT, description="Variant prefix")
    version_tag: str = Field(default="latest", description="Version suffix")
    container_name: Optional[str] = Field(
        default=None, description="Container name (default: <variant>-run)"
    )
    workspace_dir: str = Field(
        default=DEFAULT_WORKSPACE_DIR, description="Mount point inside the container"
    )
    container_shell: str = Field(
        default="bash", description="Shell used inside the container"
    )
    dockerfile_dir: Optional[Path] = Field(
        default=None, description="Directory holding the Dockerfile for --build"
    )

    @field_validator("image_name", "variant", "version_tag", "container_shell")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject empty values"""
        return _not_blank(v)

    @property
    def image_tag(self) -> str:
        return f"{self.variant}-{self.version_tag}"

    @property
    def image_ref(self) -> str:
        return f"{self.image_name}:{self.image_tag}"

    @property
    def effective_container_name(self) -> str:
        return self.container_name or f"{self.variant}-run"

    @property
    def effective_dockerfile_dir(self) -> Path:
        return self.dockerfile_dir or Path("docker") / self.variant


class ComposeSettings(HostIdentity):
    """`docker compose` workspace configuration"""

    service: str = Field(default="app", description="Compose service name")
    compose_path: Optional[Path] = Field(
        default=None, description="Compose file (default: docker compose discovery)"
    )
    container_shell: str = Field(
        default="bash", description="Shell used inside the container"
    )
    image_name: str = Field(default=DEFAULT_IMAGE_REPO)
    variant: str = Field(default=DEFAULT_VARIANT)
    version_tag: str = Field(default="latest")
    workspace_dir: str = Field(default=DEFAULT_WORKSPACE_DIR)

    @field_validator("service", "container_shell")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject empty values"""
        return _not_blank(v)

    @property
    def image_ref(self) -> str:
        return f"{self.image_name}:{self.variant}-{self.version_tag}"


class BuildSettings(EnvSettings):
    """Variant image build / publish configuration"""

    image_name: str = Field(default=DEFAULT_IMAGE_REPO, description="Image repository")
    variant: str = Field(
        default=DEFAULT_VARIANT, description="Variant folder under ./docker"
    )
    version_tag: Optional[str] = Field(
        default=None, description="Version (read from version_file when unset)"
    )
    version_file: Path = Field(
        default=Path("version.txt"), description="File to read the version from"
    )

    context_dir: Optional[Path] = Field(
        default=None, description="Build context (default: docker/<variant>)"
    )
    dockerfile: Optional[Path] = Field(
        default=None, description="Dockerfile (default: docker/<variant>/Dockerfile)"
    )

    platforms: str = Field(
        default="linux/amd64,linux/arm64", description="Platforms for buildx"
    )
    push: bool = Field(default=True, description="Push after build")
    use_buildx: bool = Field(default=True, description="Use buildx multi-arch")
    builder_name: str = Field(default="ci_builder", description="Buildx builder name")

    login: bool = Field(default=False, description="docker login before building")
    dockerhub_username: Optional[str] = Field(default=None)
    dockerhub_token: Optional[SecretStr] = Field(default=None)
    docker_user_script: Path = Field(
        default=Path("~/secrets/.docker-user"),
        description="Executable printing the Docker Hub username",
    )
    docker_pat_script: Path = Field(
        default=Path("~/secrets/.docker-pat"),
        description="Executable printing the Docker Hub access token",
    )

    latest_on_default: bool = Field(
        default=True, description="Tag <variant>-latest on the default branch"
    )
    default_branch: str = Field(default="main")

    # Plain tags are unsafe when several variants share one repository
    emit_plain_tags: bool = Field(default=False)
    plain_include_latest: bool = Field(default=True)
    plain_include_cascade: bool = Field(default=False)

    @field_validator("image_name", "variant", "default_branch")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject empty values"""
        return _not_blank(v)

    @field_validator("version_tag")
    @classmethod
    def validate_version_tag(cls, v: Optional[str]) -> Optional[str]:
        """Treat a blank version like an unset one"""
        if v is None:
            return v
        return v.strip() or None

    @property
    def effective_context_dir(self) -> Path:
        return self.context_dir or Path("docker") / self.variant

    @property
    def effective_dockerfile(self) -> Path:
        return self.dockerfile or Path("docker") / self.variant / "Dockerfile"


class LocalBuildSettings(EnvSettings):
    """Single-platform local image build"""

    image_name: str = Field(default="workspace:local", description="Target image")
    dockerfile_dir: Path = Field(
        default=Path("docker") / DEFAULT_VARIANT,
        description="Directory containing the Dockerfile",
    )
