#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Container engine command synthesis and process delegation.
"""

import os
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence

from rich.console import Console
from rich.markup import escape

from .errors import WorkspaceError
from .models import RunMode, RunSettings

console = Console()

DAEMON_KEEPALIVE = "while true; do sleep 3600; done"
FALLBACK_PLATFORM = "linux/amd64"


# ============================================================================
# docker run
# ============================================================================


def tty_flags(tty: bool) -> list[str]:
    return ["-it"] if tty else ["-i"]


def docker_run_command(
    settings: RunSettings,
    mode: RunMode,
    command: Sequence[str],
    run_args: Sequence[str],
    cwd: Path,
    tty: bool,
) -> list[str]:
    """Build the `docker run` invocation for daemon, interactive or command mode"""
    common = [
        "--name",
        settings.effective_container_name,
        "-e",
        f"HOST_UID={settings.host_uid}",
        "-e",
        f"HOST_GID={settings.host_gid}",
        "-v",
        f"{cwd}:{settings.workspace_dir}",
        "-w",
        settings.workspace_dir,
        *run_args,
    ]
    shell = settings.container_shell

    if mode == RunMode.DAEMON:
        return [
            "docker",
            "run",
            "-d",
            *common,
            settings.image_ref,
            shell,
            "-lc",
            DAEMON_KEEPALIVE,
        ]
    if mode == RunMode.INTERACTIVE:
        return [
            "docker",
            "run",
            "--rm",
            *tty_flags(tty),
            *common,
            settings.image_ref,
            shell,
        ]
    if mode == RunMode.COMMAND:
        return [
            "docker",
            "run",
            "--rm",
            *tty_flags(tty),
            *common,
            settings.image_ref,
            shell,
            "-lc",
            " ".join(command),
        ]
    raise ValueError(f"docker run does not handle run mode: {mode.value}")


def docker_exec_command(container: str, shell: str, tty: bool) -> list[str]:
    return ["docker", "exec", *tty_flags(tty), container, shell]


def docker_build_command(
    image: str, dockerfile_dir: Path, extra_args: Sequence[str] = ()
) -> list[str]:
    return [
        "docker",
        "build",
        "-t",
        image,
        "-f",
        str(dockerfile_dir / "Dockerfile"),
        str(dockerfile_dir),
        *extra_args,
    ]


# ============================================================================
# docker compose
# ============================================================================


def compose_base(compose_path: Optional[Path]) -> list[str]:
    cmd = ["docker", "compose"]
    if compose_path is not None:
        cmd.extend(["-f", str(compose_path)])
    return cmd


def compose_run_command(
    base: Sequence[str],
    service: str,
    shell: str,
    command: Sequence[str],
    run_args: Sequence[str],
    tty: bool = True,
) -> list[str]:
    """One-off `compose run` container, removed on exit"""
    cmd = [*base, "run", "--rm", "--no-deps"]
    if not tty:
        cmd.append("-T")
    cmd.extend([*run_args, service, shell])
    if command:
        cmd.extend(["-lc", " ".join(command)])
    return cmd


# ============================================================================
# Image builds
# ============================================================================


def tag_args(tags: Sequence[str]) -> list[str]:
    args: list[str] = []
    for tag in tags:
        args.extend(["-t", tag])
    return args


def effective_platforms(platforms: str, push: bool, host_platform: str) -> str:
    """Only pushed builds may target several platforms.

    `--load` can't import a manifest list into the local image store, so a
    build-only run is restricted to the host platform.
    """
    return platforms if push else host_platform


def buildx_build_command(
    dockerfile: Path,
    context_dir: Path,
    tags: Sequence[str],
    platforms: str,
    push: bool,
    build_args: Sequence[str] = (),
) -> list[str]:
    cmd = ["docker", "buildx", "build", "--platform", platforms, "-f", str(dockerfile)]
    for build_arg in build_args:
        cmd.extend(["--build-arg", build_arg])
    cmd.extend(tag_args(tags))
    cmd.append(str(context_dir))
    cmd.append("--push" if push else "--load")
    return cmd


def classic_build_command(
    dockerfile: Path,
    context_dir: Path,
    tags: Sequence[str],
    build_args: Sequence[str] = (),
) -> list[str]:
    cmd = ["docker", "build", "-f", str(dockerfile)]
    for build_arg in build_args:
        cmd.extend(["--build-arg", build_arg])
    cmd.extend(tag_args(tags))
    cmd.append(str(context_dir))
    return cmd


# ============================================================================
# Process Delegate
# ============================================================================


class DockerEngine:
    """Runs synthesized commands against the local container engine"""

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        self.env = dict(env) if env else {}

    def _child_env(self) -> Optional[dict[str, str]]:
        if not self.env:
            return None
        return {**os.environ, **self.env}

    def _run(self, args: Sequence[str], **kwargs) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(list(args), env=self._child_env(), **kwargs)
        except FileNotFoundError:
            raise WorkspaceError(f"{args[0]} not found. Is it installed and on PATH?")

    def delegate(self, args: Sequence[str], input: Optional[str] = None) -> int:
        """Run a command with inherited stdio and return its exit code unchanged"""
        console.print(f"\n[dim]Running: {escape(' '.join(args))}[/dim]\n")
        try:
            result = self._run(args, input=input, text=input is not None)
            return result.returncode
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            return 130

    def capture(self, args: Sequence[str]) -> subprocess.CompletedProcess:
        return self._run(args, capture_output=True, text=True)

    def succeeds(self, args: Sequence[str]) -> bool:
        return self.capture(args).returncode == 0

    # ------------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------------

    def image_exists(self, image: str) -> bool:
        return self.succeeds(["docker", "image", "inspect", image])

    def container_running(self, name: str) -> bool:
        result = self.capture(
            ["docker", "ps", "-q", "--filter", f"name=^{name}$"]
        )
        return result.returncode == 0 and bool(result.stdout.strip())

    def remove_container(self, name: str) -> None:
        # Best effort; a missing container is not an error
        self.capture(["docker", "rm", "-f", name])

    def host_platform(self) -> str:
        result = self.capture(
            ["docker", "version", "-f", "{{.Server.Os}}/{{.Server.Arch}}"]
        )
        platform = result.stdout.strip() if result.returncode == 0 else ""
        return platform or FALLBACK_PLATFORM
