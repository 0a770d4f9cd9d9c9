#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Workspace manager for docker run / docker compose / image build workflows.
"""

import os
import subprocess
import sys
from pathlib import Path
from typing import Optional, Sequence

import yaml
from jinja2 import Environment, FileSystemLoader
from rich.console import Console
from rich.panel import Panel

from .engine import (
    DockerEngine,
    buildx_build_command,
    classic_build_command,
    compose_base,
    compose_run_command,
    docker_build_command,
    docker_exec_command,
    docker_run_command,
    effective_platforms,
)
from .errors import WorkspaceError
from .models import (
    BuildSettings,
    ComposeSettings,
    LocalBuildSettings,
    RunMode,
    RunSettings,
)
from .tags import compute_tags, current_branch, resolve_version

# Rich Console for beautiful output
console = Console()


def info(message: str) -> None:
    console.print(f"[bold blue]\\[info][/bold blue] {message}", soft_wrap=True)


def warn(message: str) -> None:
    console.print(f"[yellow]Warning: {message}[/yellow]", soft_wrap=True)


# ============================================================================
# Core Workspace Manager
# ============================================================================


class WorkspaceManager:
    """Manages workspace container operations"""

    def __init__(
        self,
        engine: Optional[DockerEngine] = None,
        cwd: Optional[Path] = None,
        tty: Optional[bool] = None,
    ):
        self.engine = engine or DockerEngine()
        self.cwd = cwd or Path.cwd()
        self.tty = sys.stdout.isatty() if tty is None else tty
        self.templates_dir = Path(__file__).parent / "templates"
        self.template_path = self.templates_dir / "compose.yaml.jinja2"

    def _path(self, path: Path) -> Path:
        return path if path.is_absolute() else self.cwd / path

    # ------------------------------------------------------------------------
    # docker run
    # ------------------------------------------------------------------------

    def start_container(
        self,
        settings: RunSettings,
        mode: RunMode,
        command: Sequence[str] = (),
        run_args: Sequence[str] = (),
        build: bool = False,
        clean: bool = False,
        pull: bool = False,
    ) -> int:
        """Start (or attach to) the workspace container with `docker run`"""
        image = settings.image_ref
        name = settings.effective_container_name

        if clean:
            self.engine.remove_container(name)
            if self.engine.image_exists(image):
                self.engine.delegate(["docker", "rmi", image])
            return 0

        if build:
            dockerfile_dir = self._path(settings.effective_dockerfile_dir)
            if (dockerfile_dir / "Dockerfile").is_file():
                code = self.engine.delegate(docker_build_command(image, dockerfile_dir))
                if code != 0:
                    return code
            else:
                warn(f"Dockerfile not found in '{dockerfile_dir}'. Skipping build.")

        if mode == RunMode.ATTACH:
            if not self.engine.container_running(name):
                raise WorkspaceError(
                    f"Container '{name}' is not running. Start it with --daemon first."
                )
            return self.engine.delegate(
                docker_exec_command(name, settings.container_shell, self.tty)
            )

        if pull or not self.engine.image_exists(image):
            info(f"Pulling image: {image}")
            if self.engine.delegate(["docker", "pull", image]) != 0:
                raise WorkspaceError(f"failed to pull '{image}'.")

        if not self.engine.image_exists(image):
            raise WorkspaceError(f"image '{image}' not available locally. Try '--pull'.")

        # Not atomic: a concurrent start with the same name may race here
        self.engine.remove_container(name)

        return self.engine.delegate(
            docker_run_command(settings, mode, command, run_args, self.cwd, self.tty)
        )

    # ------------------------------------------------------------------------
    # docker compose
    # ------------------------------------------------------------------------

    def find_compose_file(self, settings: ComposeSettings) -> Optional[Path]:
        """Explicit compose file, if any; discovery is left to compose"""
        if settings.compose_path is None:
            return None
        path = self._path(settings.compose_path)
        if not path.is_file():
            raise WorkspaceError(f"{path} not found")
        return path

    def check_compose_service(self, base: Sequence[str], service: str) -> None:
        """Make sure the service is defined in the merged compose project"""
        result = self.engine.capture([*base, "config"])
        if result.returncode != 0:
            detail = (result.stderr or "").strip()
            raise WorkspaceError(f"docker compose config failed. {detail}".rstrip())

        try:
            data = yaml.safe_load(result.stdout) or {}
        except yaml.YAMLError as e:
            raise WorkspaceError(f"Could not parse compose configuration: {e}")

        services = data.get("services") if isinstance(data, dict) else None
        if not isinstance(services, dict) or service not in services:
            raise WorkspaceError(
                f"Service '{service}' is not defined in the compose project"
            )

    def start_compose(
        self,
        settings: ComposeSettings,
        mode: RunMode,
        command: Sequence[str] = (),
        run_args: Sequence[str] = (),
        build: bool = False,
        clean: bool = False,
        prune: bool = False,
    ) -> int:
        """Run the workspace service through `docker compose`"""
        # Make UID/GID available to the compose file
        self.engine.env.update(
            HOST_UID=str(settings.host_uid), HOST_GID=str(settings.host_gid)
        )

        base = compose_base(self.find_compose_file(settings))
        service = settings.service

        if prune:
            return self.engine.delegate(
                [*base, "down", "--rmi", "local", "--volumes", "--remove-orphans"]
            )
        if clean:
            return self.engine.delegate([*base, "down", "--remove-orphans"])

        self.check_compose_service(base, service)

        if build:
            code = self.engine.delegate([*base, "build"])
            if code != 0:
                return code

        ps = self.engine.capture([*base, "ps", "-q", service])
        app_id = ps.stdout.strip() if ps.returncode == 0 else ""

        if mode == RunMode.ATTACH:
            if not app_id:
                raise WorkspaceError(
                    f"Service '{service}' is not running. Start it with --daemon first."
                )
            return self.engine.delegate(
                [*base, "exec", service, settings.container_shell]
            )

        if mode == RunMode.DAEMON:
            if app_id:
                console.print(
                    f"Service '{service}' already running (container: {app_id})."
                )
                return 0
            return self.engine.delegate([*base, "up", "-d", service])

        return self.engine.delegate(
            compose_run_command(
                base, service, settings.container_shell, command, run_args, self.tty
            )
        )

    def render_template(self, settings: ComposeSettings) -> str:
        """Render Jinja2 compose template with settings"""
        if not (self.templates_dir.exists() and self.templates_dir.is_dir()):
            raise WorkspaceError(f"templates directory not found: {self.templates_dir}")
        env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        template = env.get_template(self.template_path.name)
        return template.render(
            service=settings.service,
            image=settings.image_ref,
            variant=settings.variant,
            workspace_dir=settings.workspace_dir,
            shell=settings.container_shell,
        )

    def generate_compose_file(
        self, settings: ComposeSettings, output: Path, force: bool = False
    ) -> Path:
        """Generate a compose file for the workspace service"""
        output = self._path(output)
        if output.exists() and not force:
            raise WorkspaceError(f"{output} already exists. Use --force to overwrite.")

        rendered = self.render_template(settings)
        output.parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w", encoding="utf-8") as f:
            f.write(rendered)

        console.print(
            Panel(
                f"[green]✓[/green] {output.name} generated successfully\n\n"
                f"Service: {settings.service}\n"
                f"Image: {settings.image_ref}",
                title="[bold green]Success[/bold green]",
                border_style="green",
            )
        )
        return output

    # ------------------------------------------------------------------------
    # Image builds
    # ------------------------------------------------------------------------

    def _read_secret_script(self, script: Path) -> Optional[str]:
        script = script.expanduser()
        if not (script.is_file() and os.access(script, os.X_OK)):
            return None
        result = subprocess.run([str(script)], capture_output=True, text=True)
        if result.returncode != 0:
            raise WorkspaceError(f"{script} exited with code {result.returncode}")
        return result.stdout.strip() or None

    def login(self, settings: BuildSettings) -> None:
        """Non-interactive docker login with env or helper-script credentials"""
        username = settings.dockerhub_username
        if not username:
            username = self._read_secret_script(settings.docker_user_script)
        token = (
            settings.dockerhub_token.get_secret_value()
            if settings.dockerhub_token
            else None
        )
        if not token:
            token = self._read_secret_script(settings.docker_pat_script)

        if not username:
            raise WorkspaceError(
                f"Set DOCKERHUB_USERNAME or provide {settings.docker_user_script}"
            )
        if not token:
            raise WorkspaceError(
                f"Set DOCKERHUB_TOKEN or provide {settings.docker_pat_script}"
            )

        info(f"Logging in to Docker Hub as {username}")
        code = self.engine.delegate(
            ["docker", "login", "-u", username, "--password-stdin"], input=token
        )
        if code != 0:
            raise WorkspaceError("docker login failed", exit_code=code)

    def setup_buildx(self, builder_name: str) -> None:
        if not self.engine.succeeds(
            ["docker", "buildx", "create", "--use", "--name", builder_name]
        ):
            code = self.engine.delegate(["docker", "buildx", "use", builder_name])
            if code != 0:
                raise WorkspaceError(
                    f"Failed to set up buildx builder '{builder_name}'", exit_code=code
                )
        if not self.engine.succeeds(["docker", "buildx", "inspect", "--bootstrap"]):
            raise WorkspaceError(f"Failed to bootstrap buildx builder '{builder_name}'")

    def build_variant(
        self, settings: BuildSettings, build_args: Sequence[str] = ()
    ) -> int:
        """Build and (optionally) push a variant image"""
        version = resolve_version(
            settings.version_tag, self._path(settings.version_file)
        )

        if settings.login:
            self.login(settings)

        tags = compute_tags(settings, version, current_branch(self.cwd))
        context_dir = self._path(settings.effective_context_dir)
        dockerfile = self._path(settings.effective_dockerfile)

        info(f"Image:      {settings.image_name}")
        info(f"Variant:    {settings.variant}")
        info(f"Version:    {version}")
        info(f"Context:    {context_dir}")
        info(f"Dockerfile: {dockerfile}")
        info(f"Platforms:  {settings.platforms}")
        info(f"Tags:       {' '.join(tags)}")

        if not context_dir.is_dir():
            raise WorkspaceError(f"Context dir not found: {context_dir}")
        if not dockerfile.is_file():
            raise WorkspaceError(f"Dockerfile not found: {dockerfile}")

        if settings.use_buildx:
            info(f"Setting up buildx (multi-arch: {settings.platforms})")
            self.setup_buildx(settings.builder_name)

            host_platform = self.engine.host_platform()
            platforms = effective_platforms(
                settings.platforms, settings.push, host_platform
            )
            if not settings.push:
                info(
                    f"Build-only mode: restricting platforms to {platforms} "
                    "(--load can't import manifest lists)"
                )

            info("Building with buildx")
            code = self.engine.delegate(
                buildx_build_command(
                    dockerfile,
                    context_dir,
                    tags,
                    platforms,
                    settings.push,
                    build_args,
                )
            )
            if code != 0:
                return code
        else:
            info("Building with classic docker build")
            code = self.engine.delegate(
                classic_build_command(dockerfile, context_dir, tags, build_args)
            )
            if code != 0:
                return code
            if settings.push:
                for tag in tags:
                    info(f"Pushing {tag}")
                    code = self.engine.delegate(["docker", "push", tag])
                    if code != 0:
                        return code

        info("Done.")
        return 0

    def build_local(
        self, settings: LocalBuildSettings, no_cache: bool = False, pull: bool = False
    ) -> int:
        """Build the local single-platform image only; no containers are run"""
        dockerfile_dir = self._path(settings.dockerfile_dir)
        if not (dockerfile_dir / "Dockerfile").is_file():
            raise WorkspaceError(f"no Dockerfile found in {dockerfile_dir}")

        extra_args = []
        if no_cache:
            extra_args.append("--no-cache")
        if pull:
            extra_args.append("--pull")

        info(f"Building local image: {settings.image_name}")
        code = self.engine.delegate(
            docker_build_command(settings.image_name, dockerfile_dir, extra_args)
        )
        if code == 0:
            info(f"Build complete: {settings.image_name}")
        return code
