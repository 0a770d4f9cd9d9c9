#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
CLI commands for workspace containers.
"""

import os
import shlex
import sys
from pathlib import Path
from typing import Annotated, NoReturn, Optional, Type, TypeVar

import typer
from pydantic import ValidationError
from pydantic_settings import BaseSettings
from rich.console import Console
from rich.table import Table
from typer.core import TyperCommand

from .errors import WorkspaceError
from .manager import WorkspaceManager
from .models import (
    BuildSettings,
    ComposeSettings,
    LocalBuildSettings,
    RunSettings,
    resolve_run_mode,
)

console = Console()
err_console = Console(stderr=True)
app = typer.Typer(
    name="workspace",
    help="Build, run and publish the workspace development container",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)
compose_app = typer.Typer(help="Run the workspace through docker compose")
app.add_typer(compose_app, name="compose")

S = TypeVar("S", bound=BaseSettings)

CONTAINER_COMMAND = "container_command"


# ============================================================================
# Helpers
# ============================================================================


class SeparatorCommand(TyperCommand):
    """Command whose in-container command must follow a literal `--`"""

    allow_extra_args = True

    def parse_args(self, ctx: typer.Context, args: list[str]) -> list[str]:
        if "--" in args:
            index = args.index("--")
            args, ctx.meta[CONTAINER_COMMAND] = args[:index], args[index + 1 :]
        else:
            ctx.meta[CONTAINER_COMMAND] = []

        remaining = super().parse_args(ctx, args)
        if ctx.args:
            raise typer.BadParameter(
                f"unrecognized argument: '{ctx.args[0]}'.\n"
                "If you intended to run a command inside the container, use:\n"
                f"  {ctx.command_path} -- <command...>\n"
                "Or to run detached, use:\n"
                f"  {ctx.command_path} --daemon",
                ctx=ctx,
                param_hint="COMMAND",
            )
        return remaining


def fail(error: WorkspaceError) -> NoReturn:
    err_console.print(f"[red]Error: {error}[/red]", soft_wrap=True)
    raise typer.Exit(error.exit_code)


def load_settings(model: Type[S], **flags: object) -> S:
    """Build a settings record: defaults < environment < given flags"""
    given = {key: value for key, value in flags.items() if value is not None}
    try:
        return model(**given)
    except ValidationError as e:
        from_flags = False
        for error in e.errors():
            loc = error["loc"]
            field = ".".join(str(part) for part in loc)
            err_console.print(
                f"[red]Error: {field}: {error['msg']}[/red]", soft_wrap=True
            )
            if loc and loc[0] in given:
                from_flags = True
        raise typer.Exit(2 if from_flags else 1)


def split_run_args(run_args: Optional[str]) -> list[str]:
    return shlex.split(run_args) if run_args else []


# ============================================================================
# CLI Commands
# ============================================================================


@app.command(cls=SeparatorCommand)
def run(
    ctx: typer.Context,
    build: Annotated[
        bool, typer.Option("-b", "--build", help="Build image from local Dockerfile")
    ] = False,
    clean: Annotated[
        bool, typer.Option("-c", "--clean", help="Remove container and local image")
    ] = False,
    daemon: Annotated[
        bool, typer.Option("-d", "--daemon", help="Run container detached")
    ] = False,
    attach: Annotated[
        bool, typer.Option("--attach", help="Open a shell in the running container")
    ] = False,
    pull: Annotated[
        bool, typer.Option("--pull", help="Pull/refresh the image from registry")
    ] = False,
    image: Annotated[
        Optional[str], typer.Option("--image", help="Image repo/name")
    ] = None,
    variant: Annotated[
        Optional[str], typer.Option("--variant", help="Variant prefix")
    ] = None,
    version: Annotated[
        Optional[str],
        typer.Option("--version", "--tag", help="Version suffix (<variant>-<version>)"),
    ] = None,
    name: Annotated[
        Optional[str], typer.Option("--name", help="Container name")
    ] = None,
    dockerfile: Annotated[
        Optional[Path],
        typer.Option("--dockerfile", help="Directory containing the Dockerfile"),
    ] = None,
    run_args: Annotated[
        Optional[str],
        typer.Option("--run-args", help="Extra 'docker run' flags, e.g. '-p 8888:8888'"),
    ] = None,
):
    """Start the workspace container (commands MUST follow a literal --)"""
    command = ctx.meta.get(CONTAINER_COMMAND, [])
    mode = resolve_run_mode(daemon, attach, command)

    settings = load_settings(
        RunSettings,
        image_name=image,
        variant=variant,
        version_tag=version,
        container_name=name,
        dockerfile_dir=dockerfile,
    )

    manager = WorkspaceManager()
    try:
        code = manager.start_container(
            settings,
            mode,
            command=command,
            run_args=split_run_args(run_args),
            build=build,
            clean=clean,
            pull=pull,
        )
    except WorkspaceError as e:
        fail(e)
    sys.exit(code)


@compose_app.command("start", cls=SeparatorCommand)
def compose_start(
    ctx: typer.Context,
    build: Annotated[
        bool, typer.Option("-b", "--build", help="Build images before running")
    ] = False,
    clean: Annotated[
        bool, typer.Option("-c", "--clean", help="docker compose down --remove-orphans")
    ] = False,
    prune: Annotated[
        bool,
        typer.Option(
            "--prune",
            help="docker compose down --rmi local --volumes --remove-orphans",
        ),
    ] = False,
    daemon: Annotated[
        bool, typer.Option("-d", "--daemon", help="Bring service up in background")
    ] = False,
    attach: Annotated[
        bool, typer.Option("--attach", help="Exec a shell into the running service")
    ] = False,
    service: Annotated[
        Optional[str], typer.Option("--service", help="Compose service name")
    ] = None,
    file: Annotated[
        Optional[Path], typer.Option("-f", "--file", help="Compose file")
    ] = None,
    run_args: Annotated[
        Optional[str],
        typer.Option("--run-args", help="Extra 'docker compose run' flags"),
    ] = None,
):
    """Run the workspace service (one-off containers are removed on exit)"""
    command = ctx.meta.get(CONTAINER_COMMAND, [])
    mode = resolve_run_mode(daemon, attach, command)

    settings = load_settings(ComposeSettings, service=service, compose_path=file)

    manager = WorkspaceManager()
    try:
        code = manager.start_compose(
            settings,
            mode,
            command=command,
            run_args=split_run_args(run_args),
            build=build,
            clean=clean,
            prune=prune,
        )
    except WorkspaceError as e:
        fail(e)
    sys.exit(code)


@compose_app.command("generate")
def compose_generate(
    output: Annotated[
        Path, typer.Option("-o", "--output", help="Compose file to write")
    ] = Path("compose.yaml"),
    force: Annotated[
        bool, typer.Option("--force", help="Overwrite the file if it already exists")
    ] = False,
    service: Annotated[
        Optional[str], typer.Option("--service", help="Compose service name")
    ] = None,
    image: Annotated[
        Optional[str], typer.Option("--image", help="Image repo/name")
    ] = None,
    variant: Annotated[
        Optional[str], typer.Option("--variant", help="Variant prefix")
    ] = None,
    version: Annotated[
        Optional[str], typer.Option("--version", "--tag", help="Version suffix")
    ] = None,
):
    """Generate a compose file for the workspace service from template"""
    settings = load_settings(
        ComposeSettings,
        service=service,
        image_name=image,
        variant=variant,
        version_tag=version,
    )
    manager = WorkspaceManager()
    try:
        manager.generate_compose_file(settings, output, force=force)
    except WorkspaceError as e:
        fail(e)


@app.command()
def build(
    image: Annotated[
        Optional[str], typer.Option("--image", help="Docker Hub image")
    ] = None,
    variant: Annotated[
        Optional[str], typer.Option("--variant", help="Variant folder under ./docker")
    ] = None,
    version: Annotated[
        Optional[str],
        typer.Option("--version", "--tag", help="Version (default: version file)"),
    ] = None,
    version_file: Annotated[
        Optional[Path], typer.Option("--version-file", help="File to read version from")
    ] = None,
    context: Annotated[
        Optional[Path], typer.Option("--context", help="Build context")
    ] = None,
    file: Annotated[
        Optional[Path], typer.Option("--file", help="Dockerfile path")
    ] = None,
    push: Annotated[
        Optional[bool], typer.Option("--push/--no-push", help="Push after build")
    ] = None,
    buildx: Annotated[
        Optional[bool], typer.Option("--buildx/--no-buildx", help="Use buildx")
    ] = None,
    platforms: Annotated[
        Optional[str], typer.Option("--platforms", help="Platforms for buildx")
    ] = None,
    build_arg: Annotated[
        Optional[list[str]],
        typer.Option("--build-arg", help="KEY=VAL, repeatable"),
    ] = None,
    login: Annotated[
        Optional[bool],
        typer.Option(
            "--login/--no-login",
            help="docker login using DOCKERHUB_USERNAME/DOCKERHUB_TOKEN",
        ),
    ] = None,
    latest_on_default: Annotated[
        Optional[bool],
        typer.Option(
            "--latest-on-default/--no-latest-on-default",
            help="Tag '<variant>-latest' on the default branch",
        ),
    ] = None,
    default_branch: Annotated[
        Optional[str], typer.Option("--default-branch", help="Default branch name")
    ] = None,
    emit_plain_tags: Annotated[
        Optional[bool],
        typer.Option(
            "--emit-plain-tags/--no-emit-plain-tags",
            help="ALSO tag plain ':<version>' and ':latest'",
        ),
    ] = None,
    plain_include_latest: Annotated[
        Optional[bool],
        typer.Option(
            "--plain-include-latest/--no-plain-include-latest",
            help="Include plain ':latest' when emitting plain tags",
        ),
    ] = None,
    plain_include_cascade: Annotated[
        Optional[bool],
        typer.Option(
            "--plain-include-cascade/--no-plain-include-cascade",
            help="Include plain ':x.y' and ':x' when version is x.y.z",
        ),
    ] = None,
):
    """Build and (optionally) push a Docker image variant"""
    settings = load_settings(
        BuildSettings,
        image_name=image,
        variant=variant,
        version_tag=version,
        version_file=version_file,
        context_dir=context,
        dockerfile=file,
        push=push,
        use_buildx=buildx,
        platforms=platforms,
        login=login,
        latest_on_default=latest_on_default,
        default_branch=default_branch,
        emit_plain_tags=emit_plain_tags,
        plain_include_latest=plain_include_latest,
        plain_include_cascade=plain_include_cascade,
    )
    manager = WorkspaceManager()
    try:
        code = manager.build_variant(settings, build_args=build_arg or [])
    except WorkspaceError as e:
        fail(e)
    sys.exit(code)


@app.command()
def publish(
    push: Annotated[
        bool, typer.Option("--push", help="Build and push")
    ] = False,
    login: Annotated[
        bool,
        typer.Option("--login/--no-login", help="docker login before building"),
    ] = True,
):
    """Build the workspace variant with plain tags; push only with --push"""
    settings = load_settings(
        BuildSettings,
        variant="workspace",
        emit_plain_tags=True,
        push=push,
        login=login,
    )
    manager = WorkspaceManager()
    try:
        code = manager.build_variant(settings)
    except WorkspaceError as e:
        fail(e)
    sys.exit(code)


@app.command("build-local")
def build_local(
    image: Annotated[
        Optional[str], typer.Option("--image", help="Target image name")
    ] = None,
    dockerfile: Annotated[
        Optional[Path],
        typer.Option("--dockerfile", help="Directory containing the Dockerfile"),
    ] = None,
    no_cache: Annotated[
        bool, typer.Option("--no-cache", help="Build without using cache")
    ] = False,
    pull: Annotated[
        bool, typer.Option("--pull", help="Always attempt to pull a newer base image")
    ] = False,
):
    """Build the local Docker image and exit; no containers are run"""
    settings = load_settings(
        LocalBuildSettings, image_name=image, dockerfile_dir=dockerfile
    )
    manager = WorkspaceManager()
    try:
        code = manager.build_local(settings, no_cache=no_cache, pull=pull)
    except WorkspaceError as e:
        fail(e)
    sys.exit(code)


@app.command()
def config():
    """Show the resolved settings (defaults < environment)"""
    for title, model in (
        ("run", RunSettings),
        ("compose", ComposeSettings),
        ("build", BuildSettings),
    ):
        settings = load_settings(model)
        table = Table(
            title=f"{title} settings",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("Setting", style="cyan", no_wrap=True)
        table.add_column("Env", style="green")
        table.add_column("Value", style="yellow")
        table.add_column("Source", style="dim")

        for field, value in settings.model_dump().items():
            env_name = field.upper()
            source = "env" if env_name in os.environ else "default"
            table.add_row(field, env_name, "" if value is None else str(value), source)

        console.print()
        console.print(table)


def main():
    """Main entry point"""
    app()
