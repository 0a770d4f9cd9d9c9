#!/usr/bin/env python3
# -*- coding: utf-8 -*-
#
# Copyright (c) 2026 plumiume
# SPDX-License-Identifier: MIT
# License: MIT License (https://opensource.org/licenses/MIT)
# See LICENSE.txt for details.

"""
Version and image tag resolution for variant builds.

Tags are always variant-scoped (``<repo>:<variant>-<version>``). Plain tags
(``<repo>:<version>``, ``<repo>:latest``, ``<repo>:X.Y``, ``<repo>:X``) are
opt-in and collide when several variants publish into the same repository.
"""

from __future__ import annotations

import re
import subprocess
from pathlib import Path
from typing import Optional

from .errors import WorkspaceError
from .models import BuildSettings

_CASCADE_RE = re.compile(r"(?P<major>[0-9]+)\.(?P<minor>[0-9]+)\.(?P<patch>[0-9]+)")
_WHITESPACE_RE = re.compile(r"[ \t\r\n]")


def resolve_version(explicit: Optional[str], version_file: Path) -> str:
    """Return the explicit version, else the contents of ``version_file``."""
    if explicit and explicit.strip():
        return explicit.strip()

    if not version_file.is_file():
        raise WorkspaceError(f"No --version provided and '{version_file}' not found.")

    version = _WHITESPACE_RE.sub("", version_file.read_text(encoding="utf-8"))
    if not version:
        raise WorkspaceError(f"Version file '{version_file}' is empty.")
    return version


def current_branch(cwd: Optional[Path] = None) -> str:
    """Current git branch, or an empty string when it can't be determined."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],
            capture_output=True,
            text=True,
            cwd=cwd,
        )
    except FileNotFoundError:
        return ""
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


def cascade_versions(version: str) -> list[str]:
    """``X.Y`` and ``X`` for a strict ``X.Y.Z`` version, nothing otherwise."""
    match = _CASCADE_RE.fullmatch(version)
    if match is None:
        return []
    major, minor = match.group("major"), match.group("minor")
    return [f"{major}.{minor}", major]


def is_default_branch(settings: BuildSettings, branch: str) -> bool:
    # Outside git counts as the default branch
    return branch == settings.default_branch or not branch


def compute_tags(settings: BuildSettings, version: str, branch: str) -> list[str]:
    """Ordered, de-duplicated ``repository:tag`` list; never empty."""
    repo = settings.image_name
    on_default = settings.latest_on_default and is_default_branch(settings, branch)

    tags = [f"{repo}:{settings.variant}-{version}"]
    if on_default:
        tags.append(f"{repo}:{settings.variant}-latest")

    if settings.emit_plain_tags:
        tags.append(f"{repo}:{version}")
        if settings.plain_include_latest and on_default:
            tags.append(f"{repo}:latest")
        if settings.plain_include_cascade:
            tags.extend(f"{repo}:{v}" for v in cascade_versions(version))

    return list(dict.fromkeys(tags))
