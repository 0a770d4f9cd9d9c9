#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# Copyright (c) 2026 plumiume
# SPDX-License-Identifier: MIT
# License: MIT License (https://opensource.org/licenses/MIT)
# See LICENSE.txt for details.

"""
Workspace container management package.
"""

from .commands import app, main
from .engine import DockerEngine
from .errors import WorkspaceError
from .manager import WorkspaceManager
from .models import (
    BuildSettings,
    ComposeSettings,
    LocalBuildSettings,
    RunMode,
    RunSettings,
    resolve_run_mode,
)
from .tags import compute_tags, resolve_version

__all__ = [
    # Commands
    "app",
    "main",
    # Manager
    "WorkspaceManager",
    "DockerEngine",
    "WorkspaceError",
    # Models
    "RunSettings",
    "ComposeSettings",
    "BuildSettings",
    "LocalBuildSettings",
    "RunMode",
    "resolve_run_mode",
    # Tags
    "compute_tags",
    "resolve_version",
]
