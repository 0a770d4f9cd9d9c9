# Copyright (c) 2026 plumiume
# SPDX-License-Identifier: MIT
# License: MIT License (https://opensource.org/licenses/MIT)
# See LICENSE.txt for details.

import subprocess
from typing import Any, Optional, Sequence

import pytest

# Every environment variable the settings models read
SETTINGS_ENV = [
    "HOST_UID",
    "HOST_GID",
    "IMAGE_NAME",
    "VARIANT",
    "VERSION_TAG",
    "VERSION_FILE",
    "CONTAINER_NAME",
    "CONTAINER_SHELL",
    "WORKSPACE_DIR",
    "DOCKERFILE_DIR",
    "CONTEXT_DIR",
    "DOCKERFILE",
    "PUSH",
    "USE_BUILDX",
    "BUILDER_NAME",
    "PLATFORMS",
    "LOGIN",
    "DOCKERHUB_USERNAME",
    "DOCKERHUB_TOKEN",
    "DOCKER_USER_SCRIPT",
    "DOCKER_PAT_SCRIPT",
    "LATEST_ON_DEFAULT",
    "DEFAULT_BRANCH",
    "EMIT_PLAIN_TAGS",
    "PLAIN_INCLUDE_LATEST",
    "PLAIN_INCLUDE_CASCADE",
    "SERVICE",
    "COMPOSE_PATH",
]


class FakeDocker:
    """Records subprocess.run calls and answers them by argv prefix."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.inputs: list[Any] = []
        self._responses: list[list[Any]] = []

    def respond(
        self,
        prefix: Sequence[str],
        returncode: int = 0,
        stdout: str = "",
        times: Optional[int] = None,
    ):
        # Later registrations win over earlier ones
        self._responses.insert(0, [tuple(prefix), returncode, stdout, times])

    def __call__(self, args, **kwargs):
        args = list(args)
        self.calls.append(args)
        self.inputs.append(kwargs.get("input"))
        for response in self._responses:
            prefix, returncode, stdout, times = response
            if times == 0 or tuple(args[: len(prefix)]) != prefix:
                continue
            if times is not None:
                response[3] = times - 1
            return subprocess.CompletedProcess(args, returncode, stdout, "")
        return subprocess.CompletedProcess(args, 0, "", "")

    def find(self, *prefix: str) -> list[list[str]]:
        return [call for call in self.calls if tuple(call[: len(prefix)]) == prefix]

    @property
    def engine_calls(self) -> list[list[str]]:
        return [call for call in self.calls if call and call[0] == "docker"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def docker(monkeypatch: pytest.MonkeyPatch, tmp_path) -> FakeDocker:
    fake = FakeDocker()
    monkeypatch.setattr(subprocess, "run", fake)
    monkeypatch.chdir(tmp_path)
    return fake
