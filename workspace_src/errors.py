#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Errors raised by workspace workflows.
"""


class WorkspaceError(Exception):
    """A missing prerequisite (no Dockerfile, no version, no credentials...)"""

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code
