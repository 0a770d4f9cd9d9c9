#!/usr/bin/env python3
# -*- coding: utf-8 -*-
#
# Copyright (c) 2026 plumiume
# SPDX-License-Identifier: MIT
# License: MIT License (https://opensource.org/licenses/MIT)
# See LICENSE.txt for details.

"""
Workspace CLI for building, running and publishing the workspace container.

This is the checkout entry point that delegates to workspace_src/.
"""

from workspace_src.commands import main

if __name__ == "__main__":
    main()
