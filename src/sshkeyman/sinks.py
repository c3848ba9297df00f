#!/usr/bin/env python3
# Copyright 2023 Cisco Systems, Inc. and its affiliates
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0
"""Trash and clipboard sinks"""

import os
import logging

import pyperclip
from send2trash import send2trash

from .exceptions import ClipboardError
from .types import StrPath

__all__ = ["move_to_trash", "copy_to_clipboard"]


def move_to_trash(path: StrPath) -> None:
    """Moves path to the desktop trash so it can be recovered. Raises
    OSError (FileNotFoundError if path doesn't exist)."""

    path = os.fspath(path)
    if not os.path.lexists(path):
        raise FileNotFoundError(path)
    send2trash(path)
    logging.debug("Moved %s to trash", path)

def copy_to_clipboard(text: str) -> None:
    """Places text on the system clipboard. Raises ClipboardError."""

    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as e:
        raise ClipboardError(str(e)) from e
