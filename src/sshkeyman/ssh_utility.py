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
"""Utility functions for running the OpenSSH tools"""

import os
import logging
import shlex
import subprocess
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from .types import StrPath

REDACTED = "[REDACTED]"

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


def run_command(args: Sequence[StrPath], stdin: Optional[int] = None) -> "subprocess.CompletedProcess[str]":
    """Runs a single external command to completion and captures its output.
    There is no timeout. Raises OSError if the executable can't be started."""

    args = [str(arg) for arg in args]
    logging.debug("Running %s", args[0])
    return subprocess.run(args, capture_output=True, text=True, check=False, stdin=stdin)

def format_command(args: Sequence[StrPath], secrets: Iterable[int] = ()) -> str:
    """Renders args as a shell-like command line for the command log. The
    arguments at the positions in secrets are replaced with [REDACTED]."""

    hidden = set(secrets)
    words: List[str] = []
    for position, arg in enumerate(args):
        if position in hidden:
            words.append(REDACTED)
        else:
            words.append(shlex.quote(str(arg)))
    return " ".join(words)

def parse_fingerprint(output: str) -> Optional[str]:
    """Returns the fingerprint field of a single line of `ssh-keygen -l` or
    `ssh-add -l` output, e.g. "256 SHA256:abc... comment (ED25519)"."""

    fields = output.split()
    if len(fields) < 2:
        return None
    return fields[1]

def normalize_line(line: str) -> str:
    """Collapses runs of whitespace so listings compare reliably."""
    return " ".join(line.split())

def diagnostics(process: "subprocess.CompletedProcess[str]") -> str:
    """Returns the most useful error text from a finished process."""

    text = (process.stderr or "").strip() or (process.stdout or "").strip()
    if not text:
        text = f"exit status {process.returncode}"
    return text

def resolve_key_directory(path: Optional[StrPath] = None) -> Path:
    """Returns the key directory, defaulting to ~/.ssh. Raises RuntimeError if
    the home directory can't be determined at all."""

    if path:
        return Path(os.path.expanduser(path))

    home = os.path.expanduser("~")
    if home == "~" or not home:
        raise RuntimeError("Unable to determine the home directory")
    return Path(home, ".ssh")

