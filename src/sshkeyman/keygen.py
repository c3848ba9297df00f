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
"""KeyGenerationClient class and creation form helpers"""

import os
import logging
import subprocess
from pathlib import Path
from typing import List

from .exceptions import GenerationFailed, PassphraseMismatch
from .ssh_utility import Runner, run_command, diagnostics, format_command
from .types import CreateParams, StrPath, PUBLIC_SUFFIX

__all__ = ["KeyGenerationClient", "KEY_TYPES", "KEY_BITS", "validate_params", "default_key_name"]

KEY_TYPES = ("rsa", "dsa", "ecdsa", "ed25519")
KEY_BITS = (1024, 2048, 4096)

DEFAULT_TYPE = "rsa"
DEFAULT_BITS = 2048

# Index of the -N argument value in the ssh-keygen argument list
PASSPHRASE_POSITION = 8


def empty_form() -> CreateParams:
    """Returns the initial state of the creation form."""
    return {"name": "", "type": DEFAULT_TYPE, "bits": DEFAULT_BITS,
            "passphrase": "", "confirm_passphrase": "", "comment": ""}

def validate_params(params: CreateParams) -> None:
    """Checks the form before anything is run. The passphrase check always
    comes first and is never skipped."""

    if params.get("passphrase", "") != params.get("confirm_passphrase", ""):
        raise PassphraseMismatch()

    if params.get("type") not in KEY_TYPES:
        raise ValueError(f"Unsupported key type {params.get('type')!r}, expected one of {', '.join(KEY_TYPES)}")

    try:
        bits = int(params.get("bits", 0))
    except (TypeError, ValueError):
        bits = None
    if bits not in KEY_BITS:
        raise ValueError(f"Unsupported key size {params.get('bits')!r}, expected one of {', '.join(map(str, KEY_BITS))}")

    name = (params.get("name") or "").strip()
    if name and (os.sep in name or name in (".", "..") or name.endswith(PUBLIC_SUFFIX)):
        raise ValueError(f"Invalid key name {name!r}")

def default_key_name(key_type: str, timestamp: float) -> str:
    """Name used when the form's name is blank. Two unnamed keys of the same
    type created within the same second get the same name."""
    return f"id_{key_type}_{int(timestamp)}"


class KeyGenerationClient():
    """Creates key pairs on disk with ssh-keygen."""

    def __init__(self, ssh_keygen="ssh-keygen", runner: Runner = run_command):
        self.ssh_keygen = ssh_keygen
        self.runner = runner

    def arguments(self, key_path: StrPath, key_type: str, bits: int, passphrase: str, comment: str) -> List[str]:
        """The ssh-keygen argument list, passphrase included."""
        return [self.ssh_keygen, "-t", key_type, "-b", str(bits), "-f", str(key_path),
                "-N", passphrase, "-C", comment]

    def command_line(self, key_path: StrPath, key_type: str, bits: int, comment: str) -> str:
        """The command as it appears in the command log, passphrase redacted."""
        return format_command(self.arguments(key_path, key_type, bits, "", comment), secrets=[PASSPHRASE_POSITION])

    def generate(self, key_path: StrPath, key_type: str, bits: int, passphrase: str, comment: str) -> None:
        """Writes key_path and key_path.pub. Raises GenerationFailed with the
        tool's diagnostics. Refuses to overwrite an existing key."""

        key_path = Path(key_path)
        public_path = Path(f"{key_path}{PUBLIC_SUFFIX}")

        for path in (key_path, public_path):
            if os.path.lexists(path):
                raise GenerationFailed(f"{path} already exists")

        try:
            os.makedirs(key_path.parent, mode=0o700, exist_ok=True)
        except OSError as e:
            raise GenerationFailed(f"Unable to create {key_path.parent}: {e}") from e

        # stdin is closed so ssh-keygen can never stop at an interactive prompt
        try:
            process = self.runner(self.arguments(key_path, key_type, bits, passphrase, comment),
                                  stdin=subprocess.DEVNULL)
        except OSError as e:
            raise GenerationFailed(f"Failed to run {self.ssh_keygen}: {e}") from e

        if process.returncode != 0:
            raise GenerationFailed(diagnostics(process))

        logging.debug("Generated %s key at %s", key_type, key_path)
