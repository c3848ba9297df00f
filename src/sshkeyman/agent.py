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
"""KeyAgentClient class for sshkeyman"""

import logging
from typing import List, Set

from .exceptions import AgentError, AgentUnavailableError, FingerprintError
from .ssh_utility import Runner, run_command, parse_fingerprint, normalize_line, diagnostics, format_command
from .types import StrPath

__all__ = ["KeyAgentClient"]

# ssh-add -l exits 1 when the agent is reachable but holds no identities,
# and 2 when it can't connect to the agent at all.
NO_IDENTITIES = 1


class KeyAgentClient():
    """Queries and mutates the running ssh-agent through ssh-add, and computes
    fingerprints with ssh-keygen. Every method runs exactly one process."""

    def __init__(self, ssh_add="ssh-add", ssh_keygen="ssh-keygen", runner: Runner = run_command):
        self.ssh_add = ssh_add
        self.ssh_keygen = ssh_keygen
        self.runner = runner

    def fingerprint_of(self, public_key_path: StrPath) -> str:
        """Returns the fingerprint (e.g. SHA256:...) of the key at the path."""

        try:
            process = self.runner([self.ssh_keygen, "-lf", public_key_path])
        except OSError as e:
            raise FingerprintError(f"Failed to run {self.ssh_keygen}: {e}") from e

        if process.returncode != 0:
            logging.debug("ssh-keygen -lf %s failed: %s", public_key_path, diagnostics(process))
            raise FingerprintError("Failed to get SSH key fingerprint")

        fingerprint = parse_fingerprint(process.stdout)
        if not fingerprint:
            raise FingerprintError(f"Unexpected ssh-keygen output for {public_key_path}")

        return fingerprint

    def agent_listing(self) -> List[str]:
        """Returns the normalized lines of `ssh-add -l`."""

        try:
            process = self.runner([self.ssh_add, "-l"])
        except OSError as e:
            raise AgentUnavailableError(f"Failed to run {self.ssh_add}: {e}") from e

        if process.returncode == NO_IDENTITIES:
            return []
        if process.returncode != 0:
            raise AgentUnavailableError(diagnostics(process))

        return [normalize_line(line) for line in process.stdout.splitlines() if line.strip()]

    def list_loaded_fingerprints(self) -> Set[str]:
        """Returns the fingerprints of all keys currently held by the agent."""

        fingerprints = set()
        for line in self.agent_listing():
            fingerprint = parse_fingerprint(line)
            if fingerprint:
                fingerprints.add(fingerprint)
        return fingerprints

    def is_loaded(self, fingerprint: str) -> bool:
        """Returns True if a line of the agent listing carries the fingerprint.
        An unreachable agent holds nothing."""

        fingerprint = normalize_line(fingerprint)
        if not fingerprint:
            return False

        try:
            listing = self.agent_listing()
        except AgentUnavailableError as e:
            logging.info("Agent unavailable, treating key as not loaded: %s", e)
            return False

        return any(parse_fingerprint(line) == fingerprint or fingerprint in line for line in listing)

    def load_command(self, private_key_path: StrPath) -> str:
        """The add command as logged."""
        return format_command([self.ssh_add, private_key_path])

    def unload_command(self, private_key_path: StrPath) -> str:
        """The remove command as logged."""
        return format_command([self.ssh_add, "-d", private_key_path])

    def load(self, private_key_path: StrPath) -> None:
        """Adds the private key to the agent. Raises AgentError."""
        self._run_agent_command([self.ssh_add, private_key_path])

    def unload(self, private_key_path: StrPath) -> None:
        """Removes the key from the agent. Raises AgentError."""
        self._run_agent_command([self.ssh_add, "-d", private_key_path])

    def _run_agent_command(self, args) -> None:
        try:
            process = self.runner(args)
        except OSError as e:
            raise AgentError(f"Failed to run {args[0]}: {e}") from e

        if process.returncode != 0:
            raise AgentError(diagnostics(process))
