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
"""Exceptions raised by the inventory, agent and generation layers. The
controller catches all of them and turns them into command log lines."""

__all__ = ["KeyManagerError", "InventoryIOError", "AgentUnavailableError",
           "AgentError", "FingerprintError", "PassphraseMismatch",
           "GenerationFailed", "ClipboardError"]


class KeyManagerError(Exception):
    """Base class for sshkeyman errors."""


class InventoryIOError(KeyManagerError, OSError):
    """The key directory or a key file could not be accessed."""


class AgentUnavailableError(KeyManagerError):
    """The agent could not be queried (no socket, missing ssh-add, ...)."""


class AgentError(KeyManagerError):
    """The agent rejected a load or unload command."""


class FingerprintError(KeyManagerError):
    """A fingerprint could not be computed for a key file."""


class PassphraseMismatch(KeyManagerError, ValueError):
    """The passphrase and its confirmation differ."""

    def __init__(self, message="Passphrases do not match"):
        super().__init__(message)


class GenerationFailed(KeyManagerError):
    """ssh-keygen reported a failure. The message holds its diagnostics."""


class ClipboardError(KeyManagerError):
    """The clipboard could not be written."""
