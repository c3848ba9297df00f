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
"""Agent status of the selected key"""

import enum
from typing import NamedTuple, Optional

from .agent import KeyAgentClient
from .exceptions import FingerprintError
from .keystore import KeyStore
from .types import KeyEntry

__all__ = ["AgentStatus", "StatusReport", "AgentStatusResolver", "describe"]


class AgentStatus(enum.Enum):
    """Agent status of the selected entry"""
    NOT_A_KEY = "not_a_key"
    LOADED = "loaded"
    NOT_LOADED = "not_loaded"
    ERROR = "error"


class StatusReport(NamedTuple):
    """A status and, for ERROR, the reason"""
    status: AgentStatus
    message: str = ""


def describe(report: Optional[StatusReport]) -> str:
    """Text shown in the agent status panel. None means nothing is selected."""

    if report is None:
        return "No file selected"
    if report.status is AgentStatus.LOADED:
        return "SSH key is added to agent"
    if report.status is AgentStatus.NOT_LOADED:
        return "SSH key is not added to agent"
    if report.status is AgentStatus.NOT_A_KEY:
        return "It's not a ssh key"
    return report.message


class AgentStatusResolver():
    """Answers whether an entry's public half is loaded in the agent. Read
    only and uncached: every call asks ssh-keygen and ssh-add again."""

    def __init__(self, store: KeyStore, agent: KeyAgentClient):
        self.store = store
        self.agent = agent

    def status(self, entry: Optional[KeyEntry]) -> Optional[StatusReport]:
        if entry is None:
            return None

        if not entry.has_public:
            return StatusReport(AgentStatus.NOT_A_KEY)

        public_path = self.store.public_path(entry)
        if not public_path.exists():
            return StatusReport(AgentStatus.NOT_A_KEY)

        try:
            fingerprint = self.agent.fingerprint_of(public_path)
        except FingerprintError as e:
            return StatusReport(AgentStatus.ERROR, str(e))

        if self.agent.is_loaded(fingerprint):
            return StatusReport(AgentStatus.LOADED, fingerprint)
        return StatusReport(AgentStatus.NOT_LOADED, fingerprint)
