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
"""InventoryController: applies user intents to the key inventory, the agent
and the filesystem, and records every attempted command in the command log.

The controller is the only owner of the KeyStore, the selection and the input
mode. Everything else sees immutable Snapshot objects, either returned from
dispatch() or pushed to subscribers after each intent."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, NamedTuple, Optional, Tuple, Union

from .agent import KeyAgentClient
from .exceptions import (AgentError, ClipboardError, FingerprintError, GenerationFailed,
                         InventoryIOError, PassphraseMismatch)
from .keygen import KeyGenerationClient, default_key_name, empty_form, validate_params
from .keystore import KeyStore
from .sinks import copy_to_clipboard, move_to_trash
from .types import CreateParams, KeyEntry, StrPath

__all__ = ["InventoryController", "Snapshot", "Mode", "Browsing", "ConfirmingDelete",
           "CreatingKey", "ShowingBindings", "SelectNext", "SelectPrevious", "Select",
           "ToggleBindings", "OpenCreateForm", "SubmitCreate", "BeginDelete", "Confirm",
           "Cancel", "AddToAgent", "RemoveFromAgent", "CopyPublicKey", "Refresh"]


# Input modes. Exactly one is active at a time.

@dataclass(frozen=True)
class Browsing:
    """Moving through the inventory."""

@dataclass(frozen=True)
class ConfirmingDelete:
    """Waiting for the user to confirm deleting the entry at index."""
    index: int

@dataclass(frozen=True)
class CreatingKey:
    """The creation form is open with the values entered so far."""
    form: CreateParams = field(default_factory=empty_form)

@dataclass(frozen=True)
class ShowingBindings:
    """The key bindings are shown."""

Mode = Union[Browsing, ConfirmingDelete, CreatingKey, ShowingBindings]


# Intents

@dataclass(frozen=True)
class SelectNext:
    """Move the selection down."""

@dataclass(frozen=True)
class SelectPrevious:
    """Move the selection up."""

@dataclass(frozen=True)
class Select:
    """Select the entry at index."""
    index: int

@dataclass(frozen=True)
class ToggleBindings:
    """Show or hide the key bindings."""

@dataclass(frozen=True)
class OpenCreateForm:
    """Open the key creation form."""

@dataclass(frozen=True)
class SubmitCreate:
    """Submit the creation form."""
    params: CreateParams

@dataclass(frozen=True)
class BeginDelete:
    """Ask to delete the selected entry."""

@dataclass(frozen=True)
class Confirm:
    """Accept the pending delete."""

@dataclass(frozen=True)
class Cancel:
    """Leave the current popup."""

@dataclass(frozen=True)
class AddToAgent:
    """Load the selected pair into the agent."""

@dataclass(frozen=True)
class RemoveFromAgent:
    """Remove the selected pair from the agent."""

@dataclass(frozen=True)
class CopyPublicKey:
    """Copy the selected public key to the clipboard."""

@dataclass(frozen=True)
class Refresh:
    """Rescan the key directory."""

NAVIGATION = (SelectNext, SelectPrevious, Select)
ACTIONS = (OpenCreateForm, BeginDelete, AddToAgent, RemoveFromAgent, CopyPublicKey)


class Snapshot(NamedTuple):
    """Read-only view of the controller state for renderers."""
    entries: Tuple[KeyEntry, ...]
    selected: Optional[int]
    mode: Mode
    log: Tuple[str, ...]

    @property
    def selected_entry(self) -> Optional[KeyEntry]:
        """The selected entry, if any."""
        if self.selected is None:
            return None
        return self.entries[self.selected]


class InventoryController():
    """Processes one intent at a time, to completion, in arrival order."""

    def __init__(self, store: KeyStore, agent: KeyAgentClient, keygen: KeyGenerationClient,
                 trash: Callable[[StrPath], None] = move_to_trash,
                 clipboard: Callable[[str], None] = copy_to_clipboard,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.agent = agent
        self.keygen = keygen
        self.trash = trash
        self.clipboard = clipboard
        self.clock = clock

        self.mode: Mode = Browsing()
        self.selected: Optional[int] = None
        self._log: List[str] = []
        self._subscribers: List[Callable[[Snapshot], None]] = []

    @property
    def log(self) -> Tuple[str, ...]:
        """Every line recorded so far."""
        return tuple(self._log)

    def record(self, line: str) -> None:
        """Appends a line to the command log."""
        self._log.append(line)
        logging.info("%s", line)

    def subscribe(self, callback: Callable[[Snapshot], None]) -> None:
        """Calls callback with a snapshot after every intent."""
        self._subscribers.append(callback)

    def snapshot(self) -> Snapshot:
        """Returns the current state."""
        return Snapshot(self.store.entries, self.selected, self.mode, self.log)

    def start(self) -> Snapshot:
        """Builds the initial inventory."""
        self.refresh()
        self.selected = 0 if len(self.store) else None
        return self.snapshot()

    def refresh(self) -> bool:
        """Rescans the key directory. The previous inventory is kept if the
        directory can't be read."""

        try:
            self.store.scan()
        except InventoryIOError as e:
            self.record(f"Failed to read SSH files: {e}")
            return False

        self._clamp_selection(self.selected or 0)
        return True

    def dispatch(self, intent) -> Snapshot:
        """Applies a single intent according to the active mode and notifies
        subscribers."""

        if isinstance(intent, Refresh):
            self.refresh()
        elif isinstance(self.mode, ConfirmingDelete):
            self._on_confirming_delete(intent)
        elif isinstance(self.mode, CreatingKey):
            self._on_creating_key(intent)
        elif isinstance(self.mode, ShowingBindings):
            self._on_showing_bindings(intent)
        else:
            self._on_browsing(intent)

        snapshot = self.snapshot()
        for callback in self._subscribers:
            callback(snapshot)
        return snapshot

    def _on_browsing(self, intent) -> None:
        if isinstance(intent, SelectNext):
            if self.selected is not None and self.selected < len(self.store) - 1:
                self.selected += 1
        elif isinstance(intent, SelectPrevious):
            if self.selected:
                self.selected -= 1
        elif isinstance(intent, Select):
            if 0 <= intent.index < len(self.store):
                self.selected = intent.index
        elif isinstance(intent, ToggleBindings):
            self.mode = ShowingBindings()
        elif isinstance(intent, OpenCreateForm):
            self.mode = CreatingKey()
        elif isinstance(intent, BeginDelete):
            if self.selected is not None:
                self.mode = ConfirmingDelete(self.selected)
        elif self.selected is None:
            return
        elif isinstance(intent, AddToAgent):
            self.request_add_to_agent(self.selected)
        elif isinstance(intent, RemoveFromAgent):
            self.request_remove_from_agent(self.selected)
        elif isinstance(intent, CopyPublicKey):
            self.request_copy_public_key(self.selected)

    def _on_showing_bindings(self, intent) -> None:
        if isinstance(intent, (ToggleBindings, Cancel)):
            self.mode = Browsing()
        elif isinstance(intent, ACTIONS):
            self.mode = Browsing()
            self._on_browsing(intent)

    def _on_confirming_delete(self, intent) -> None:
        if isinstance(intent, Confirm):
            self.request_delete(self.mode.index)
            self.mode = Browsing()
        elif isinstance(intent, Cancel):
            self.mode = Browsing()

    def _on_creating_key(self, intent) -> None:
        if isinstance(intent, SubmitCreate):
            self.request_create(intent.params)
        elif isinstance(intent, Cancel):
            self.mode = Browsing()

    def _entry_at(self, index: Optional[int]) -> Optional[KeyEntry]:
        if index is None or not 0 <= index < len(self.store):
            self.record("No file selected")
            return None
        return self.store[index]

    def _clamp_selection(self, index: int) -> None:
        if len(self.store) == 0:
            self.selected = None
        else:
            self.selected = max(0, min(index, len(self.store) - 1))

    def request_create(self, params: CreateParams) -> bool:
        """Generates a new key pair. On failure the form stays open with the
        submitted values so the user can retry."""

        form: CreateParams = {**empty_form(), **params}
        self.mode = CreatingKey(form)

        try:
            validate_params(form)
        except (PassphraseMismatch, ValueError) as e:
            self.record(f"Failed to create SSH key: {e}")
            return False

        name = (form["name"] or "").strip() or default_key_name(form["type"], self.clock())
        key_path = self.store.directory / name
        command = self.keygen.command_line(key_path, form["type"], int(form["bits"]), form["comment"])

        try:
            self.keygen.generate(key_path, form["type"], int(form["bits"]), form["passphrase"], form["comment"])
        except GenerationFailed as e:
            self.record(f"{command} -> Failed to create SSH key: {e}")
            return False

        self.record(f"{command} -> SSH key created")

        if not self.refresh():
            self.store.insert_after_create(KeyEntry(name, True, True))

        self.selected = 0
        self.mode = Browsing()
        return True

    def request_delete(self, index: int) -> bool:
        """Moves the entry's key halves to the trash, falling back to its own
        file when none could be moved. Only valid while a delete is being
        confirmed."""

        if not isinstance(self.mode, ConfirmingDelete):
            self.record("Delete must be confirmed first")
            return False

        entry = self._entry_at(index)
        if entry is None:
            return False
        if entry.placeholder:
            self.record(f"Cannot delete: {entry.label}")
            return False

        removed = []
        for path in self.store.key_paths(entry):
            try:
                self.trash(path)
                removed.append(path)
            except OSError as e:
                logging.debug("Not moved to trash %s: %s", path, e)

        if not removed:
            path = self.store.literal_path(entry)
            try:
                self.trash(path)
                removed.append(path)
            except OSError as e:
                self.record(f"Move to trash: {path} -> Failed to move to trash: {e}")
                return False

        for path in removed:
            self.record(f"Move to trash: {path} -> SSH key moved to trash")

        self.store.remove(index)
        self._clamp_selection(index)
        return True

    def request_add_to_agent(self, index: int) -> bool:
        entry = self._entry_at(index)
        if entry is None:
            return False
        if not entry.is_pair:
            self.record(f"Cannot add: {entry.label} is not a private key file of an SSH pair")
            return False

        private_path = self.store.private_path(entry)
        command = self.agent.load_command(private_path)

        try:
            fingerprint = self.agent.fingerprint_of(self.store.public_path(entry))
        except FingerprintError as e:
            self.record(f"{command} -> Failed to add SSH key to agent: {e}")
            return False

        if self.agent.is_loaded(fingerprint):
            self.record(f"{command} -> SSH key is already added to agent")
            return True

        try:
            self.agent.load(private_path)
        except AgentError as e:
            self.record(f"{command} -> Failed to add SSH key to agent: {e}")
            return False

        self.record(f"{command} -> SSH key added to agent")
        return True

    def request_remove_from_agent(self, index: int) -> bool:
        entry = self._entry_at(index)
        if entry is None:
            return False
        if not entry.is_pair:
            self.record(f"Cannot remove: {entry.label} is not a private key file of an SSH pair")
            return False

        private_path = self.store.private_path(entry)
        command = self.agent.unload_command(private_path)

        try:
            fingerprint = self.agent.fingerprint_of(self.store.public_path(entry))
        except FingerprintError as e:
            self.record(f"{command} -> Failed to remove SSH key from agent: {e}")
            return False

        if not self.agent.is_loaded(fingerprint):
            self.record(f"{command} -> SSH key is not added to agent")
            return True

        try:
            self.agent.unload(private_path)
        except AgentError as e:
            self.record(f"{command} -> Failed to remove SSH key from agent: {e}")
            return False

        self.record(f"{command} -> SSH key removed from agent")
        return True

    def request_copy_public_key(self, index: int) -> bool:
        entry = self._entry_at(index)
        if entry is None:
            return False
        if not entry.is_pair:
            self.record(f"Cannot copy: {entry.label} is not a public key file of an SSH pair")
            return False

        path = self.store.public_path(entry)

        try:
            content = self.store.read_content(entry)
        except InventoryIOError as e:
            self.record(f"Failed to copy SSH public key: {e}")
            return False

        try:
            self.clipboard(content)
        except ClipboardError as e:
            self.record(f"Copy to clipboard: {path} -> Failed to copy SSH public key: {e}")
            return False

        self.record(f"Copy to clipboard: {path} -> SSH public key copied to clipboard")
        return True
