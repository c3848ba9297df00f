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
"""KeyStore class for sshkeyman"""

import os
import logging
from pathlib import Path
from typing import Iterable, List, Set, Tuple

from .exceptions import InventoryIOError
from .types import KeyEntry, StrPath, PUBLIC_SUFFIX

__all__ = ["KeyStore", "classify", "NO_KEYS_FOUND"]

NO_KEYS_FOUND = KeyEntry("No SSH files found", False, False, placeholder=True)

# Files OpenSSH keeps next to keys that are never key material
NON_KEY_FILES = frozenset({
    "authorized_keys",
    "authorized_keys2",
    "config",
    "environment",
    "known_hosts",
    "known_hosts.old",
    "rc",
})


def classify(names: Iterable[str], other: Iterable[str] = ()) -> Tuple[KeyEntry, ...]:
    """Partitions file names into pairs, private-only, public-only and other
    entries, in that order. Names in other are always treated as other."""

    private_names: Set[str] = set()
    public_names: Set[str] = set()
    other_names: Set[str] = set(other)

    for name in names:
        if name in other_names:
            continue
        if name.endswith(PUBLIC_SUFFIX):
            stripped = name[:-len(PUBLIC_SUFFIX)]
            # "x.pub.pub" and a bare ".pub" don't follow the convention
            if not stripped or stripped.endswith(PUBLIC_SUFFIX) or stripped in NON_KEY_FILES:
                other_names.add(name)
            else:
                public_names.add(stripped)
        elif name in NON_KEY_FILES:
            other_names.add(name)
        else:
            private_names.add(name)

    # A name can't be both a key base name and an "other" file
    other_names -= private_names | public_names

    entries: List[KeyEntry] = []
    entries.extend(KeyEntry(name, True, True) for name in sorted(private_names & public_names))
    entries.extend(KeyEntry(name, True, False) for name in sorted(private_names - public_names))
    entries.extend(KeyEntry(name, False, True) for name in sorted(public_names - private_names))
    entries.extend(KeyEntry(name, False, False) for name in sorted(other_names))

    return tuple(entries)


class KeyStore():
    """The inventory of a single key directory. Entries are only ever replaced
    wholesale; callers receive the tuple, never a mutable list."""

    def __init__(self, directory: StrPath):
        self.directory = Path(os.path.expanduser(directory))
        self._entries: Tuple[KeyEntry, ...] = ()

    @property
    def entries(self) -> Tuple[KeyEntry, ...]:
        """The current inventory."""
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> KeyEntry:
        return self._entries[index]

    def scan(self) -> Tuple[KeyEntry, ...]:
        """Rebuilds the inventory from the directory. A missing directory gives
        a single placeholder entry. Raises InventoryIOError if the directory
        exists but can't be read."""

        if not self.directory.exists():
            logging.info("Key directory %s does not exist", self.directory)
            self._entries = (NO_KEYS_FOUND,)
            return self._entries

        names: List[str] = []
        other: List[str] = []

        try:
            with os.scandir(self.directory) as directory_entries:
                for directory_entry in directory_entries:
                    try:
                        if directory_entry.is_file():
                            names.append(directory_entry.name)
                        else:
                            other.append(directory_entry.name)
                    # Unreadable entries are skipped
                    except OSError:
                        logging.debug("Skipping unreadable entry %s", directory_entry.name)
        except OSError as e:
            raise InventoryIOError(f"Unable to read {self.directory}: {e.strerror or e}") from e

        self._entries = classify(names, other)
        logging.debug("Scanned %d entries in %s", len(self._entries), self.directory)
        return self._entries

    def remove(self, index: int) -> KeyEntry:
        """Drops the entry at index after its files were removed."""

        removed = self._entries[index]
        self._entries = self._entries[:index] + self._entries[index + 1:]
        return removed

    def insert_after_create(self, entry: KeyEntry) -> int:
        """Adds a freshly created key without rescanning. Pairs go to the front
        of the inventory. Returns the new entry's index."""

        entries = [e for e in self._entries if e.base_name != entry.base_name and not e.placeholder]

        if entry.is_pair:
            index = 0
        else:
            index = sum(1 for e in entries if e.is_pair)

        entries.insert(index, entry)
        self._entries = tuple(entries)
        return index

    def private_path(self, entry: KeyEntry) -> Path:
        """Path of the private half, whether or not the entry has one."""
        return self.directory / entry.base_name

    def public_path(self, entry: KeyEntry) -> Path:
        """Path of the public half, whether or not the entry has one."""
        return self.directory / f"{entry.base_name}{PUBLIC_SUFFIX}"

    def literal_path(self, entry: KeyEntry) -> Path:
        """Path of the file the entry was built from."""
        return self.directory / entry.file_name

    def key_paths(self, entry: KeyEntry) -> List[Path]:
        """Paths of the key halves the entry was classified with. Empty for
        other files, whose neighbours may belong to other entries."""

        paths = []
        if entry.has_private:
            paths.append(self.private_path(entry))
        if entry.has_public:
            paths.append(self.public_path(entry))
        return paths

    def read_content(self, entry: KeyEntry) -> str:
        """Returns the text shown for an entry: the public half when there is
        one, the file itself otherwise."""

        path = self.public_path(entry) if entry.has_public else self.literal_path(entry)
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as inf:
                return inf.read()
        except OSError as e:
            raise InventoryIOError(f"Failed to read {path}: {e.strerror or e}") from e
