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
"""Inventories and manages the SSH keys in a key directory"""

import os
import sys
import argparse
import getpass
import logging
from typing import Optional

from sshkeyman.agent import KeyAgentClient
from sshkeyman.controller import (InventoryController, Snapshot, Browsing, ConfirmingDelete, CreatingKey,
                                  ShowingBindings, SelectNext, SelectPrevious, Select, ToggleBindings,
                                  OpenCreateForm, SubmitCreate, BeginDelete, Confirm, Cancel, AddToAgent,
                                  RemoveFromAgent, CopyPublicKey, Refresh)
from sshkeyman.events import EventHandler, Key, Tick, Closed
from sshkeyman.exceptions import InventoryIOError
from sshkeyman.keygen import KeyGenerationClient, KEY_TYPES, KEY_BITS, DEFAULT_TYPE, DEFAULT_BITS
from sshkeyman.keystore import KeyStore
from sshkeyman.ssh_utility import resolve_key_directory
from sshkeyman.status import AgentStatusResolver, describe

LOG_FORMAT = "%(asctime)s - %(levelname)s  - %(message)s"

# Number of command log lines shown by the interactive shell
LOG_LINES = 6

BINDINGS = [
    ("n", "Create a SSH key"),
    ("d", "Delete a SSH key"),
    ("a", "Add a SSH key to agent"),
    ("r", "Remove a SSH key from agent"),
    ("c", "Copy a SSH public key to clipboard"),
    ("j / k", "Select the next / previous file"),
    ("<number>", "Select a file by position"),
    ("q", "Quit the application"),
]


def build_parser() -> argparse.ArgumentParser:
    """Builds the command line parser."""
    parser = argparse.ArgumentParser(prog="sshkeyman", description="""Lists the SSH
    keys in a key directory, pairs private and public halves, shows whether
    they are loaded in ssh-agent, and creates, deletes, loads, unloads or
    copies them. Every external command run is logged.""")

    parser.add_argument("-d", "--directory", metavar="path",
                        default=os.environ.get("SSHKEYMAN_DIR", ""),
                        help="""Key directory to manage. Defaults to
                        $SSHKEYMAN_DIR, or ~/.ssh if that is unset.""")

    parser.add_argument("--ssh-add", metavar="path", default="ssh-add",
                        help="ssh-add executable used to talk to the agent.")

    parser.add_argument("--ssh-keygen", metavar="path", default="ssh-keygen",
                        help="ssh-keygen executable used for fingerprints and key generation.")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log debugging output.")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors.")

    subparsers = parser.add_subparsers(dest="command", metavar="command")

    subparsers.add_parser("list", help="List the key entries in the directory.")
    subparsers.add_parser("shell", help="Browse and manage keys interactively (default).")

    for name, help_text in (("show", "Print the public key (or file content) of an entry."),
                            ("status", "Report whether an entry is loaded in the agent."),
                            ("add", "Add a key pair to the agent."),
                            ("remove", "Remove a key pair from the agent."),
                            ("copy", "Copy a public key to the clipboard.")):
        subparser = subparsers.add_parser(name, help=help_text)
        subparser.add_argument("key", help="Entry name or 1-based position from `list`.")

    delete = subparsers.add_parser("delete", help="Move an entry's files to the trash.")
    delete.add_argument("key", help="Entry name or 1-based position from `list`.")
    delete.add_argument("--yes", action="store_true",
                        help="Confirm the deletion. Without it nothing is deleted.")

    create = subparsers.add_parser("create", help="Generate a new key pair.")
    create.add_argument("--name", default="",
                        help="""File name of the new private key. Defaults to
                        id_<type>_<unix timestamp>.""")
    create.add_argument("-t", "--type", dest="key_type", choices=KEY_TYPES, default=DEFAULT_TYPE)
    create.add_argument("-b", "--bits", type=int, choices=KEY_BITS, default=DEFAULT_BITS)
    create.add_argument("-C", "--comment", default="")
    create.add_argument("--no-passphrase", action="store_true",
                        help="Create the key without a passphrase instead of prompting for one.")

    return parser

def build_controller(args) -> InventoryController:
    """Wires the controller to the directory and tools named in args."""
    directory = resolve_key_directory(args.directory)
    return InventoryController(KeyStore(directory),
                               KeyAgentClient(ssh_add=args.ssh_add, ssh_keygen=args.ssh_keygen),
                               KeyGenerationClient(ssh_keygen=args.ssh_keygen))

def find_entry(snapshot: Snapshot, reference: str) -> Optional[int]:
    """Resolves an entry by base name, file name, label or 1-based position."""

    for index, entry in enumerate(snapshot.entries):
        if entry.placeholder:
            continue
        if reference in (entry.base_name, entry.file_name, entry.label):
            return index

    if reference.isdigit() and 1 <= int(reference) <= len(snapshot.entries):
        return int(reference) - 1

    return None

def prompt_create_params(name="", key_type=DEFAULT_TYPE, bits=DEFAULT_BITS, comment="", passphrase=True):
    """Builds the creation form, asking for the passphrase twice. The two
    values are compared by the controller."""

    params = {"name": name, "type": key_type, "bits": bits, "comment": comment,
              "passphrase": "", "confirm_passphrase": ""}
    if passphrase:
        params["passphrase"] = getpass.getpass("Passphrase (empty for none): ")
        params["confirm_passphrase"] = getpass.getpass("Confirm passphrase: ")
    return params

def format_entries(snapshot: Snapshot, marker=False) -> str:
    """One numbered line per entry, with the selection marked if marker is set."""
    lines = []
    for index, entry in enumerate(snapshot.entries):
        prefix = ""
        if marker:
            prefix = "> " if index == snapshot.selected else "  "
        if entry.placeholder:
            lines.append(f"{prefix}{entry.label}")
        else:
            lines.append(f"{prefix}{index + 1:>3}  {entry.kind:<8} {entry.label}")
    return "\n".join(lines)

def run_single(controller: InventoryController, args) -> int:
    """Runs one non-interactive command. Returns the exit status."""

    snapshot = controller.start()

    if args.command == "list":
        print(format_entries(snapshot))
        return 0

    if args.command == "create":
        params = prompt_create_params(args.name, args.key_type, args.bits, args.comment,
                                      passphrase=not args.no_passphrase)
        controller.dispatch(OpenCreateForm())
        return 0 if controller.request_create(params) else 1

    index = find_entry(snapshot, args.key)
    if index is None:
        logging.error("No entry named %s in %s", args.key, controller.store.directory)
        return 1

    if args.command == "show":
        try:
            sys.stdout.write(controller.store.read_content(snapshot.entries[index]))
        except InventoryIOError as e:
            logging.error("%s", e)
            return 1
        return 0

    if args.command == "status":
        resolver = AgentStatusResolver(controller.store, controller.agent)
        print(describe(resolver.status(snapshot.entries[index])))
        return 0

    if args.command == "delete":
        if not args.yes:
            logging.error("Refusing to delete %s without --yes", args.key)
            return 1
        controller.dispatch(Select(index))
        controller.dispatch(BeginDelete())
        before = len(controller.store)
        controller.dispatch(Confirm())
        return 0 if len(controller.store) < before else 1

    requests = {
        "add": controller.request_add_to_agent,
        "remove": controller.request_remove_from_agent,
        "copy": controller.request_copy_public_key,
    }
    return 0 if requests[args.command](index) else 1


class Shell():
    """Line-oriented interactive front end. Each line of input becomes one
    intent; the screen is redrawn after each one."""

    def __init__(self, controller: InventoryController, handler: EventHandler, out=sys.stdout):
        self.controller = controller
        self.handler = handler
        self.resolver = AgentStatusResolver(controller.store, controller.agent)
        self.out = out
        self.status_text = describe(None)

    def run(self) -> int:
        snapshot = self.controller.start()
        self.update_status(snapshot)
        self.draw(snapshot)
        self.handler.start()

        try:
            while True:
                event = self.handler.next()
                if isinstance(event, Closed):
                    return 0
                if isinstance(event, Tick):
                    self.update_status(self.controller.snapshot())
                    continue
                if isinstance(event, Key):
                    if not self.handle_key(event.text.strip()):
                        return 0
                    snapshot = self.controller.snapshot()
                    self.update_status(snapshot)
                    self.draw(snapshot)
                    self.handler.ready()
        finally:
            self.handler.stop()

    def update_status(self, snapshot: Snapshot) -> None:
        """Re-queries the agent status of the selected entry."""
        self.status_text = describe(self.resolver.status(snapshot.selected_entry))

    def handle_key(self, key: str) -> bool:
        """Maps a line of input to intents. Returns False to quit."""

        mode = self.controller.mode

        if isinstance(mode, ConfirmingDelete):
            self.controller.dispatch(Confirm() if key.lower() in ("y", "yes") else Cancel())
            return True

        if isinstance(mode, ShowingBindings):
            intents = {"n": OpenCreateForm(), "d": BeginDelete(), "a": AddToAgent(),
                       "r": RemoveFromAgent(), "c": CopyPublicKey()}
            self.controller.dispatch(intents.get(key, Cancel()))
            self.fill_create_form()
            return True

        if key == "q":
            return False

        if key.isdigit():
            self.controller.dispatch(Select(int(key) - 1))
            return True

        intents = {"j": SelectNext(), "k": SelectPrevious(), "?": ToggleBindings(), "n": OpenCreateForm(),
                   "d": BeginDelete(), "a": AddToAgent(), "r": RemoveFromAgent(), "c": CopyPublicKey(),
                   "g": Refresh()}
        if key in intents:
            self.controller.dispatch(intents[key])
            self.fill_create_form()
        return True

    def fill_create_form(self) -> None:
        """Collects the form fields while the create form is open."""

        while isinstance(self.controller.mode, CreatingKey):
            form = self.controller.mode.form
            self.out.write("New key (empty name for a generated one)\n")
            self.out.flush()
            name = input(f"Name [{form['name']}]: ").strip() or form["name"]
            key_type = input(f"Type {'/'.join(KEY_TYPES)} [{form['type']}]: ").strip() or form["type"]
            bits = input(f"Bits {'/'.join(map(str, KEY_BITS))} [{form['bits']}]: ").strip() or str(form["bits"])
            comment = input(f"Comment [{form['comment']}]: ").strip() or form["comment"]

            if not bits.isdigit():
                bits = "0"
            params = prompt_create_params(name, key_type, int(bits), comment)
            self.controller.dispatch(SubmitCreate(params))

            if isinstance(self.controller.mode, CreatingKey):
                self.out.write(self.controller.log[-1] + "\n")
                if input("Try again? [y/N] ").strip().lower() not in ("y", "yes"):
                    self.controller.dispatch(Cancel())

    def draw(self, snapshot: Snapshot) -> None:
        out = [f"SSH Files ({self.controller.store.directory})",
               format_entries(snapshot, marker=True)]

        if snapshot.selected is not None:
            out.append(f"|{snapshot.selected + 1} of {len(snapshot.entries)}|")
        out.append(f"SSH Agent Status: {self.status_text}")

        out.append("Command Log:")
        out.extend(f"  {line}" for line in snapshot.log[-LOG_LINES:])

        if isinstance(snapshot.mode, ConfirmingDelete):
            out.append("Are you sure you want to delete this SSH key? [y/N]")
            out.append("Note: You can recover the key from the trash.")
        elif isinstance(snapshot.mode, ShowingBindings):
            out.append("Key Bindings:")
            out.extend(f"  <{key}> {text}" for key, text in BINDINGS)
            out.append("  Enter to close")
        elif isinstance(snapshot.mode, Browsing):
            out.append("j/k: move | n: create | d: delete | a: add to agent | r: remove from agent"
                       " | c: copy | ?: keybindings | q: quit")

        self.out.write("\n".join(out) + "\n")
        self.out.flush()


def read_line() -> Optional[str]:
    """Reads a line from stdin, None at end of input."""
    line = sys.stdin.readline()
    return line if line else None

def main(argv=None) -> int:
    """Entry point for the sshkeyman command."""

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    command = args.command or "shell"

    # The shell shows the command log itself
    if command == "shell" and not args.verbose:
        level = logging.WARNING

    logging.basicConfig(level=level, format=LOG_FORMAT)

    try:
        controller = build_controller(args)
    except RuntimeError as e:
        parser.error(str(e))

    if command == "shell":
        return Shell(controller, EventHandler(read_line)).run()

    return run_single(controller, args)

if __name__ == "__main__":
    sys.exit(main())
