#!/usr/bin/env python3
"""InventoryController tests"""

import pytest

from sshkeyman.controller import (Browsing, ConfirmingDelete, CreatingKey, ShowingBindings, SelectNext,
                                  SelectPrevious, Select, ToggleBindings, OpenCreateForm, SubmitCreate,
                                  BeginDelete, Confirm, Cancel, AddToAgent, RemoveFromAgent, CopyPublicKey,
                                  Refresh)
from sshkeyman.exceptions import ClipboardError, InventoryIOError
from sshkeyman.keystore import KeyStore
from sshkeyman.types import KeyEntry


def create_form(**values):
    params = {"name": "", "type": "ed25519", "bits": 2048, "passphrase": "pw",
              "confirm_passphrase": "pw", "comment": "me@example"}
    params.update(values)
    return params

def delete(controller, index):
    controller.dispatch(Select(index))
    controller.dispatch(BeginDelete())
    return controller.dispatch(Confirm())


def test_start(make_keys, controller):
    """The first entry is selected after the initial scan."""
    make_keys("id_rsa", "id_rsa.pub", "known_hosts")

    snapshot = controller.start()

    assert snapshot.selected == 0
    assert snapshot.selected_entry == KeyEntry("id_rsa", True, True)
    assert isinstance(snapshot.mode, Browsing)

def test_start_empty(controller):
    snapshot = controller.start()

    assert snapshot.entries == ()
    assert snapshot.selected is None
    assert snapshot.selected_entry is None

def test_start_unreadable(controller, monkeypatch):
    """An unreadable directory is logged, not raised."""

    def refuse():
        raise InventoryIOError("Unable to read the key directory")

    monkeypatch.setattr(controller.store, "scan", refuse)

    snapshot = controller.start()

    assert snapshot.entries == ()
    assert snapshot.log == ("Failed to read SSH files: Unable to read the key directory",)


def test_create_with_default_name(controller, ssh, key_dir):
    """A blank name becomes id_<type>_<timestamp> and the new pair is scanned."""
    controller.start()
    controller.dispatch(OpenCreateForm())

    snapshot = controller.dispatch(SubmitCreate(create_form()))

    assert (key_dir / "id_ed25519_1700000000").exists()
    assert snapshot.entries == (KeyEntry("id_ed25519_1700000000", True, True),)
    assert snapshot.selected == 0
    assert isinstance(snapshot.mode, Browsing)
    assert ssh.count("-t") == 1

def test_create_log_is_redacted(controller, ssh, key_dir):
    """The command log shows the command with [REDACTED] instead of the passphrase."""
    controller.start()

    assert controller.request_create(create_form(name="work", passphrase="hunter2", confirm_passphrase="hunter2"))

    assert controller.log == (
        f"ssh-keygen -t ed25519 -b 2048 -f {key_dir / 'work'} -N [REDACTED] -C me@example -> SSH key created",
    )
    assert all("hunter2" not in line for line in controller.log)
    assert "hunter2" in ssh.calls[0]

def test_create_round_trip(make_keys, controller):
    """After creation the new key is a pair on the next scan, ahead of older keys."""
    make_keys("zzz", "zzz.pub", "notes")
    controller.start()

    controller.request_create(create_form(name="aaa"))

    entries = KeyStore(controller.store.directory).scan()
    assert KeyEntry("aaa", True, True) in entries
    assert controller.snapshot().selected_entry == KeyEntry("aaa", True, True)

def test_create_passphrase_mismatch(controller, ssh):
    """A mismatch never reaches ssh-keygen and keeps the form open."""
    controller.start()
    controller.dispatch(OpenCreateForm())

    snapshot = controller.dispatch(SubmitCreate(create_form(passphrase="a", confirm_passphrase="b")))

    assert not ssh.calls
    assert snapshot.log == ("Failed to create SSH key: Passphrases do not match",)
    assert isinstance(snapshot.mode, CreatingKey)
    assert snapshot.mode.form["comment"] == "me@example"

def test_create_missing_bits(controller, ssh):
    """A form without a key size is refused like any other bad size."""
    controller.start()
    controller.dispatch(OpenCreateForm())

    snapshot = controller.dispatch(SubmitCreate(create_form(bits=None)))

    assert not ssh.calls
    assert snapshot.log[-1].startswith("Failed to create SSH key: Unsupported key size None")
    assert isinstance(snapshot.mode, CreatingKey)

def test_create_failure_keeps_form(make_keys, controller, ssh, monkeypatch):
    """ssh-keygen's message is logged verbatim, nothing is rescanned."""
    make_keys("id_rsa", "id_rsa.pub")
    controller.start()
    ssh.keygen_error = "Invalid ECDSA key length: valid lengths are 256, 384 or 521 bits\n"
    scans = []
    monkeypatch.setattr(controller.store, "scan", lambda: scans.append(1))

    assert not controller.request_create(create_form(name="bad", type="ecdsa"))

    assert controller.log[-1].endswith(
        "-> Failed to create SSH key: Invalid ECDSA key length: valid lengths are 256, 384 or 521 bits")
    assert not scans
    assert isinstance(controller.mode, CreatingKey)
    assert controller.mode.form["name"] == "bad"

def test_create_existing_name(make_keys, controller, ssh):
    """Creating over an existing key is refused without running ssh-keygen."""
    make_keys("id_ed25519_1700000000", "id_ed25519_1700000000.pub")
    controller.start()

    assert not controller.request_create(create_form())
    assert ssh.count("-t") == 0
    assert "already exists" in controller.log[-1]

def test_create_rescan_failure_inserts_entry(controller, monkeypatch):
    """If the rescan fails the new pair is still shown."""
    controller.start()

    def refuse():
        raise InventoryIOError("Unable to read the key directory")

    monkeypatch.setattr(controller.store, "scan", refuse)

    assert controller.request_create(create_form(name="work"))
    assert controller.snapshot().entries == (KeyEntry("work", True, True),)
    assert controller.log[-1] == "Failed to read SSH files: Unable to read the key directory"


def test_delete_requires_confirmation(make_keys, controller, trash):
    make_keys("a", "a.pub")
    controller.start()

    assert not controller.request_delete(0)
    assert not trash.paths

    controller.dispatch(BeginDelete())
    snapshot = controller.dispatch(Cancel())

    assert isinstance(snapshot.mode, Browsing)
    assert len(snapshot.entries) == 1
    assert not trash.paths

def test_delete_pair(make_keys, controller, trash, key_dir):
    """Both halves go to the trash and each move is logged."""
    make_keys("a", "a.pub", "b", "b.pub")
    controller.start()

    snapshot = delete(controller, 0)

    assert trash.paths == [key_dir / "a", key_dir / "a.pub"]
    assert snapshot.entries == (KeyEntry("b", True, True),)
    assert snapshot.log == (f"Move to trash: {key_dir / 'a'} -> SSH key moved to trash",
                            f"Move to trash: {key_dir / 'a.pub'} -> SSH key moved to trash")
    assert isinstance(snapshot.mode, Browsing)

def test_delete_selection_stays(make_keys, controller):
    """Deleting from the middle keeps the index, now on the next entry."""
    make_keys("a", "a.pub", "b", "b.pub", "c", "c.pub")
    controller.start()

    snapshot = delete(controller, 1)

    assert snapshot.selected == 1
    assert snapshot.selected_entry.base_name == "c"

def test_delete_last_selects_previous(make_keys, controller):
    make_keys("a", "a.pub", "b", "b.pub", "c", "c.pub")
    controller.start()

    snapshot = delete(controller, 2)

    assert snapshot.selected == 1
    assert snapshot.selected_entry.base_name == "b"

def test_delete_only_entry(make_keys, controller):
    """Deleting the last remaining entry leaves nothing selected."""
    make_keys("only", "only.pub")
    controller.start()

    snapshot = delete(controller, 0)

    assert snapshot.entries == ()
    assert snapshot.selected is None

def test_delete_public_only_and_other(make_keys, controller, trash, key_dir):
    make_keys("lonely.pub", "known_hosts")
    controller.start()

    delete(controller, 0)
    delete(controller, 0)

    assert trash.paths == [key_dir / "lonely.pub", key_dir / "known_hosts"]
    assert controller.store.entries == ()

def test_delete_falls_back_to_literal_file(make_keys, controller, trash, key_dir):
    """When neither half could be trashed, the entry's own file is tried."""
    make_keys("a", "a.pub")
    controller.start()
    trash.failures = 2

    snapshot = delete(controller, 0)

    assert trash.paths == [key_dir / "a"]
    assert snapshot.entries == ()

def test_delete_other_leaves_neighbours(make_keys, controller, trash, key_dir):
    """Deleting known_hosts doesn't touch the separate known_hosts.pub entry."""
    make_keys("known_hosts", "known_hosts.pub")
    controller.start()

    snapshot = delete(controller, 0)

    assert trash.paths == [key_dir / "known_hosts"]
    assert (key_dir / "known_hosts.pub").exists()
    assert snapshot.entries == (KeyEntry("known_hosts.pub", False, False),)

def test_delete_public_only_next_to_directory(make_keys, controller, trash, key_dir):
    """A directory sharing the base name of a public key is left alone."""
    make_keys("foo.pub")
    (key_dir / "foo").mkdir()
    controller.start()
    assert controller.store.entries == (KeyEntry("foo", False, True),)

    snapshot = delete(controller, 0)

    assert trash.paths == [key_dir / "foo.pub"]
    assert (key_dir / "foo").is_dir()
    assert snapshot.entries == ()

def test_delete_failure(make_keys, controller, trash, key_dir):
    """If nothing can be trashed the inventory is unchanged."""
    make_keys("a", "a.pub")
    controller.start()
    trash.failures = 3

    snapshot = delete(controller, 0)

    assert snapshot.entries == (KeyEntry("a", True, True),)
    assert snapshot.selected == 0
    assert snapshot.log[-1].startswith(f"Move to trash: {key_dir / 'a'} -> Failed to move to trash:")

def test_delete_placeholder(tmp_path, controller, trash):
    controller.store = KeyStore(tmp_path / "missing")
    controller.start()

    delete(controller, 0)

    assert not trash.paths
    assert controller.log == ("Cannot delete: No SSH files found",)


def test_add_to_agent_is_idempotent(make_keys, controller, ssh, key_dir):
    """The second add finds the key loaded and doesn't call ssh-add again."""
    make_keys("id_rsa", "id_rsa.pub")
    controller.start()

    controller.dispatch(AddToAgent())
    controller.dispatch(AddToAgent())

    assert ssh.count(str(key_dir / "id_rsa")) == 1
    assert controller.log == (f"ssh-add {key_dir / 'id_rsa'} -> SSH key added to agent",
                              f"ssh-add {key_dir / 'id_rsa'} -> SSH key is already added to agent")

def test_add_requires_pair(make_keys, controller, ssh):
    make_keys("orphan")
    controller.start()

    assert not controller.request_add_to_agent(0)
    assert not ssh.calls
    assert controller.log == ("Cannot add: orphan is not a private key file of an SSH pair",)

def test_add_fingerprint_failure(key_dir, controller, ssh):
    (key_dir / "broken").write_text("junk\n", encoding="utf-8")
    (key_dir / "broken.pub").write_text("junk\n", encoding="utf-8")
    controller.start()

    assert not controller.request_add_to_agent(0)
    assert ssh.count("-l") == 0
    assert controller.log[-1] == f"ssh-add {key_dir / 'broken'} -> Failed to add SSH key to agent: Failed to get SSH key fingerprint"

def test_add_without_agent(make_keys, controller, ssh):
    """An unreachable agent is not fatal; the failed ssh-add is logged."""
    make_keys("id_rsa", "id_rsa.pub")
    controller.start()
    ssh.agent_running = False

    assert not controller.request_add_to_agent(0)
    assert "Failed to add SSH key to agent: Could not open a connection" in controller.log[-1]

def test_remove_from_agent(make_keys, controller, ssh, key_dir):
    make_keys("id_rsa", "id_rsa.pub")
    controller.start()
    ssh.loaded.add("SHA256:id_rsa")

    controller.dispatch(RemoveFromAgent())
    controller.dispatch(RemoveFromAgent())

    assert ssh.count("-d") == 1
    assert not ssh.loaded
    assert controller.log == (f"ssh-add -d {key_dir / 'id_rsa'} -> SSH key removed from agent",
                              f"ssh-add -d {key_dir / 'id_rsa'} -> SSH key is not added to agent")

def test_remove_requires_pair(make_keys, controller):
    make_keys("lonely.pub")
    controller.start()

    assert not controller.request_remove_from_agent(0)
    assert controller.log == ("Cannot remove: lonely.pub is not a private key file of an SSH pair",)


def test_copy_public_key(make_keys, controller, clipboard, key_dir):
    make_keys("id_ed25519", "id_ed25519.pub")
    controller.start()

    controller.dispatch(CopyPublicKey())

    assert clipboard == [(key_dir / "id_ed25519.pub").read_text(encoding="utf-8")]
    assert controller.log == (f"Copy to clipboard: {key_dir / 'id_ed25519.pub'} -> SSH public key copied to clipboard",)

def test_copy_requires_pair(make_keys, controller, clipboard):
    make_keys("known_hosts")
    controller.start()

    assert not controller.request_copy_public_key(0)
    assert not clipboard
    assert controller.log == ("Cannot copy: known_hosts is not a public key file of an SSH pair",)

def test_copy_failures_are_logged(make_keys, controller, key_dir):
    make_keys("id_ed25519", "id_ed25519.pub")
    controller.start()

    def broken_clipboard(text):
        raise ClipboardError("could not find a copy/paste mechanism")

    controller.clipboard = broken_clipboard
    assert not controller.request_copy_public_key(0)
    assert controller.log[-1].endswith("Failed to copy SSH public key: could not find a copy/paste mechanism")

    (key_dir / "id_ed25519.pub").unlink()
    assert not controller.request_copy_public_key(0)
    assert controller.log[-1].startswith("Failed to copy SSH public key:")


def test_navigation(make_keys, controller):
    make_keys("a", "a.pub", "b", "b.pub")
    controller.start()

    assert controller.dispatch(SelectPrevious()).selected == 0
    assert controller.dispatch(SelectNext()).selected == 1
    assert controller.dispatch(SelectNext()).selected == 1
    assert controller.dispatch(Select(5)).selected == 1
    assert controller.dispatch(Select(0)).selected == 0

def test_modes_suppress_navigation(make_keys, controller):
    """While a popup is open navigation intents do nothing."""
    make_keys("a", "a.pub", "b", "b.pub")
    controller.start()

    assert isinstance(controller.dispatch(ToggleBindings()).mode, ShowingBindings)
    assert controller.dispatch(SelectNext()).selected == 0
    assert isinstance(controller.dispatch(ToggleBindings()).mode, Browsing)

    assert controller.dispatch(BeginDelete()).mode == ConfirmingDelete(0)
    assert controller.dispatch(SelectNext()).selected == 0
    assert controller.dispatch(AddToAgent()).log == ()
    controller.dispatch(Cancel())

    controller.dispatch(OpenCreateForm())
    assert controller.dispatch(SelectNext()).selected == 0
    assert isinstance(controller.dispatch(Cancel()).mode, Browsing)

def test_bindings_run_actions(make_keys, controller, ssh):
    """An action chosen from the key bindings popup runs and closes it."""
    make_keys("a", "a.pub")
    controller.start()
    controller.dispatch(ToggleBindings())

    snapshot = controller.dispatch(AddToAgent())

    assert isinstance(snapshot.mode, Browsing)
    assert ssh.loaded == {"SHA256:a"}

    controller.dispatch(ToggleBindings())
    assert controller.dispatch(BeginDelete()).mode == ConfirmingDelete(0)

def test_refresh_picks_up_external_changes(make_keys, controller):
    make_keys("a", "a.pub")
    controller.start()
    make_keys("b", "b.pub")

    snapshot = controller.dispatch(Refresh())

    assert [e.base_name for e in snapshot.entries] == ["a", "b"]

def test_subscribers_get_snapshots(make_keys, controller):
    make_keys("a", "a.pub")
    controller.start()
    seen = []
    controller.subscribe(seen.append)

    controller.dispatch(CopyPublicKey())
    controller.dispatch(SelectNext())

    assert len(seen) == 2
    assert len(seen[0].log) == 1
    assert isinstance(seen[0].entries, tuple)
    with pytest.raises(AttributeError):
        seen[0].log.append("tampered")
