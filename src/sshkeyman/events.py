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
"""Input events for the interactive shell.

A reader thread and a tick thread feed a single unbounded queue; the consumer
takes events off it one at a time, in the order they arrived."""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Union

__all__ = ["Key", "Tick", "Closed", "Event", "EventHandler"]


@dataclass(frozen=True)
class Key:
    """A line of user input."""
    text: str

@dataclass(frozen=True)
class Tick:
    pass

@dataclass(frozen=True)
class Closed:
    """The input source is exhausted."""

Event = Union[Key, Tick, Closed]


class EventHandler():
    """Reads input on a background thread. After each Key event the reader
    waits until the consumer calls ready(), so nothing else reads the input
    while an event is being handled."""

    def __init__(self, source: Callable[[], Optional[str]], tick_rate: float = 5.0):
        self.source = source
        self.tick_rate = tick_rate
        self.events: "queue.Queue[Event]" = queue.Queue()
        self._ready = threading.Event()
        self._stopped = threading.Event()
        self._threads = [
            threading.Thread(target=self._read, name="sshkeyman-input", daemon=True),
            threading.Thread(target=self._tick, name="sshkeyman-tick", daemon=True),
        ]

    def start(self) -> "EventHandler":
        self._ready.set()
        for thread in self._threads:
            thread.start()
        return self

    def stop(self) -> None:
        self._stopped.set()
        self._ready.set()

    def ready(self) -> None:
        """Lets the reader fetch the next line."""
        self._ready.set()

    def next(self, timeout: Optional[float] = None) -> Event:
        """Blocks until the next event is available."""
        return self.events.get(timeout=timeout)

    def _read(self) -> None:
        while True:
            self._ready.wait()
            if self._stopped.is_set():
                return
            self._ready.clear()

            try:
                line = self.source()
            except EOFError:
                line = None

            if line is None:
                logging.debug("Input closed")
                self.events.put(Closed())
                return
            self.events.put(Key(line))

    def _tick(self) -> None:
        while not self._stopped.wait(self.tick_rate):
            self.events.put(Tick())
