import asyncio
import os
import queue
import sys

import pytest

# Ensure src/ is on sys.path so tests run without installing the package
SRC = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from p2pchat.crypto import keypair_from_seed  # noqa: E402


class RecordingConsole:
    """Console double: lines typed by the test, output kept in a list."""

    def __init__(self):
        self.inputs = queue.Queue()
        self.shown = []
        self.prompts = 0

    def type(self, line):
        self.inputs.put(line)

    def readline(self):
        return self.inputs.get()

    def show(self, text):
        self.shown.append(text)

    def prompt(self):
        self.prompts += 1


class FakeTransport:
    def __init__(self, local_address=("127.0.0.1", 7000)):
        self.local_address = local_address
        self.sent = []

    def sendto(self, data, addr):
        self.sent.append((data, addr))


async def wait_for(predicate, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def console():
    return RecordingConsole()


@pytest.fixture
def alice():
    return keypair_from_seed(b"\x01" * 32)


@pytest.fixture
def bob():
    return keypair_from_seed(b"\x02" * 32)


@pytest.fixture
def mallory():
    return keypair_from_seed(b"\x03" * 32)
