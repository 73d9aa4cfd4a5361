import os

# keep failing proofs from hanging the test run
os.environ.setdefault("TIMEOUT_MS", "120000")

import pytest

from choice import LatestChooser
from environment import Environment, EventLedger
from items import Data, Key
from principals import PrincipalRegistry
from world import World

CLIENT = 1
SERVER = 2
REQUEST = Data(42)


@pytest.fixture
def registry():
    """Principals 0, 1 (client) and 2 (server)."""
    registry = PrincipalRegistry()
    for _ in range(3):
        registry.create_principal()
    return registry


@pytest.fixture
def key():
    return Key(CLIENT, 0)


@pytest.fixture
def env(key):
    return Environment().share(key.creator, key.seq, SERVER)


@pytest.fixture
def ledger():
    ledger = EventLedger()
    ledger.record_request(CLIENT, SERVER, REQUEST)
    return ledger


@pytest.fixture
def make_world(env, ledger):
    def make(chooser=None, bad=()):
        return World(env.with_bad(*bad), ledger, chooser or LatestChooser())

    return make


@pytest.fixture
def world(make_world):
    return make_world()


@pytest.fixture
def in_tmp(tmp_path, monkeypatch):
    """Counter-models and unsat cores are written relative to the working directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path
