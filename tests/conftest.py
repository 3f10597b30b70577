from __future__ import annotations

import pytest

from sessionkeeper.core.assembly import build_core
from sessionkeeper.core.clock import ManualScheduler
from sessionkeeper.core.storage.kv import MemoryKeyValueStore
from tests.helpers.config_builders import build_app_config
from tests.helpers.fakes import EventRecorder


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def core(scheduler, kv):
    c = build_core(build_app_config(), scheduler=scheduler, kv=kv)
    yield c
    c.auth.shutdown()


@pytest.fixture
def core_events(core):
    rec = EventRecorder()
    core.bus.subscribe("*", rec, priority=100)
    return rec
