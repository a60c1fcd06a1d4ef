# tests/conftest.py
"""Shared fixtures: fixed clock, fake collaborators, Flask app and client."""
from datetime import datetime

import cv2
import numpy as np
import pytest

from config import TestingConfig
from habitrun import create_app
from habitrun.blob_store import LocalBlobStore
from habitrun.challenge_core import ChallengePolicy
from habitrun.clock import FixedClock

from fakes import FakeVision, InMemoryStore, MemoryBlobStore

TZ = "Asia/Seoul"


@pytest.fixture
def clock():
    # 2026-10-15 14:00 in Seoul
    return FixedClock(datetime(2026, 10, 15, 14, 0), TZ)


@pytest.fixture
def policy():
    return ChallengePolicy()


@pytest.fixture
def vision():
    return FakeVision()


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def memory_blobs():
    return MemoryBlobStore()


@pytest.fixture
def jpeg_bytes():
    img = np.full((40, 60, 3), 200, dtype=np.uint8)
    ok, buf = cv2.imencode(".jpg", img)
    assert ok
    return buf.tobytes()


@pytest.fixture
def app(tmp_path, clock, vision):
    app = create_app(
        TestingConfig,
        clock=clock,
        vision=vision,
        blob_store=LocalBlobStore(str(tmp_path / "uploads")),
    )
    yield app


@pytest.fixture
def client(app):
    return app.test_client()
