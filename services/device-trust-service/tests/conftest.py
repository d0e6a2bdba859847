from datetime import datetime, timezone

import pytest

from device_trust.models import DeviceFingerprint, Transaction
from device_trust.services import DeviceFingerprintService, InMemoryHistoryStore, TransactionRiskScorer


def _make_fingerprint(**overrides) -> DeviceFingerprint:
    data = dict(
        device_id="dev-001",
        user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120.0 Safari/537.36",
        screen_resolution="1920x1080",
        color_depth=24,
        timezone="Africa/Accra",
        language="en-US",
        languages=["en-US", "en"],
        platform="Win32",
        cookie_enabled=True,
        do_not_track=None,
        ip_address="41.66.203.10",
        network_type="wifi",
        hardware_concurrency=8,
        max_touch_points=0,
        canvas="canvas-a1b2c3",
        webgl="webgl-d4e5f6",
        fonts=["Arial", "Calibri", "Cambria", "Georgia", "Tahoma", "Verdana"],
        plugins=["PDF Viewer", "Chrome PDF Viewer"],
        local_storage=True,
        session_storage=True,
        indexed_db=True,
        device_memory=8,
        pixel_ratio=1.0,
        touch_support=False,
        audio_context="audio-7f3e",
        webrtc="webrtc-9c21",
        battery={"charging": True, "level": 0.8},
        captured_at=datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return DeviceFingerprint(**data)


def _make_transaction(**overrides) -> Transaction:
    data = dict(
        id="txn-001",
        amount=50.0,
        currency="GHS",
        timestamp=datetime(2026, 1, 15, 12, 30),
        type="send_money",
        location="Accra",
        merchant_category="grocery",
        agent_info={"id": "agent-7", "trust_score": 0.9, "location": "Accra"},
        device_fingerprint={"device_id": "dev-001", "is_new_device": False, "trust_score": 0.9},
        user_profile={"user_id": "user-1", "last_known_location": "Accra", "risk_profile": "low"},
        network_trust=0.8,
        pin_attempts=1,
    )
    data.update(overrides)
    return Transaction(**data)


@pytest.fixture
def make_fingerprint():
    return _make_fingerprint


@pytest.fixture
def make_transaction():
    return _make_transaction


@pytest.fixture
def baseline(make_fingerprint):
    return make_fingerprint()


@pytest.fixture
def device_service():
    return DeviceFingerprintService(history_store=InMemoryHistoryStore())


@pytest.fixture
def scorer():
    return TransactionRiskScorer()
