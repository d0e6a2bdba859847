import pytest

from device_trust.models import Component, RiskLevel, SuspiciousPattern
from device_trust.services import FingerprintChangeDetector, classify_change_score
from device_trust.services.change_detection import COMPONENT_RULES, mask_value


@pytest.fixture
def detector():
    return FingerprintChangeDetector()


def test_first_registration_is_not_penalized(detector, make_fingerprint):
    headless = make_fingerprint(
        user_agent="Mozilla/5.0 HeadlessChrome/120.0",
        webgl="no-webgl",
        canvas="canvas-error",
        plugins=[],
        fonts=[]
    )

    result = detector.analyze(headless, None)

    assert result.change_score == 0
    assert result.risk_level == RiskLevel.LOW
    assert result.changed_components == []
    assert result.has_significant_changes is False
    assert result.reason == "First device registration"


def test_identical_fingerprint_has_no_changes(detector, baseline):
    result = detector.analyze(baseline, baseline)

    assert result.change_score == 0
    assert result.changed_components == []
    assert result.suspicious_patterns == []
    assert result.risk_level == RiskLevel.LOW


@pytest.mark.parametrize("score, expected", [
    (0, RiskLevel.LOW),
    (29, RiskLevel.LOW),
    (30, RiskLevel.MEDIUM),
    (59, RiskLevel.MEDIUM),
    (60, RiskLevel.HIGH),
    (99, RiskLevel.HIGH),
    (100, RiskLevel.CRITICAL),
    (400, RiskLevel.CRITICAL),
])
def test_change_score_thresholds(score, expected):
    assert classify_change_score(score) == expected


def test_weight_table_is_fixed():
    weights = {rule.component: rule.weight for rule in COMPONENT_RULES}

    assert weights == {
        Component.DEVICE_ID: 50, Component.USER_AGENT: 30, Component.PLATFORM: 35,
        Component.CANVAS: 25, Component.WEBGL: 25, Component.IP_ADDRESS: 15,
        Component.TIMEZONE: 10, Component.LANGUAGE: 5, Component.HARDWARE_CONCURRENCY: 20,
        Component.DEVICE_MEMORY: 15, Component.PLUGINS: 10, Component.FONTS: 8,
        Component.AUDIO_CONTEXT: 15, Component.WEBRTC: 10, Component.BATTERY: 5,
        Component.SCREEN_RESOLUTION: 20,
    }


def test_user_agent_change_is_significant(detector, baseline, make_fingerprint):
    current = make_fingerprint(user_agent="Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0")

    result = detector.analyze(current, baseline)

    assert result.changed_components == [Component.USER_AGENT]
    assert result.change_score == 30
    assert result.has_significant_changes is True
    assert result.risk_level == RiskLevel.MEDIUM


def test_ip_change_within_subnet_is_ignored(detector, baseline, make_fingerprint):
    current = make_fingerprint(ip_address="41.66.203.254")

    result = detector.analyze(current, baseline)

    assert Component.IP_ADDRESS not in result.changed_components
    assert result.change_score == 0


def test_ip_change_across_subnet_is_masked_in_details(detector, baseline, make_fingerprint):
    current = make_fingerprint(ip_address="102.176.4.9")

    result = detector.analyze(current, baseline)

    assert result.changed_components == [Component.IP_ADDRESS]
    assert result.change_score == 15
    detail = result.details["ipAddress"]
    assert detail.previous == "41.66.xxx.xxx"
    assert detail.current == "102.176.xxx.xxx"
    assert detail.weight == 15


def test_battery_level_drift_is_ignored(detector, baseline, make_fingerprint):
    current = make_fingerprint(battery={"charging": True, "level": 0.2})

    assert detector.analyze(current, baseline).change_score == 0


def test_battery_charging_flip_and_removal_count(detector, baseline, make_fingerprint):
    unplugged = make_fingerprint(battery={"charging": False, "level": 0.8})
    no_battery = make_fingerprint(battery=None)

    assert detector.analyze(unplugged, baseline).changed_components == [Component.BATTERY]
    assert detector.analyze(no_battery, baseline).changed_components == [Component.BATTERY]
    assert detector.analyze(no_battery, no_battery).change_score == 0


def test_font_order_is_positional(detector, baseline, make_fingerprint):
    reordered = make_fingerprint(fonts=list(reversed(baseline.fonts)))

    result = detector.analyze(reordered, baseline)

    assert result.changed_components == [Component.FONTS]
    assert result.change_score == 8


def test_optional_device_memory_appearing_counts(detector, make_fingerprint):
    previous = make_fingerprint(device_memory=None)
    current = make_fingerprint(device_memory=16)

    result = detector.analyze(current, previous)

    assert result.changed_components == [Component.DEVICE_MEMORY]
    assert result.change_score == 15


def test_complete_device_spoofing_is_critical(detector, baseline, make_fingerprint):
    spoofed = make_fingerprint(
        device_id="dev-666",
        user_agent="Mozilla/5.0 (Macintosh; Intel Mac OS X 14_2) Safari/605.1.15",
        canvas="canvas-ffffff",
        webgl="webgl-000000"
    )

    result = detector.analyze(spoofed, baseline)

    assert result.risk_level == RiskLevel.CRITICAL
    assert SuspiciousPattern.COMPLETE_DEVICE_SPOOFING in result.suspicious_patterns
    # 50 + 30 + 25 + 25 component weights plus the 50 spoofing bonus
    assert result.change_score == 180


def test_mask_value_leaves_other_values_alone():
    assert mask_value("1920x1080") == "1920x1080"
    assert mask_value("fe80::1") == "fe80::1"
    assert mask_value(8) == 8
