from concurrent.futures import ThreadPoolExecutor

import pytest

from device_trust.models import DeviceFingerprint, RiskLevel
from device_trust.services import DeviceFingerprintService, DeviceTrustScorer, InMemoryHistoryStore, MAX_HISTORY


# =============================================================================
# TRUST SCORE
# =============================================================================

def test_first_sighting_is_neutral(device_service, baseline):
    trust = device_service.calculate_device_trust_score(baseline, "user-1")

    assert trust == 0.5
    assert len(device_service.get_device_history("user-1")) == 1


def test_consistency_is_never_punished(device_service, baseline):
    device_service.calculate_device_trust_score(baseline, "user-1")

    second = device_service.evaluate_device(baseline, "user-1")
    third = device_service.evaluate_device(baseline, "user-1")

    assert second.change_analysis.change_score == 0
    assert second.trust_score >= 0.5
    assert third.trust_score == 1.0


def test_spoofed_device_loses_trust(device_service, baseline, make_fingerprint):
    device_service.calculate_device_trust_score(baseline, "user-1")
    device_service.calculate_device_trust_score(baseline, "user-1")
    spoofed = make_fingerprint(
        device_id="dev-666", user_agent="Other/1.0", canvas="canvas-x", webgl="webgl-x"
    )

    trust = device_service.calculate_device_trust_score(spoofed, "user-1")

    assert 0.0 <= trust < 0.3
    assert device_service.is_device_trusted(spoofed, "user-2") is False


def test_moderate_change_with_pattern_penalty(device_service, baseline, make_fingerprint):
    device_service.calculate_device_trust_score(baseline, "user-1")

    evaluation = device_service.evaluate_device(
        make_fingerprint(screen_resolution="1366x768", hardware_concurrency=2), "user-1"
    )

    # 1 - 70/200 - 0.3, no consistency bonus with a single history entry
    assert evaluation.trust_score == pytest.approx(0.35)


def test_is_device_trusted_gate(device_service, baseline):
    assert device_service.is_device_trusted(baseline, "user-1") is False
    assert device_service.is_device_trusted(baseline, "user-1") is True


def test_trust_threshold_is_inclusive():
    scorer = DeviceTrustScorer()

    assert scorer.is_trusted(0.7) is True
    assert scorer.is_trusted(0.6999) is False


# =============================================================================
# CONSISTENCY
# =============================================================================

def test_consistency_needs_two_entries(baseline):
    scorer = DeviceTrustScorer()

    assert scorer.consistency_score([]) == 0.0
    assert scorer.consistency_score([baseline]) == 0.0


def test_consistency_counts_components_at_eighty_percent(make_fingerprint):
    scorer = DeviceTrustScorer()
    history = [make_fingerprint() for _ in range(4)] + [make_fingerprint(timezone="Europe/Paris")]
    assert scorer.consistency_score(history) == 1.0

    history = (
        [make_fingerprint() for _ in range(3)]
        + [make_fingerprint(ip_address=f"10.0.{i}.1") for i in range(2)]
    )
    assert scorer.consistency_score(history) == pytest.approx(0.9)


def test_consistency_excludes_current_sighting(device_service, baseline, make_fingerprint):
    for _ in range(2):
        device_service.calculate_device_trust_score(baseline, "user-1")

    roamed = make_fingerprint(
        user_agent="Mozilla/5.0 (X11; Linux x86_64) Firefox/121.0",
        ip_address="102.176.4.9",
        timezone="Europe/London",
        language="en-GB"
    )
    evaluation = device_service.evaluate_device(roamed, "user-1")

    # 1 - 60/200 + 0.2 * 1.0 against the two identical stored entries
    assert evaluation.change_analysis.change_score == 60
    assert evaluation.trust_score == pytest.approx(0.9)


# =============================================================================
# HISTORY & DEVICE SERVICE
# =============================================================================

def test_detect_device_changes_for_unknown_user_is_low(device_service, make_fingerprint):
    result = device_service.detect_device_changes(
        make_fingerprint(user_agent="HeadlessChrome", plugins=[], fonts=[]), "new-user"
    )

    assert result.change_score == 0
    assert result.risk_level == RiskLevel.LOW


def test_history_stays_bounded(device_service, make_fingerprint):
    for i in range(MAX_HISTORY + 7):
        device_service.calculate_device_trust_score(make_fingerprint(device_id=f"dev-{i}"), "user-1")

    assert len(device_service.get_device_history("user-1")) == MAX_HISTORY


def test_each_operation_records_one_sighting(device_service, baseline):
    device_service.detect_device_changes(baseline, "user-1")
    device_service.calculate_device_trust_score(baseline, "user-1")
    device_service.is_device_trusted(baseline, "user-1")

    assert len(device_service.get_device_history("user-1")) == 3


def test_clear_history_restarts_as_first_sighting(device_service, baseline):
    device_service.calculate_device_trust_score(baseline, "user-1")
    device_service.clear_device_history("user-1")

    assert device_service.get_device_history("user-1") == []
    assert device_service.evaluate_device(baseline, "user-1").first_sighting is True


def test_concurrent_sightings_for_one_user_do_not_interleave(make_fingerprint):
    service = DeviceFingerprintService(history_store=InMemoryHistoryStore(max_history=50))
    fingerprints = [make_fingerprint(device_id=f"dev-{i}") for i in range(40)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        evaluations = list(pool.map(lambda fp: service.evaluate_device(fp, "user-1"), fingerprints))

    assert sum(e.first_sighting for e in evaluations) == 1
    assert len(service.get_device_history("user-1")) == 40


def test_lock_pool_does_not_grow_with_users(baseline):
    service = DeviceFingerprintService(lock_stripes=8)

    for i in range(1000):
        service.evaluate_device(baseline, f"user-{i}")
        service.clear_device_history(f"user-{i}")

    assert len(service._locks) == 8
    assert service._user_lock("user-42") is service._user_lock("user-42")


def test_lock_pool_needs_at_least_one_stripe():
    with pytest.raises(ValueError):
        DeviceFingerprintService(lock_stripes=0)


# =============================================================================
# VALIDATION & SIMILARITY
# =============================================================================

def test_validate_fingerprint(baseline):
    assert DeviceFingerprintService.validate_fingerprint(baseline) is True
    assert DeviceFingerprintService.validate_fingerprint(baseline.model_copy(update={"canvas": ""})) is False


def test_validate_fingerprint_on_unvalidated_instance(baseline):
    fields = baseline.model_dump()
    fields["webgl"] = None

    unvalidated = DeviceFingerprint.model_construct(**fields)

    assert DeviceFingerprintService.validate_fingerprint(unvalidated) is False


def test_compare_fingerprints(baseline, make_fingerprint):
    assert DeviceFingerprintService.compare_fingerprints(baseline, baseline) == 1.0

    other_device = make_fingerprint(device_id="dev-002")
    assert DeviceFingerprintService.compare_fingerprints(baseline, other_device) == pytest.approx(0.7)

    unrelated = make_fingerprint(
        device_id="x", user_agent="y", screen_resolution="1x1", canvas="c",
        webgl="w", timezone="Asia/Tokyo", language="ja-JP"
    )
    assert DeviceFingerprintService.compare_fingerprints(baseline, unrelated) == 0.0
