import threading
from collections import Counter
from typing import List, NamedTuple, Optional

import numpy as np
from structlog import get_logger

from ..models.fingerprint_models import ChangeAnalysisResult, Component, DeviceFingerprint
from .change_detection import COMPONENT_READERS, FingerprintChangeDetector
from .history_store import DeviceHistoryStore, InMemoryHistoryStore

logger = get_logger(__name__)

NEUTRAL_TRUST = 0.5
TRUST_THRESHOLD = 0.7
CONSISTENCY_RATIO = 0.8
LOCK_STRIPES = 64

CONSISTENCY_COMPONENTS = (
    Component.DEVICE_ID, Component.USER_AGENT, Component.SCREEN_RESOLUTION,
    Component.PLATFORM, Component.HARDWARE_CONCURRENCY, Component.CANVAS,
    Component.WEBGL, Component.TIMEZONE, Component.LANGUAGE, Component.IP_ADDRESS
)

REQUIRED_IDENTITY_FIELDS = (
    'device_id', 'user_agent', 'screen_resolution', 'timezone',
    'language', 'platform', 'canvas', 'webgl'
)

SIMILARITY_WEIGHTS = {
    Component.DEVICE_ID: 0.3,
    Component.USER_AGENT: 0.15,
    Component.SCREEN_RESOLUTION: 0.1,
    Component.CANVAS: 0.2,
    Component.WEBGL: 0.15,
    Component.TIMEZONE: 0.05,
    Component.LANGUAGE: 0.05,
}


class DeviceEvaluation(NamedTuple):
    trust_score: float
    change_analysis: ChangeAnalysisResult
    first_sighting: bool


class DeviceTrustScorer:
    def __init__(self, trust_threshold: float = TRUST_THRESHOLD):
        self.trust_threshold = trust_threshold

    def calculate(self, change_analysis: ChangeAnalysisResult, history: List[DeviceFingerprint]) -> float:
        """Blend change score, suspicious patterns and historical consistency into a trust score"""
        if not history:
            return NEUTRAL_TRUST

        trust_score = 1.0
        trust_score -= change_analysis.change_score / 200

        if change_analysis.suspicious_patterns:
            trust_score -= 0.3

        trust_score += self.consistency_score(history) * 0.2

        return float(np.clip(trust_score, 0, 1))

    def consistency_score(self, history: List[DeviceFingerprint]) -> float:
        """Fraction of key components whose modal value covers 80% of the history"""
        if len(history) < 2:
            return 0.0

        consistent_components = 0
        for component in CONSISTENCY_COMPONENTS:
            read = COMPONENT_READERS[component]
            counts = Counter(read(fingerprint) for fingerprint in history)
            most_common_count = counts.most_common(1)[0][1]
            if most_common_count / len(history) >= CONSISTENCY_RATIO:
                consistent_components += 1

        return consistent_components / len(CONSISTENCY_COMPONENTS)

    def is_trusted(self, trust_score: float) -> bool:
        return trust_score >= self.trust_threshold


class DeviceFingerprintService:
    """
    Device-side call surface: change detection, trust scoring and history.

    Reading the latest fingerprint, scoring against it and appending the new
    sighting run as one unit under the user's lock, so concurrent requests for
    the same user never interleave. Users are hashed onto a fixed pool of
    striped locks; two users only contend when they share a stripe.
    """

    def __init__(
        self,
        history_store: Optional[DeviceHistoryStore] = None,
        change_detector: Optional[FingerprintChangeDetector] = None,
        trust_scorer: Optional[DeviceTrustScorer] = None,
        lock_stripes: int = LOCK_STRIPES
    ):
        if lock_stripes < 1:
            raise ValueError("lock_stripes must be at least 1")
        self.history_store = history_store or InMemoryHistoryStore()
        self.change_detector = change_detector or FingerprintChangeDetector()
        self.trust_scorer = trust_scorer or DeviceTrustScorer()
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(lock_stripes)]

    def _user_lock(self, user_id: str) -> threading.Lock:
        return self._locks[hash(user_id) % len(self._locks)]

    def evaluate_device(self, fingerprint: DeviceFingerprint, user_id: str) -> DeviceEvaluation:
        """Score a sighting against the user's history and record it"""
        with self._user_lock(user_id):
            history = self.history_store.get_history(user_id)
            previous = history[-1] if history else None

            change_analysis = self.change_detector.analyze(fingerprint, previous)
            trust_score = self.trust_scorer.calculate(change_analysis, history)

            self.history_store.append(user_id, fingerprint)

        logger.info(
            "Device evaluated",
            user_id=user_id,
            device_id=fingerprint.device_id,
            first_sighting=previous is None,
            change_score=change_analysis.change_score,
            risk_level=change_analysis.risk_level,
            trust_score=trust_score
        )

        return DeviceEvaluation(
            trust_score=trust_score,
            change_analysis=change_analysis,
            first_sighting=previous is None
        )

    def detect_device_changes(self, fingerprint: DeviceFingerprint, user_id: str) -> ChangeAnalysisResult:
        return self.evaluate_device(fingerprint, user_id).change_analysis

    def calculate_device_trust_score(self, fingerprint: DeviceFingerprint, user_id: str) -> float:
        return self.evaluate_device(fingerprint, user_id).trust_score

    def is_device_trusted(self, fingerprint: DeviceFingerprint, user_id: str) -> bool:
        return self.trust_scorer.is_trusted(self.calculate_device_trust_score(fingerprint, user_id))

    def get_device_history(self, user_id: str) -> List[DeviceFingerprint]:
        return self.history_store.get_history(user_id)

    def clear_device_history(self, user_id: str) -> None:
        """Forget every stored fingerprint of a user (privacy reset)"""
        with self._user_lock(user_id):
            self.history_store.clear(user_id)
        logger.info("Device history reset", user_id=user_id)

    @staticmethod
    def validate_fingerprint(fingerprint: DeviceFingerprint) -> bool:
        """
        Check that the identity-bearing fields are populated.

        Validated models always pass; this guards instances built with
        model_construct() or model_copy(update=...), which skip validation.
        """
        return all(getattr(fingerprint, field) not in (None, '') for field in REQUIRED_IDENTITY_FIELDS)

    @staticmethod
    def compare_fingerprints(fp1: DeviceFingerprint, fp2: DeviceFingerprint) -> float:
        """Weighted similarity of two fingerprints, 1.0 meaning identical identity fields"""
        similarity = 0.0
        total_weight = 0.0

        for component, weight in SIMILARITY_WEIGHTS.items():
            read = COMPONENT_READERS[component]
            if read(fp1) == read(fp2):
                similarity += weight
            total_weight += weight

        return float(np.clip(similarity / total_weight, 0, 1))
