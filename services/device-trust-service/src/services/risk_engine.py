from typing import Iterable, List, Optional

import numpy as np
import redis
from structlog import get_logger

from ..config import EngineSettings, get_settings
from ..models.fingerprint_models import ChangeAnalysisResult, DeviceAnalysisReport, DeviceFingerprint
from ..models.fraud_models import FraudPrediction, RiskAssessment, Transaction
from .device_trust import DeviceFingerprintService, DeviceTrustScorer
from .fraud_detection import TransactionRiskScorer
from .history_store import DeviceHistoryStore, InMemoryHistoryStore, RedisHistoryStore
from .risk_report import RiskReportAssembler

logger = get_logger(__name__)


def build_history_store(settings: EngineSettings) -> DeviceHistoryStore:
    if settings.history_backend == "redis":
        return RedisHistoryStore(
            redis.Redis.from_url(settings.redis_url),
            max_history=settings.max_device_history,
            ttl_seconds=settings.history_ttl_seconds
        )
    return InMemoryHistoryStore(max_history=settings.max_device_history)


class FraudRiskEngine:
    """Public call surface combining device trust and transaction risk scoring"""

    def __init__(
        self,
        device_service: DeviceFingerprintService,
        transaction_scorer: TransactionRiskScorer,
        report_assembler: Optional[RiskReportAssembler] = None
    ):
        self.device_service = device_service
        self.transaction_scorer = transaction_scorer
        self.report_assembler = report_assembler or RiskReportAssembler()

    @classmethod
    def from_settings(
        cls,
        settings: Optional[EngineSettings] = None,
        history_store: Optional[DeviceHistoryStore] = None
    ) -> "FraudRiskEngine":
        settings = settings or get_settings()

        rng = np.random.default_rng(settings.jitter_seed) if settings.jitter_enabled else None
        device_service = DeviceFingerprintService(
            history_store=history_store or build_history_store(settings),
            trust_scorer=DeviceTrustScorer(trust_threshold=settings.trust_threshold)
        )

        logger.info(
            "Fraud risk engine initialized",
            history_backend=type(device_service.history_store).__name__,
            max_device_history=device_service.history_store.max_history,
            jitter_enabled=settings.jitter_enabled
        )

        return cls(
            device_service=device_service,
            transaction_scorer=TransactionRiskScorer(rng=rng, jitter_amplitude=settings.jitter_amplitude)
        )

    def detect_device_changes(self, fingerprint: DeviceFingerprint, user_id: str) -> ChangeAnalysisResult:
        return self.device_service.detect_device_changes(fingerprint, user_id)

    def calculate_device_trust_score(self, fingerprint: DeviceFingerprint, user_id: str) -> float:
        return self.device_service.calculate_device_trust_score(fingerprint, user_id)

    def is_device_trusted(self, fingerprint: DeviceFingerprint, user_id: str) -> bool:
        return self.device_service.is_device_trusted(fingerprint, user_id)

    def predict_fraud(self, transaction: Transaction) -> FraudPrediction:
        return self.transaction_scorer.predict_fraud(transaction)

    def predict_fraud_batch(self, transactions: Iterable[Transaction]) -> List[FraudPrediction]:
        return self.transaction_scorer.predict_fraud_batch(transactions)

    def generate_device_analysis_report(self, fingerprint: DeviceFingerprint, user_id: str) -> DeviceAnalysisReport:
        evaluation = self.device_service.evaluate_device(fingerprint, user_id)
        return self.report_assembler.build_device_report(user_id, evaluation)

    def assess(self, transaction: Transaction, fingerprint: DeviceFingerprint, user_id: str) -> RiskAssessment:
        """Score the device sighting and the transaction, then merge both verdicts"""
        evaluation = self.device_service.evaluate_device(fingerprint, user_id)
        prediction = self.transaction_scorer.predict_fraud(transaction)
        return self.report_assembler.assemble(user_id, evaluation, prediction)

    def get_device_history(self, user_id: str) -> List[DeviceFingerprint]:
        return self.device_service.get_device_history(user_id)

    def clear_device_history(self, user_id: str) -> None:
        self.device_service.clear_device_history(user_id)
