from .change_detection import FingerprintChangeDetector, classify_change_score
from .device_trust import DeviceEvaluation, DeviceFingerprintService, DeviceTrustScorer
from .fraud_detection import TransactionRiskScorer, calculate_confidence, determine_risk_level
from .history_store import MAX_HISTORY, DeviceHistoryStore, InMemoryHistoryStore, RedisHistoryStore
from .pattern_analysis import ComplexPatternAnalyzer
from .risk_engine import FraudRiskEngine
from .risk_report import RiskReportAssembler

__all__ = [
    "ComplexPatternAnalyzer", "DeviceEvaluation", "DeviceFingerprintService",
    "DeviceHistoryStore", "DeviceTrustScorer", "FingerprintChangeDetector",
    "FraudRiskEngine", "InMemoryHistoryStore", "MAX_HISTORY", "RedisHistoryStore",
    "RiskReportAssembler", "TransactionRiskScorer", "calculate_confidence",
    "classify_change_score", "determine_risk_level",
]
