from .fingerprint_models import (
    AutomationAnalysis, AutomationIndicator, BatteryInfo, ChangeAnalysisResult,
    ComplexAnalysisResult, Component, ComponentChange, DeviceAnalysisReport,
    DeviceFingerprint, RiskLevel, SuspiciousPattern
)
from .fraud_models import (
    AgentInfo, DeviceSnapshot, FraudAction, FraudPattern, FraudPatternType,
    FraudPrediction, RiskAssessment, RiskFactor, Transaction, TransactionType,
    UserProfile
)

__all__ = [
    "AgentInfo", "AutomationAnalysis", "AutomationIndicator", "BatteryInfo",
    "ChangeAnalysisResult", "ComplexAnalysisResult", "Component", "ComponentChange",
    "DeviceAnalysisReport", "DeviceFingerprint", "DeviceSnapshot", "FraudAction",
    "FraudPattern", "FraudPatternType", "FraudPrediction", "RiskAssessment",
    "RiskFactor", "RiskLevel", "SuspiciousPattern", "Transaction", "TransactionType",
    "UserProfile",
]
