from typing import List, Tuple

from structlog import get_logger

from ..models.fingerprint_models import DeviceAnalysisReport, RiskLevel, SuspiciousPattern
from ..models.fraud_models import FraudAction, FraudPrediction, RiskAssessment
from .device_trust import DeviceEvaluation
from .fraud_detection import FRAUD_THRESHOLD, calculate_confidence, determine_risk_level

logger = get_logger(__name__)

UNTRUSTED_BELOW = 0.3
SUSPICIOUS_BELOW = 0.7


def _device_recommendations(evaluation: DeviceEvaluation) -> Tuple[List[str], List[str]]:
    recommendations: List[str] = []
    security_flags: List[str] = []
    change_analysis = evaluation.change_analysis

    if evaluation.trust_score < UNTRUSTED_BELOW:
        recommendations.append(FraudAction.BLOCK_TRANSACTION.value)
        security_flags.append('UNTRUSTED_DEVICE')
    elif evaluation.trust_score < SUSPICIOUS_BELOW:
        recommendations.append(FraudAction.REQUIRE_ADDITIONAL_VERIFICATION.value)
        security_flags.append('SUSPICIOUS_DEVICE')

    if change_analysis.risk_level == RiskLevel.CRITICAL:
        recommendations.append('IMMEDIATE_SECURITY_REVIEW')
        security_flags.append('CRITICAL_DEVICE_CHANGES')

    if SuspiciousPattern.AUTOMATION_DETECTED in change_analysis.suspicious_patterns:
        recommendations.append('BOT_DETECTION_ALERT')
        security_flags.append('AUTOMATION_SUSPECTED')

    return recommendations, security_flags


class RiskReportAssembler:
    """
    Turns device evaluations and transaction predictions into final verdicts.

    The combined confidence is recomputed on the merged score, with device
    flags and patterns counted as corroborating factors. Explanations are
    built from the triggered factor labels and pattern names only.
    """

    def build_device_report(self, user_id: str, evaluation: DeviceEvaluation) -> DeviceAnalysisReport:
        recommendations, security_flags = _device_recommendations(evaluation)
        return DeviceAnalysisReport(
            user_id=user_id,
            trust_score=evaluation.trust_score,
            risk_level=evaluation.change_analysis.risk_level,
            change_analysis=evaluation.change_analysis,
            recommendations=recommendations,
            security_flags=security_flags
        )

    def assemble(self, user_id: str, evaluation: DeviceEvaluation, prediction: FraudPrediction) -> RiskAssessment:
        """Merge device trust and transaction risk into one assessment"""
        trust_score = evaluation.trust_score
        change_analysis = evaluation.change_analysis

        # A first sighting has neutral trust and carries no device risk
        device_risk = 0.0 if evaluation.first_sighting else 1.0 - trust_score
        risk_score = max(prediction.risk_score, device_risk)

        if evaluation.first_sighting:
            security_flags = []
        else:
            _, security_flags = _device_recommendations(evaluation)
        security_flags.extend(p.value for p in change_analysis.suspicious_patterns)

        action = self._recommend(evaluation, prediction)
        assessment = RiskAssessment(
            transaction_id=prediction.transaction_id,
            user_id=user_id,
            risk_score=risk_score,
            risk_level=determine_risk_level(risk_score),
            is_fraudulent=risk_score >= FRAUD_THRESHOLD,
            confidence=calculate_confidence(risk_score, len(prediction.risk_factors) + len(security_flags)),
            trust_score=trust_score,
            device_risk_level=change_analysis.risk_level,
            risk_factors=prediction.risk_factors,
            detected_patterns=prediction.detected_patterns,
            security_flags=security_flags,
            recommended_action=action,
            explanation=self._explain(evaluation, prediction)
        )

        logger.info(
            "Risk assessment assembled",
            user_id=user_id,
            transaction_id=prediction.transaction_id,
            score=assessment.risk_score,
            risk_level=assessment.risk_level,
            trust_score=trust_score,
            action=action
        )
        return assessment

    def _recommend(self, evaluation: DeviceEvaluation, prediction: FraudPrediction) -> FraudAction:
        trust_known = not evaluation.first_sighting
        trust_score = evaluation.trust_score

        if (trust_known and trust_score < UNTRUSTED_BELOW) or prediction.risk_level == RiskLevel.CRITICAL:
            return FraudAction.BLOCK_TRANSACTION
        if (trust_known and trust_score < SUSPICIOUS_BELOW) or prediction.risk_level == RiskLevel.HIGH:
            return FraudAction.REQUIRE_ADDITIONAL_VERIFICATION
        if (prediction.risk_level == RiskLevel.MEDIUM
                or evaluation.change_analysis.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)):
            return FraudAction.MONITOR_CLOSELY
        return FraudAction.ALLOW

    def _explain(self, evaluation: DeviceEvaluation, prediction: FraudPrediction) -> str:
        change_analysis = evaluation.change_analysis
        parts = []

        if prediction.risk_factors:
            parts.append("Risk factors: " + ", ".join(f.label for f in prediction.risk_factors))
        if prediction.detected_patterns:
            parts.append("Fraud patterns: " + ", ".join(p.type.value for p in prediction.detected_patterns))
        if change_analysis.changed_components:
            parts.append("Changed device components: " + ", ".join(
                c.value for c in change_analysis.changed_components
            ))
        if change_analysis.suspicious_patterns:
            parts.append("Device patterns: " + ", ".join(p.value for p in change_analysis.suspicious_patterns))
        if evaluation.first_sighting:
            parts.append("First device registration")

        if not parts:
            return "No risk factors or fraud patterns detected"
        return "; ".join(parts)
