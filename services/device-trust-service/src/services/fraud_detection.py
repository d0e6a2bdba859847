from typing import Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np
from structlog import get_logger

from ..models.fraud_models import (
    FraudAction, FraudPattern, FraudPatternType, FraudPrediction, RiskFactor,
    RiskLevel, Transaction
)

logger = get_logger(__name__)

# Lower bounds, highest first
RISK_SCORE_THRESHOLDS: Tuple[Tuple[float, RiskLevel], ...] = (
    (0.85, RiskLevel.CRITICAL),
    (0.65, RiskLevel.HIGH),
    (0.35, RiskLevel.MEDIUM),
)
FRAUD_THRESHOLD = 0.7

# Jitter never carries a score across any of these edges
SCORE_BAND_EDGES = (0.0, 0.35, 0.65, 0.7, 0.85, 1.0)

HIGH_RISK_MERCHANTS = ('unknown', 'investment', 'lottery')
SCAM_MERCHANTS = ('investment', 'lottery')

RECOMMENDED_ACTIONS = {
    RiskLevel.CRITICAL: FraudAction.BLOCK_TRANSACTION,
    RiskLevel.HIGH: FraudAction.REQUIRE_ADDITIONAL_AUTH,
    RiskLevel.MEDIUM: FraudAction.MONITOR_CLOSELY,
    RiskLevel.LOW: FraudAction.ALLOW,
}

SUPPORTED_PATTERNS = [pattern.value for pattern in FraudPatternType]


def determine_risk_level(score: float) -> RiskLevel:
    """Determine risk level from score"""
    for lower_bound, level in RISK_SCORE_THRESHOLDS:
        if score >= lower_bound:
            return level
    return RiskLevel.LOW


def calculate_confidence(risk_score: float, factor_count: int) -> float:
    """Higher for extreme scores and for more corroborating factors"""
    score_confidence = abs(risk_score - 0.5) * 2
    factor_confidence = min(factor_count / 5, 1)
    return float(np.clip((score_confidence + factor_confidence) / 2, 0, 1))


def _is_very_late_night(hour: int) -> bool:
    return 1 <= hour <= 4


def _is_off_hours(hour: int) -> bool:
    return hour >= 23 or hour <= 5


def _location_changed(transaction: Transaction) -> bool:
    profile = transaction.user_profile
    if transaction.location is None or profile is None or profile.last_known_location is None:
        return False
    return transaction.location != profile.last_known_location


def _is_new_device(transaction: Transaction) -> bool:
    return transaction.device_fingerprint is not None and transaction.device_fingerprint.is_new_device


def _agent_trust(transaction: Transaction) -> Optional[float]:
    return transaction.agent_info.trust_score if transaction.agent_info else None


def _merchant(transaction: Transaction) -> Optional[str]:
    return transaction.merchant_category.lower() if transaction.merchant_category else None


class TransactionRiskScorer:
    """
    Weighted-rule transaction scoring with fraud typology matching.

    Each triggered rule adds its weight; the sum is capped at 1.0. Typology
    matchers run independently of the score and carry fixed confidences.
    Jitter is applied only when a numpy Generator is injected.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None, jitter_amplitude: float = 0.05):
        self.rng = rng
        self.jitter_amplitude = jitter_amplitude

        # Initialize fraud rules
        self.fraud_rules = self._initialize_fraud_rules()
        self._rule_checks: Dict[str, Callable[[Transaction, Dict], Optional[RiskFactor]]] = {
            'amount': self._check_amount,
            'time_of_day': self._check_time_of_day,
            'new_device': self._check_new_device,
            'low_device_trust': self._check_device_trust,
            'low_agent_trust': self._check_agent_trust,
            'location_change': self._check_location_change,
            'unknown_location': self._check_unknown_location,
            'pin_attempts': self._check_pin_attempts,
            'high_risk_merchant': self._check_merchant_category,
        }

    def _initialize_fraud_rules(self) -> Dict[str, Dict]:
        """Initialize rule-based fraud detection rules"""
        return {
            'amount': {
                'name': 'AMOUNT',
                'description': 'Large and very large transfer amounts',
                'large_threshold': 1000,
                'large_weight': 0.3,
                'very_large_threshold': 2000,
                'very_large_weight': 0.5,
                'enabled': True
            },
            'time_of_day': {
                'name': 'TIME_OF_DAY',
                'description': 'Late night and very late night activity',
                'late_night_weight': 0.2,
                'very_late_night_weight': 0.3,
                'enabled': True
            },
            'new_device': {
                'name': 'NEW_DEVICE',
                'description': 'Transaction from a device not seen before',
                'weight': 0.4,
                'enabled': True
            },
            'low_device_trust': {
                'name': 'LOW_DEVICE_TRUST',
                'description': 'Device trust score below threshold',
                'threshold': 0.3,
                'weight': 0.3,
                'enabled': True
            },
            'low_agent_trust': {
                'name': 'LOW_AGENT_TRUST',
                'description': 'Agent trust score below threshold',
                'threshold': 0.3,
                'weight': 0.4,
                'enabled': True
            },
            'location_change': {
                'name': 'LOCATION_CHANGE',
                'description': 'Location differs from last known location',
                'weight': 0.3,
                'enabled': True
            },
            'unknown_location': {
                'name': 'UNKNOWN_LOCATION',
                'description': 'Location could not be resolved',
                'weight': 0.2,
                'enabled': True
            },
            'pin_attempts': {
                'name': 'PIN_ATTEMPTS',
                'description': 'Repeated PIN entry',
                'threshold': 2,
                'weight': 0.4,
                'enabled': True
            },
            'high_risk_merchant': {
                'name': 'HIGH_RISK_MERCHANT',
                'description': 'Merchant category associated with scams',
                'categories': HIGH_RISK_MERCHANTS,
                'weight': 0.3,
                'enabled': True
            }
        }

    def predict_fraud(self, transaction: Transaction) -> FraudPrediction:
        """Score a transaction and match it against known fraud typologies"""
        risk_factors = self._execute_fraud_rules(transaction)
        detected_patterns = self.detect_fraud_patterns(transaction)

        risk_score = self._calculate_final_score(risk_factors)
        risk_score = self._apply_jitter(risk_score)

        risk_level = determine_risk_level(risk_score)
        prediction = FraudPrediction(
            transaction_id=transaction.id,
            risk_score=risk_score,
            risk_level=risk_level,
            is_fraudulent=risk_score >= FRAUD_THRESHOLD,
            confidence=calculate_confidence(risk_score, len(risk_factors)),
            risk_factors=risk_factors,
            detected_patterns=detected_patterns,
            recommended_action=RECOMMENDED_ACTIONS[risk_level],
            explanation=self._generate_explanation(risk_score, risk_factors, detected_patterns)
        )

        logger.info(
            "Fraud prediction completed",
            transaction_id=transaction.id,
            score=risk_score,
            risk_level=risk_level,
            patterns=[p.type.value for p in detected_patterns],
            action=prediction.recommended_action
        )

        if risk_level in [RiskLevel.HIGH, RiskLevel.CRITICAL]:
            self._send_fraud_alert(prediction)

        return prediction

    def predict_fraud_batch(self, transactions: Iterable[Transaction]) -> List[FraudPrediction]:
        return [self.predict_fraud(transaction) for transaction in transactions]

    def _execute_fraud_rules(self, transaction: Transaction) -> List[RiskFactor]:
        """Execute all enabled fraud detection rules"""
        factors = []

        for rule_name, rule_config in self.fraud_rules.items():
            if not rule_config['enabled']:
                continue

            factor = self._rule_checks[rule_name](transaction, rule_config)
            if factor is not None:
                factors.append(factor)

        return factors

    def _check_amount(self, transaction: Transaction, rule_config: Dict) -> Optional[RiskFactor]:
        if transaction.amount > rule_config['very_large_threshold']:
            return RiskFactor(
                label='Very large amount',
                impact=rule_config['very_large_weight'],
                explanation=f"Very large amount: {transaction.amount} {transaction.currency}"
            )
        if transaction.amount > rule_config['large_threshold']:
            return RiskFactor(
                label='Large amount',
                impact=rule_config['large_weight'],
                explanation=f"Large amount: {transaction.amount} {transaction.currency}"
            )
        return None

    def _check_time_of_day(self, transaction: Transaction, rule_config: Dict) -> Optional[RiskFactor]:
        hour = transaction.timestamp.hour
        if _is_very_late_night(hour):
            return RiskFactor(
                label='Very late night transaction',
                impact=rule_config['very_late_night_weight'],
                explanation=f"Very late night transaction ({hour}:00)"
            )
        if _is_off_hours(hour):
            return RiskFactor(
                label='Late night transaction',
                impact=rule_config['late_night_weight'],
                explanation=f"Late night transaction ({hour}:00)"
            )
        return None

    def _check_new_device(self, transaction: Transaction, rule_config: Dict) -> Optional[RiskFactor]:
        if not _is_new_device(transaction):
            return None
        return RiskFactor(
            label='New device',
            impact=rule_config['weight'],
            explanation='New/unknown device'
        )

    def _check_device_trust(self, transaction: Transaction, rule_config: Dict) -> Optional[RiskFactor]:
        device = transaction.device_fingerprint
        if device is None or device.trust_score is None or device.trust_score >= rule_config['threshold']:
            return None
        return RiskFactor(
            label='Low device trust',
            impact=rule_config['weight'],
            explanation=f"Low device trust score: {device.trust_score * 100:.1f}%"
        )

    def _check_agent_trust(self, transaction: Transaction, rule_config: Dict) -> Optional[RiskFactor]:
        agent_trust = _agent_trust(transaction)
        if agent_trust is None or agent_trust >= rule_config['threshold']:
            return None
        return RiskFactor(
            label='Low agent trust',
            impact=rule_config['weight'],
            explanation=f"Low agent trust score: {agent_trust * 100:.1f}%"
        )

    def _check_location_change(self, transaction: Transaction, rule_config: Dict) -> Optional[RiskFactor]:
        if not _location_changed(transaction):
            return None
        return RiskFactor(
            label='Location change',
            impact=rule_config['weight'],
            explanation=(
                f"Location change detected: {transaction.user_profile.last_known_location} "
                f"-> {transaction.location}"
            )
        )

    def _check_unknown_location(self, transaction: Transaction, rule_config: Dict) -> Optional[RiskFactor]:
        if not transaction.location or 'unknown' not in transaction.location.lower():
            return None
        return RiskFactor(
            label='Unknown location',
            impact=rule_config['weight'],
            explanation='Unknown location'
        )

    def _check_pin_attempts(self, transaction: Transaction, rule_config: Dict) -> Optional[RiskFactor]:
        if transaction.pin_attempts <= rule_config['threshold']:
            return None
        return RiskFactor(
            label='Multiple PIN attempts',
            impact=rule_config['weight'],
            explanation=f"Multiple PIN attempts: {transaction.pin_attempts}"
        )

    def _check_merchant_category(self, transaction: Transaction, rule_config: Dict) -> Optional[RiskFactor]:
        merchant = _merchant(transaction)
        if merchant not in rule_config['categories']:
            return None
        return RiskFactor(
            label='High-risk merchant category',
            impact=rule_config['weight'],
            explanation=f"High-risk merchant category: {merchant}"
        )

    def detect_fraud_patterns(self, transaction: Transaction) -> List[FraudPattern]:
        """Match the transaction against the fraud typologies"""
        patterns = []
        hour = transaction.timestamp.hour
        new_device = _is_new_device(transaction)
        merchant = _merchant(transaction)
        agent_trust = _agent_trust(transaction)

        if new_device and _location_changed(transaction) and transaction.amount > 500:
            patterns.append(FraudPattern(
                type=FraudPatternType.SIM_SWAP,
                confidence=0.85,
                description='Potential SIM swap fraud detected',
                indicators=['New device', 'Location change', 'High amount']
            ))

        if _is_off_hours(hour) and transaction.amount > 200 and merchant == 'unknown':
            patterns.append(FraudPattern(
                type=FraudPatternType.SOCIAL_ENGINEERING,
                confidence=0.75,
                description='Potential social engineering attack',
                indicators=['Off-hours transaction', 'Unknown merchant', 'Moderate amount']
            ))

        if merchant in SCAM_MERCHANTS:
            patterns.append(FraudPattern(
                type=FraudPatternType.INVESTMENT_SCAM,
                confidence=0.70,
                description='Potential investment/lottery scam',
                indicators=['High-risk merchant category']
            ))

        if agent_trust is not None and agent_trust < 0.3 and _is_off_hours(hour):
            patterns.append(FraudPattern(
                type=FraudPatternType.AGENT_FRAUD,
                confidence=0.80,
                description='Potential agent fraud',
                indicators=['Low agent trust', 'Off-hours transaction']
            ))

        if transaction.pin_attempts > 2 and new_device:
            patterns.append(FraudPattern(
                type=FraudPatternType.ACCOUNT_TAKEOVER,
                confidence=0.90,
                description='Potential account takeover',
                indicators=['Multiple PIN attempts', 'New device']
            ))

        return patterns

    def _calculate_final_score(self, risk_factors: List[RiskFactor]) -> float:
        """Sum triggered rule weights, capped to [0, 1]"""
        score = sum(factor.impact for factor in risk_factors)
        # Weights are tenths; rounding keeps 0.3 + 0.4 on the 0.7 boundary
        return round(float(np.clip(score, 0, 1)), 4)

    def _apply_jitter(self, score: float) -> float:
        """Perturb the score within its classification band"""
        if self.rng is None or self.jitter_amplitude <= 0:
            return score

        jittered = score + self.rng.uniform(-self.jitter_amplitude, self.jitter_amplitude)

        lower = max(edge for edge in SCORE_BAND_EDGES[:-1] if edge <= score)
        upper_edges = [edge for edge in SCORE_BAND_EDGES[1:-1] if edge > score]
        upper = np.nextafter(min(upper_edges), 0.0) if upper_edges else 1.0

        return float(np.clip(jittered, lower, upper))

    def _generate_explanation(
        self,
        risk_score: float,
        risk_factors: List[RiskFactor],
        patterns: List[FraudPattern]
    ) -> str:
        """Generate human-readable prediction explanation"""
        reasons = [f"Risk assessment: {risk_score * 100:.1f}% fraud probability"]

        if risk_factors:
            reasons.append(f"Risk factors: {', '.join(f.explanation for f in risk_factors)}")

        if patterns:
            reasons.append("Fraud patterns: " + ", ".join(
                f"{p.description} ({p.confidence * 100:.1f}% confidence)" for p in patterns
            ))

        if not risk_factors and not patterns:
            reasons.append("No significant risk factors detected. Transaction appears normal.")

        return "; ".join(reasons)

    def get_model_metrics(self) -> Dict:
        return {
            'model_type': 'Rule-based with Pattern Detection',
            'is_training': False,
            'deterministic': self.rng is None,
            'rules': [config['name'] for config in self.fraud_rules.values() if config['enabled']],
            'supported_patterns': SUPPORTED_PATTERNS
        }

    def _send_fraud_alert(self, prediction: FraudPrediction):
        """Emit a high-risk alert to the monitoring log stream"""
        logger.warning(
            "High-risk fraud alert",
            transaction_id=prediction.transaction_id,
            score=prediction.risk_score,
            risk_level=prediction.risk_level,
            patterns=[p.type.value for p in prediction.detected_patterns]
        )
