from enum import Enum
from operator import attrgetter
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from structlog import get_logger

from ..models.fingerprint_models import (
    ChangeAnalysisResult, Component, ComponentChange, DeviceFingerprint, RiskLevel
)
from .pattern_analysis import ComplexPatternAnalyzer

logger = get_logger(__name__)

SIGNIFICANT_CHANGE_SCORE = 30

# Lower bounds, highest first
CHANGE_SCORE_THRESHOLDS: Tuple[Tuple[int, RiskLevel], ...] = (
    (100, RiskLevel.CRITICAL),
    (60, RiskLevel.HIGH),
    (30, RiskLevel.MEDIUM),
)


class ComparisonRule(str, Enum):
    EXACT = "EXACT"
    SEQUENCE = "SEQUENCE"
    BATTERY = "BATTERY"
    SUBNET = "SUBNET"


class ComponentRule(NamedTuple):
    component: Component
    weight: int
    rule: ComparisonRule


COMPONENT_READERS: Dict[Component, Callable[[DeviceFingerprint], Any]] = {
    Component.DEVICE_ID: attrgetter("device_id"),
    Component.USER_AGENT: attrgetter("user_agent"),
    Component.SCREEN_RESOLUTION: attrgetter("screen_resolution"),
    Component.CANVAS: attrgetter("canvas"),
    Component.WEBGL: attrgetter("webgl"),
    Component.IP_ADDRESS: attrgetter("ip_address"),
    Component.TIMEZONE: attrgetter("timezone"),
    Component.LANGUAGE: attrgetter("language"),
    Component.PLATFORM: attrgetter("platform"),
    Component.HARDWARE_CONCURRENCY: attrgetter("hardware_concurrency"),
    Component.DEVICE_MEMORY: attrgetter("device_memory"),
    Component.PLUGINS: attrgetter("plugins"),
    Component.FONTS: attrgetter("fonts"),
    Component.AUDIO_CONTEXT: attrgetter("audio_context"),
    Component.WEBRTC: attrgetter("webrtc"),
    Component.BATTERY: attrgetter("battery"),
}

COMPONENT_RULES: Tuple[ComponentRule, ...] = (
    ComponentRule(Component.DEVICE_ID, 50, ComparisonRule.EXACT),             # complete device change
    ComponentRule(Component.USER_AGENT, 30, ComparisonRule.EXACT),            # browser/OS change
    ComponentRule(Component.SCREEN_RESOLUTION, 20, ComparisonRule.EXACT),
    ComponentRule(Component.CANVAS, 25, ComparisonRule.EXACT),
    ComponentRule(Component.WEBGL, 25, ComparisonRule.EXACT),                 # graphics hardware
    ComponentRule(Component.IP_ADDRESS, 15, ComparisonRule.SUBNET),
    ComponentRule(Component.TIMEZONE, 10, ComparisonRule.EXACT),
    ComponentRule(Component.LANGUAGE, 5, ComparisonRule.EXACT),
    ComponentRule(Component.PLATFORM, 35, ComparisonRule.EXACT),              # OS change
    ComponentRule(Component.HARDWARE_CONCURRENCY, 20, ComparisonRule.EXACT),
    ComponentRule(Component.DEVICE_MEMORY, 15, ComparisonRule.EXACT),
    ComponentRule(Component.PLUGINS, 10, ComparisonRule.SEQUENCE),
    ComponentRule(Component.FONTS, 8, ComparisonRule.SEQUENCE),
    ComponentRule(Component.AUDIO_CONTEXT, 15, ComparisonRule.EXACT),
    ComponentRule(Component.WEBRTC, 10, ComparisonRule.EXACT),
    ComponentRule(Component.BATTERY, 5, ComparisonRule.BATTERY),
)


def _sequence_changed(current: Any, previous: Any) -> bool:
    if current is None or previous is None:
        return True
    if len(current) != len(previous):
        return True
    return any(a != b for a, b in zip(current, previous))


def _battery_changed(current: Any, previous: Any) -> bool:
    # Level drift is ignored
    if current is None and previous is None:
        return False
    if current is None or previous is None:
        return True
    return current.charging != previous.charging


def _subnet(address: str) -> str:
    parts = address.split(".")
    if len(parts) != 4:
        return address
    return ".".join(parts[:3])


def _subnet_changed(current: Any, previous: Any) -> bool:
    if not current or not previous:
        return True
    return _subnet(current) != _subnet(previous)


def _exact_changed(current: Any, previous: Any) -> bool:
    return current != previous


_COMPARATORS: Dict[ComparisonRule, Callable[[Any, Any], bool]] = {
    ComparisonRule.EXACT: _exact_changed,
    ComparisonRule.SEQUENCE: _sequence_changed,
    ComparisonRule.BATTERY: _battery_changed,
    ComparisonRule.SUBNET: _subnet_changed,
}


def has_component_changed(current: Any, previous: Any, rule: ComparisonRule) -> bool:
    """Apply the comparison rule of a component to its two values"""
    return _COMPARATORS[rule](current, previous)


def classify_change_score(change_score: int) -> RiskLevel:
    """Map a change score onto a risk level"""
    for lower_bound, level in CHANGE_SCORE_THRESHOLDS:
        if change_score >= lower_bound:
            return level
    return RiskLevel.LOW


def mask_value(value: Any) -> Any:
    """Mask the host part of IPv4 addresses before they leave the engine"""
    if isinstance(value, str) and "." in value:
        parts = value.split(".")
        if len(parts) == 4 and all(part.isdigit() for part in parts):
            return ".".join(parts[:2]) + ".xxx.xxx"
    if hasattr(value, "model_dump"):
        return value.model_dump()
    return value


class FingerprintChangeDetector:
    def __init__(self, pattern_analyzer: Optional[ComplexPatternAnalyzer] = None):
        self.pattern_analyzer = pattern_analyzer or ComplexPatternAnalyzer()

    def analyze(self, current: DeviceFingerprint, previous: Optional[DeviceFingerprint]) -> ChangeAnalysisResult:
        """Compare a fingerprint against the previous one for the same user"""
        if previous is None:
            return ChangeAnalysisResult(
                has_significant_changes=False,
                change_score=0,
                changed_components=[],
                risk_level=RiskLevel.LOW,
                reason="First device registration"
            )

        changes: List[Component] = []
        details: Dict[str, ComponentChange] = {}
        change_score = 0

        for entry in COMPONENT_RULES:
            read = COMPONENT_READERS[entry.component]
            current_value = read(current)
            previous_value = read(previous)

            if has_component_changed(current_value, previous_value, entry.rule):
                changes.append(entry.component)
                change_score += entry.weight
                details[entry.component.value] = ComponentChange(
                    previous=mask_value(previous_value),
                    current=mask_value(current_value),
                    weight=entry.weight
                )

        complex_analysis = self.pattern_analyzer.analyze(current, previous, set(changes))
        change_score += complex_analysis.additional_risk

        risk_level = classify_change_score(change_score)

        logger.debug(
            "Fingerprint change analysis",
            device_id=current.device_id,
            change_score=change_score,
            changed_components=[c.value for c in changes],
            suspicious_patterns=[p.value for p in complex_analysis.suspicious_patterns],
            risk_level=risk_level
        )

        return ChangeAnalysisResult(
            has_significant_changes=change_score >= SIGNIFICANT_CHANGE_SCORE,
            change_score=change_score,
            changed_components=changes,
            risk_level=risk_level,
            details=details,
            complex_analysis=complex_analysis
        )
