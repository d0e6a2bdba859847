from datetime import datetime, timezone
from typing import Any, Dict, List, Set
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from structlog import get_logger

from ..models.fingerprint_models import (
    AutomationAnalysis, AutomationIndicator, ComplexAnalysisResult, Component,
    DeviceFingerprint, SuspiciousPattern
)

logger = get_logger(__name__)

CORE_COMPONENTS = (
    Component.DEVICE_ID, Component.USER_AGENT, Component.CANVAS,
    Component.WEBGL, Component.PLATFORM
)
GRAPHICS_COMPONENTS = (Component.CANVAS, Component.WEBGL, Component.AUDIO_CONTEXT)
HARDWARE_COMPONENTS = (
    Component.SCREEN_RESOLUTION, Component.HARDWARE_CONCURRENCY, Component.DEVICE_MEMORY
)

AUTOMATION_USER_AGENTS = ("HeadlessChrome", "PhantomJS")
AUTOMATION_THRESHOLD = 0.7
RAPID_LOCATION_HOURS = 6


def timezone_distance_hours(tz1: str, tz2: str, at: datetime) -> float:
    """Absolute UTC offset difference in hours between two IANA zones at a given instant"""
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    try:
        offset1 = at.astimezone(ZoneInfo(tz1)).utcoffset()
        offset2 = at.astimezone(ZoneInfo(tz2)).utcoffset()
    except (ZoneInfoNotFoundError, ValueError, OverflowError) as e:
        # Unknown zones and instants at the edge of the datetime range have no comparable offset
        logger.debug("Unresolvable timezone", tz1=tz1, tz2=tz2, error=str(e))
        return 0.0
    return abs((offset1 - offset2).total_seconds()) / 3600


class ComplexPatternAnalyzer:
    """
    Detects composite adversarial signatures across a pair of fingerprints.

    Every rule is evaluated independently and the risks add up. Spoofing
    (deviceId changed) and impossible hardware (deviceId unchanged) rarely
    co-occur but both may fire when unrelated attacks coincide.
    """

    def analyze(
        self,
        current: DeviceFingerprint,
        previous: DeviceFingerprint,
        changed: Set[Component]
    ) -> ComplexAnalysisResult:
        suspicious_patterns: List[SuspiciousPattern] = []
        additional_risk = 0
        analysis: Dict[str, Any] = {}

        core_changes = [c for c in CORE_COMPONENTS if c in changed]
        if len(core_changes) >= 4:
            suspicious_patterns.append(SuspiciousPattern.COMPLETE_DEVICE_SPOOFING)
            additional_risk += 50
            analysis['device_spoofing'] = {
                'changed_core_components': len(core_changes),
                'risk': 'CRITICAL'
            }

        graphics_changes = [c for c in GRAPHICS_COMPONENTS if c in changed]
        if len(graphics_changes) >= 2 and Component.USER_AGENT not in changed:
            suspicious_patterns.append(SuspiciousPattern.FINGERPRINT_MANIPULATION)
            additional_risk += 25
            analysis['fingerprint_manipulation'] = {
                'manipulated_components': [c.value for c in graphics_changes],
                'risk': 'HIGH'
            }

        hardware_changes = [c for c in HARDWARE_COMPONENTS if c in changed]
        if len(hardware_changes) >= 2 and Component.DEVICE_ID not in changed:
            suspicious_patterns.append(SuspiciousPattern.IMPOSSIBLE_HARDWARE_CHANGE)
            additional_risk += 30
            analysis['impossible_hardware'] = {
                'changed_hardware': [c.value for c in hardware_changes],
                'risk': 'HIGH'
            }

        if Component.TIMEZONE in changed and Component.IP_ADDRESS in changed:
            distance = timezone_distance_hours(current.timezone, previous.timezone, current.captured_at)
            if distance > RAPID_LOCATION_HOURS:
                suspicious_patterns.append(SuspiciousPattern.RAPID_LOCATION_CHANGE)
                additional_risk += 20
                analysis['rapid_location'] = {
                    'timezone_distance': distance,
                    'risk': 'MEDIUM'
                }

        automation = self.detect_automation(current)
        if automation.score >= AUTOMATION_THRESHOLD:
            suspicious_patterns.append(SuspiciousPattern.AUTOMATION_DETECTED)
            additional_risk += 15
            analysis['automation'] = automation.model_dump(mode="json")

        return ComplexAnalysisResult(
            additional_risk=additional_risk,
            suspicious_patterns=suspicious_patterns,
            analysis=analysis
        )

    def detect_automation(self, fingerprint: DeviceFingerprint) -> AutomationAnalysis:
        """Score bot and headless-browser indicators of a single fingerprint"""
        indicators: List[AutomationIndicator] = []
        score = 0.0

        if fingerprint.webgl == 'no-webgl' and 'canvas-error' in fingerprint.canvas:
            indicators.append(AutomationIndicator.HEADLESS_BROWSER)
            score += 0.3

        if len(fingerprint.plugins) == 0 and len(fingerprint.fonts) < 5:
            indicators.append(AutomationIndicator.MINIMAL_ENVIRONMENT)
            score += 0.2

        if (fingerprint.max_touch_points == 0 and not fingerprint.touch_support
                and 'Mobile' in fingerprint.user_agent):
            indicators.append(AutomationIndicator.INCONSISTENT_MOBILE)
            score += 0.3

        if any(marker in fingerprint.user_agent for marker in AUTOMATION_USER_AGENTS):
            indicators.append(AutomationIndicator.AUTOMATION_USER_AGENT)
            score += 0.5

        # Sums of tenths drift below the threshold in binary floating point
        return AutomationAnalysis(score=round(score, 4), indicators=indicators)
