from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Component(str, Enum):
    """Fingerprint components tracked for change detection"""
    DEVICE_ID = "deviceId"
    USER_AGENT = "userAgent"
    SCREEN_RESOLUTION = "screenResolution"
    CANVAS = "canvas"
    WEBGL = "webgl"
    IP_ADDRESS = "ipAddress"
    TIMEZONE = "timezone"
    LANGUAGE = "language"
    PLATFORM = "platform"
    HARDWARE_CONCURRENCY = "hardwareConcurrency"
    DEVICE_MEMORY = "deviceMemory"
    PLUGINS = "plugins"
    FONTS = "fonts"
    AUDIO_CONTEXT = "audioContext"
    WEBRTC = "webRTC"
    BATTERY = "battery"


class SuspiciousPattern(str, Enum):
    COMPLETE_DEVICE_SPOOFING = "COMPLETE_DEVICE_SPOOFING"
    FINGERPRINT_MANIPULATION = "FINGERPRINT_MANIPULATION"
    IMPOSSIBLE_HARDWARE_CHANGE = "IMPOSSIBLE_HARDWARE_CHANGE"
    RAPID_LOCATION_CHANGE = "RAPID_LOCATION_CHANGE"
    AUTOMATION_DETECTED = "AUTOMATION_DETECTED"


class AutomationIndicator(str, Enum):
    HEADLESS_BROWSER = "HEADLESS_BROWSER"
    MINIMAL_ENVIRONMENT = "MINIMAL_ENVIRONMENT"
    INCONSISTENT_MOBILE = "INCONSISTENT_MOBILE"
    AUTOMATION_USER_AGENT = "AUTOMATION_USER_AGENT"


class _CollectorModel(BaseModel):
    # Browser collectors send camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class BatteryInfo(_CollectorModel):
    charging: bool
    level: float = Field(ge=0, le=1)
    charging_time: Optional[float] = None
    discharging_time: Optional[float] = None


class DeviceFingerprint(_CollectorModel):
    device_id: str = Field(min_length=1)
    user_agent: str = Field(min_length=1)
    screen_resolution: str = Field(min_length=1)
    color_depth: int = Field(ge=0)
    timezone: str = Field(min_length=1)
    language: str = Field(min_length=1)
    languages: List[str]
    platform: str = Field(min_length=1)
    cookie_enabled: bool
    do_not_track: Optional[str] = None
    ip_address: str = Field(min_length=1)
    network_type: str
    hardware_concurrency: int = Field(ge=0)
    max_touch_points: int = Field(ge=0)
    canvas: str = Field(min_length=1)
    webgl: str = Field(min_length=1)
    fonts: List[str]
    plugins: List[str]
    local_storage: bool
    session_storage: bool
    indexed_db: bool = Field(alias="indexedDB")
    cpu_class: Optional[str] = None
    device_memory: Optional[float] = Field(None, ge=0)
    pixel_ratio: float = Field(gt=0)
    touch_support: bool
    audio_context: str
    webrtc: str = Field(alias="webRTC")
    battery: Optional[BatteryInfo] = None
    captured_at: datetime


class ComponentChange(BaseModel):
    previous: Any = None
    current: Any = None
    weight: int


class AutomationAnalysis(BaseModel):
    score: float = 0.0
    indicators: List[AutomationIndicator] = Field(default_factory=list)


class ComplexAnalysisResult(BaseModel):
    additional_risk: int = Field(default=0, ge=0)
    suspicious_patterns: List[SuspiciousPattern] = Field(default_factory=list)
    analysis: Dict[str, Any] = Field(default_factory=dict)


class ChangeAnalysisResult(BaseModel):
    has_significant_changes: bool
    change_score: int = Field(ge=0)
    changed_components: List[Component] = Field(default_factory=list)
    risk_level: RiskLevel
    details: Dict[str, ComponentChange] = Field(default_factory=dict)
    complex_analysis: Optional[ComplexAnalysisResult] = None
    reason: Optional[str] = None

    @property
    def suspicious_patterns(self) -> List[SuspiciousPattern]:
        if self.complex_analysis is None:
            return []
        return self.complex_analysis.suspicious_patterns


class DeviceAnalysisReport(BaseModel):
    user_id: str
    trust_score: float = Field(ge=0, le=1)
    risk_level: RiskLevel
    change_analysis: ChangeAnalysisResult
    recommendations: List[str] = Field(default_factory=list)
    security_flags: List[str] = Field(default_factory=list)
