from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel

from .fingerprint_models import RiskLevel


class TransactionType(str, Enum):
    SEND_MONEY = "send_money"
    CASH_OUT = "cash_out"
    BILL_PAYMENT = "bill_payment"
    AIRTIME = "airtime"
    MERCHANT_PAYMENT = "merchant_payment"


class FraudPatternType(str, Enum):
    SIM_SWAP = "SIM_SWAP"
    SOCIAL_ENGINEERING = "SOCIAL_ENGINEERING"
    INVESTMENT_SCAM = "INVESTMENT_SCAM"
    AGENT_FRAUD = "AGENT_FRAUD"
    ACCOUNT_TAKEOVER = "ACCOUNT_TAKEOVER"


class FraudAction(str, Enum):
    ALLOW = "ALLOW"
    MONITOR_CLOSELY = "MONITOR_CLOSELY"
    REQUIRE_ADDITIONAL_AUTH = "REQUIRE_ADDITIONAL_AUTH"
    REQUIRE_ADDITIONAL_VERIFICATION = "REQUIRE_ADDITIONAL_VERIFICATION"
    BLOCK_TRANSACTION = "BLOCK_TRANSACTION"


class _TransactionModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class AgentInfo(_TransactionModel):
    id: str
    trust_score: float = Field(ge=0, le=1)
    location: Optional[str] = None


class DeviceSnapshot(_TransactionModel):
    device_id: str
    is_new_device: bool
    trust_score: Optional[float] = Field(None, ge=0, le=1)


class UserProfile(_TransactionModel):
    user_id: str
    last_known_location: Optional[str] = None
    risk_profile: Optional[str] = None  # low | medium | high


class Transaction(_TransactionModel):
    id: str
    amount: float = Field(ge=0, description="Amount must be non-negative")
    currency: str = Field(min_length=3, max_length=3, description="ISO 4217 currency code")
    timestamp: datetime
    type: TransactionType
    description: Optional[str] = None
    location: Optional[str] = None
    merchant_category: Optional[str] = None
    agent_info: Optional[AgentInfo] = None
    device_fingerprint: Optional[DeviceSnapshot] = None
    user_profile: Optional[UserProfile] = None
    network_trust: Optional[float] = Field(None, ge=0, le=1)
    pin_attempts: StrictInt = Field(default=1, ge=1)


class RiskFactor(BaseModel):
    label: str
    impact: float = Field(ge=0, le=1)
    explanation: str


class FraudPattern(BaseModel):
    type: FraudPatternType
    confidence: float = Field(ge=0, le=1)
    description: str
    indicators: List[str] = Field(default_factory=list)


class FraudPrediction(BaseModel):
    transaction_id: str
    risk_score: float = Field(ge=0, le=1)
    risk_level: RiskLevel
    is_fraudulent: bool
    confidence: float = Field(ge=0, le=1)
    risk_factors: List[RiskFactor] = Field(default_factory=list)
    detected_patterns: List[FraudPattern] = Field(default_factory=list)
    recommended_action: FraudAction
    explanation: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RiskAssessment(BaseModel):
    transaction_id: str
    user_id: str
    risk_score: float = Field(ge=0, le=1)
    risk_level: RiskLevel
    is_fraudulent: bool
    confidence: float = Field(ge=0, le=1)
    trust_score: float = Field(ge=0, le=1)
    device_risk_level: RiskLevel
    risk_factors: List[RiskFactor] = Field(default_factory=list)
    detected_patterns: List[FraudPattern] = Field(default_factory=list)
    security_flags: List[str] = Field(default_factory=list)
    recommended_action: FraudAction
    explanation: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
