"""Device trust and transaction fraud risk scoring engine."""
from .config import EngineSettings, get_settings
from .logging_config import configure_logging
from .services import FraudRiskEngine

__all__ = ["EngineSettings", "FraudRiskEngine", "configure_logging", "get_settings"]
