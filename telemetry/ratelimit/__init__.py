from .limiter import RateLimiter
from .state import AdmissionState, BanRecord, Decision, RateLimitPolicy

__all__ = ["RateLimiter", "AdmissionState", "BanRecord", "Decision", "RateLimitPolicy"]
