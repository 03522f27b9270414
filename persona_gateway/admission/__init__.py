from .rate_limiter import AdmissionDecision, AdmissionResult, RateLimiter, minute_of_day

__all__ = ["AdmissionDecision", "AdmissionResult", "RateLimiter", "minute_of_day"]
