"""Monthly query metering."""

from zenio.usage.meter import UNLIMITED, QuotaExceededError, UsageMeter, usage_info

__all__ = ["UNLIMITED", "QuotaExceededError", "UsageMeter", "usage_info"]
