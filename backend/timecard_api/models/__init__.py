from .usage import DailyUsage

__all__ = [
    'DailyUsage',
]
