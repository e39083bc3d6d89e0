from .countdown import CountdownTicker, format_time

__all__ = ["CountdownTicker", "format_time"]
