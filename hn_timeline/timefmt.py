import time
from typing import Optional


def get_relative_time(timestamp: int, now: Optional[float] = None) -> str:
    if not timestamp:
        return ""
    current = int(time.time() if now is None else now)
    diff: int = max(1, current - timestamp)
    if diff < 60:
        return "just now"
    elif diff < 3600:
        return f"{diff // 60}m ago"
    elif diff < 86400:
        return f"{diff // 3600}h ago"
    else:
        return f"{diff // 86400}d ago"
