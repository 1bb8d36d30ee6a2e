
from __future__ import annotations

def calc_next_delay(attempt: int, base_ms: int = 200, max_seconds: float = 30.0) -> float:
    """
    指数退避（秒）：第 0 次重试→base，之后翻倍，直到 max_seconds。
    attempt: 已失败次数（从 0 开始）
    """
    attempt = max(0, attempt)
    delay = (max(50, base_ms) / 1000.0) * (2 ** attempt)
    return min(max_seconds, delay)
