from __future__ import annotations

from sessionkeeper.core.ux.countdown import (
    CountdownView,
    format_remaining,
    should_offer_extend,
    urgency,
)

__all__ = [
    "CountdownView",
    "format_remaining",
    "should_offer_extend",
    "urgency",
]
