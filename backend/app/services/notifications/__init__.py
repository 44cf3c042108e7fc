"""High-emission notifications (email and SMS)."""

from .alerts import (
    AlertDispatcher,
    HighEmissionAlert,
    get_alert_dispatcher,
    set_alert_dispatcher,
)

__all__ = [
    "AlertDispatcher",
    "HighEmissionAlert",
    "get_alert_dispatcher",
    "set_alert_dispatcher",
]
