"""One-time code delivery library.

Public API:
    - ``CodeDelivery``: The code, recipient, purpose and expiry to deliver
    - ``CodeNotifier``: Protocol for delivery channels
    - ``LogCodeNotifier``: Writes deliveries to the application log
    - ``InMemoryCodeNotifier``: Collects deliveries in memory
    - ``get_notifier``: Build the notifier for the current settings
"""

from ballot_api.core.config import Settings
from ballot_api.lib.notifier.base import CodeDelivery, CodeNotifier
from ballot_api.lib.notifier.log import InMemoryCodeNotifier, LogCodeNotifier


def get_notifier(settings: Settings) -> CodeNotifier:
    """Return the delivery channel configured for this deployment.

    Args:
        settings: Application settings.

    Returns:
        A notifier. Codes are only logged in clear when echoing is enabled,
        which settings validation forbids in production.
    """
    return LogCodeNotifier(reveal_codes=settings.otp_echo_code)


__all__ = [
    "CodeDelivery",
    "CodeNotifier",
    "InMemoryCodeNotifier",
    "LogCodeNotifier",
    "get_notifier",
]
