"""Notifiers that do not talk to an external transport."""

from loguru import logger

from ballot_api.core.logging import mask_code, mask_email
from ballot_api.lib.notifier.base import CodeDelivery


class LogCodeNotifier:
    """Record deliveries in the application log.

    Used until a real email/SMS gateway is wired in. The code is masked
    unless ``reveal_codes`` is set, which is only meant for local testing.

    Args:
        reveal_codes: Log the full code instead of a masked one.
    """

    def __init__(self, *, reveal_codes: bool = False) -> None:
        self.reveal_codes = reveal_codes

    async def send_code(self, delivery: CodeDelivery) -> None:
        code = delivery.code if self.reveal_codes else mask_code(delivery.code)
        logger.info(
            "Delivering {} code {} to {} (expires {})",
            delivery.purpose,
            code,
            mask_email(delivery.email),
            delivery.expires_at.isoformat(),
        )


class InMemoryCodeNotifier:
    """Keep deliveries in a list. Intended for tests and local scripts."""

    def __init__(self) -> None:
        self.deliveries: list[CodeDelivery] = []

    async def send_code(self, delivery: CodeDelivery) -> None:
        self.deliveries.append(delivery)

    def last_code_for(self, email: str) -> str | None:
        """Return the most recently delivered code for an email."""
        for delivery in reversed(self.deliveries):
            if delivery.email == email:
                return delivery.code
        return None
