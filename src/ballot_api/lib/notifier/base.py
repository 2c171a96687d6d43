"""Code delivery interface and the message passed to it."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True)
class CodeDelivery:
    """A one-time code ready to be delivered to its owner.

    Attributes:
        email: Recipient address.
        code: The plaintext code.
        purpose: Purpose value the code is bound to.
        expires_at: When the code stops being valid.
    """

    email: str
    code: str
    purpose: str
    expires_at: datetime


class CodeNotifier(Protocol):
    """Delivery channel (email, SMS, ...) for one-time codes.

    Implementations raise on delivery failure; the caller decides how to
    surface it.
    """

    async def send_code(self, delivery: CodeDelivery) -> None:
        """Deliver a code to its recipient.

        Args:
            delivery: The code and its recipient.
        """
        ...
