"""Online voting service with one-time-code verification and one-ballot-per-voter guarantees."""

__version__ = "0.1.0"
