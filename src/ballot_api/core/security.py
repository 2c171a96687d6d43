"""Password hashing, JWT handling, and one-time code generation.

Uses passlib with bcrypt for password hashing, PyJWT for tokens, and the
``secrets`` CSPRNG for one-time codes and ballot session tokens.
"""

import secrets
import uuid
from datetime import UTC, datetime, timedelta

import jwt
from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

OTP_CODE_LENGTH = 6


def hash_password(password: str) -> str:
    """Hash a plaintext password using bcrypt.

    Args:
        password: The plaintext password to hash.

    Returns:
        The bcrypt-hashed password string.
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a bcrypt hash.

    Args:
        plain_password: The plaintext password to verify.
        hashed_password: The bcrypt hash to verify against.

    Returns:
        True if the password matches, False otherwise.
    """
    return pwd_context.verify(plain_password, hashed_password)


def generate_otp_code(length: int = OTP_CODE_LENGTH) -> str:
    """Generate a zero-padded numeric one-time code.

    Draws uniformly from ``[0, 10**length)`` using the operating system
    CSPRNG, so outputs cannot be predicted from earlier ones.

    Args:
        length: Number of digits.

    Returns:
        The code as a string of exactly ``length`` digits.
    """
    if length <= 0:
        msg = "Code length must be positive"
        raise ValueError(msg)
    return f"{secrets.randbelow(10**length):0{length}d}"


def codes_match(expected: str, supplied: str) -> bool:
    """Compare two codes in constant time."""
    return secrets.compare_digest(expected.encode(), supplied.encode())


def generate_session_token() -> str:
    """Generate an opaque, unique ballot session token."""
    return str(uuid.uuid4())


def create_access_token(
    subject: str,
    role: str,
    secret_key: str,
    algorithm: str = "HS256",
    expires_minutes: int = 30,
) -> str:
    """Create a JWT access token.

    Args:
        subject: The token subject (the user's email).
        role: The user's role.
        secret_key: Secret key for signing.
        algorithm: JWT signing algorithm.
        expires_minutes: Token expiration in minutes.

    Returns:
        The encoded JWT string.
    """
    expire = datetime.now(UTC) + timedelta(minutes=expires_minutes)
    payload = {
        "sub": subject,
        "role": role,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def create_refresh_token(
    subject: str,
    secret_key: str,
    algorithm: str = "HS256",
    expires_days: int = 7,
) -> str:
    """Create a JWT refresh token.

    Args:
        subject: The token subject (the user's email).
        secret_key: Secret key for signing.
        algorithm: JWT signing algorithm.
        expires_days: Token expiration in days.

    Returns:
        The encoded JWT string.
    """
    expire = datetime.now(UTC) + timedelta(days=expires_days)
    payload = {
        "sub": subject,
        "exp": expire,
        "type": "refresh",
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def decode_token(
    token: str,
    secret_key: str,
    algorithm: str = "HS256",
) -> dict:
    """Decode and validate a JWT token.

    Raises:
        jwt.ExpiredSignatureError: If the token has expired.
        jwt.InvalidTokenError: If the token is invalid.
    """
    return jwt.decode(token, secret_key, algorithms=[algorithm])
