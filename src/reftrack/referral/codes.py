"""Referral code format."""

import re
import secrets
import string

MAX_CODE_LENGTH = 48
SUFFIX_LENGTH = 6
SUFFIX_ALPHABET = string.ascii_lowercase + string.digits

# Shape of a generated code: long numeric platform id, dash, short suffix.
REF_CODE_PATTERN = re.compile(r"\b\d{10,}-[a-z0-9]{4,}\b", re.IGNORECASE)


def generate_code(user_id: str) -> str:
    """Generate a referral code for a user.

    Format: ``{user_id}-{suffix}`` where suffix is 6 random lowercase
    alphanumerics. Codes never exceed ``MAX_CODE_LENGTH``; an overlong user id
    is shortened so the random suffix survives.

    Not a secret: uniqueness is probabilistic and collisions are retried by
    the store.
    """
    suffix = "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    prefix = str(user_id)[: MAX_CODE_LENGTH - SUFFIX_LENGTH - 1]
    return f"{prefix}-{suffix}"
