"""
ref_codes.py
------------
Short, human-typable reference codes handed to clients so they can manage a
booking (BKxxxx) or waitlist entry (WLxxxx) without logging in.

The alphabet leaves out I, O, 0 and 1. Uniqueness is enforced by the unique
database column; callers retry with a fresh code on collision.
"""

import secrets

REF_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
REF_CODE_LENGTH = 4

BOOKING_PREFIX = "BK"
WAITLIST_PREFIX = "WL"


def generate_ref_code(prefix: str = BOOKING_PREFIX) -> str:
    return prefix + "".join(secrets.choice(REF_CODE_ALPHABET) for _ in range(REF_CODE_LENGTH))


def normalize_ref_code(value: str) -> str:
    return (value or "").strip().upper()
