import hashlib
import re
from typing import Optional

from pet_advice.core.profile import PetProfile, profile_descriptor

FINGERPRINT_LENGTH = 16
_STRIP_PUNCTUATION = str.maketrans("", "", "?.,!")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_query(text: str) -> str:
    if not isinstance(text, str):
        raise TypeError(f"query must be str, got {type(text).__name__}")
    lowered = text.lower().translate(_STRIP_PUNCTUATION)
    return _WHITESPACE_RE.sub(" ", lowered).strip()


def fingerprint(text: str, profile: Optional[PetProfile] = None) -> str:
    combined = f"{normalize_query(text)}:{profile_descriptor(profile)}"
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]
