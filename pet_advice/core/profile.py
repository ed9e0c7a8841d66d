from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

NO_PROFILE = "no-profile"


@dataclass(frozen=True)
class PetProfile:
    species: str
    name: Optional[str] = None
    breed: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> Optional["PetProfile"]:
        if not isinstance(raw, dict):
            return None
        species = str(raw.get("species") or "").strip()
        if not species:
            return None
        age = raw.get("age")
        return cls(
            species=species,
            name=_clean(raw.get("name")),
            breed=_clean(raw.get("breed")),
            age=int(age) if isinstance(age, (int, float)) else None,
            gender=_clean(raw.get("gender")),
        )

    def cache_descriptor(self) -> str:
        age = "" if self.age is None else str(self.age)
        return f"{self.species.lower()}:{age}:{(self.gender or '').lower()}"

    def prompt_context(self) -> str:
        parts = [f"species: {self.species}"]
        if self.name:
            parts.append(f"name: {self.name}")
        if self.breed:
            parts.append(f"breed: {self.breed}")
        if self.age is not None:
            parts.append(f"age: {self.age} years")
        if self.gender:
            parts.append(f"gender: {self.gender}")
        return "The user's pet (" + ", ".join(parts) + ")."


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def profile_descriptor(profile: Optional[PetProfile]) -> str:
    if profile is None:
        return NO_PROFILE
    return profile.cache_descriptor()
