import pytest

from pet_advice.core.fingerprint import FINGERPRINT_LENGTH, fingerprint, normalize_query
from pet_advice.core.profile import PetProfile


def test_normalize_query_lowercases_trims_and_collapses_whitespace():
    assert normalize_query("  How   OFTEN\tshould I\n feed my dog?  ") == "how often should i feed my dog"


def test_normalize_query_strips_fixed_punctuation_only():
    assert normalize_query("Is it ok, really?! Yes.") == "is it ok really yes"
    assert normalize_query("can't; won't") == "can't; won't"


@pytest.mark.parametrize(
    "variant",
    [
        "How often should I feed my dog?",
        "how often should i feed my dog",
        "  HOW OFTEN SHOULD I FEED MY DOG  ",
        "How often should I feed my dog!",
        "How often should I feed my dog.",
        "How often should I feed my dog,",
    ],
)
def test_fingerprint_ignores_case_whitespace_and_trailing_punctuation(variant):
    assert fingerprint(variant) == fingerprint("How often should I feed my dog?")


def test_fingerprint_has_fixed_length():
    assert len(fingerprint("hello")) == FINGERPRINT_LENGTH
    assert len(fingerprint("x" * 5000)) == FINGERPRINT_LENGTH


def test_fingerprint_depends_on_profile_descriptor():
    dog = PetProfile(species="Dog", age=3, gender="female")
    cat = PetProfile(species="Cat", age=3, gender="female")
    assert fingerprint("what food?", dog) != fingerprint("what food?")
    assert fingerprint("what food?", dog) != fingerprint("what food?", cat)


def test_fingerprint_ignores_profile_fields_outside_descriptor():
    first = PetProfile(species="Dog", name="Rex", breed="Beagle", age=3, gender="male")
    second = PetProfile(species="dog", name="Max", breed="Poodle", age=3, gender="Male")
    assert fingerprint("walks per day", first) == fingerprint("walks per day", second)


def test_normalize_query_rejects_non_string():
    with pytest.raises(TypeError):
        normalize_query(None)
