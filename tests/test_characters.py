"""Tests for the character registry."""

import dataclasses

import pytest

from callsim import characters


def test_lookup_known_ids():
    sara = characters.lookup("sara")
    kawa = characters.lookup("kawa")

    assert sara is not None and sara.gender == "female" and sara.age == 24
    assert kawa is not None and kawa.gender == "male" and kawa.age == 26


@pytest.mark.parametrize("character_id", ["ghost", "", "SARA", None])
def test_lookup_unknown(character_id):
    assert characters.lookup(character_id) is None


def test_profile_hides_system_prompt():
    profile = characters.lookup("sara").profile()

    assert set(profile) == {"id", "name", "gender", "speaker_id", "age"}


def test_characters_are_immutable():
    sara = characters.lookup("sara")

    with pytest.raises(dataclasses.FrozenInstanceError):
        sara.name = "x"


def test_prompts_teach_the_end_call_marker():
    for character in characters.all_characters():
        assert characters.END_CALL_MARKER in character.system_prompt


def test_all_characters_order():
    assert [c.id for c in characters.all_characters()] == ["sara", "kawa"]
