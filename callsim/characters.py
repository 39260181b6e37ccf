"""Fixed registry of the characters a caller can phone.

Each persona carries its own system prompt, written in Sorani Kurdish, and a
speaker id understood by the Kurdish TTS service.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

END_CALL_MARKER = "[END_CALL]"

_CALL_RULES = (
    "\n\nیاساکان:\n"
    "- تەنها بە کوردیی سۆرانی قسە بکە.\n"
    "- وەڵامەکانت کورت بن، یەک یان دوو ڕستە، وەک قسەکردن لە تەلەفۆندا.\n"
    "- هەرگیز مەڵێ کە تۆ بەرنامەی کۆمپیوتەریت.\n"
    "- کاتێک بەکارهێنەر ماڵئاوایی دەکات یان گفتوگۆکە کۆتایی دێت، "
    f"لە کۆتایی وەڵامەکەتدا {END_CALL_MARKER} بنووسە."
)


@dataclass(frozen=True)
class Character:
    id: str
    name: str
    gender: str
    age: int
    speaker_id: str
    system_prompt: str

    def profile(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "gender": self.gender,
            "speaker_id": self.speaker_id,
            "age": self.age,
        }


_REGISTRY: dict[str, Character] = {
    c.id: c
    for c in (
        Character(
            id="sara",
            name="سارا",
            gender="female",
            age=24,
            speaker_id="sorani_female",
            system_prompt=(
                "تۆ سارایت، کچێکی 24 ساڵانی خەڵکی هەولێر. "
                "خوێندکاری زانکۆیت و حەزت لە خوێندنەوە و گەشتکردنە. "
                "بە شێوەیەکی دۆستانە و گەرم قسە دەکەیت." + _CALL_RULES
            ),
        ),
        Character(
            id="kawa",
            name="کاوە",
            gender="male",
            age=26,
            speaker_id="sorani_male",
            system_prompt=(
                "تۆ کاوەیت، کوڕێکی 26 ساڵانی خەڵکی هەولێر. "
                "ئەندازیاری کۆمپیوتەریت و حەزت لە وەرزش و مۆسیقایە. "
                "بە شێوەیەکی ئارام و گاڵتەئامێز قسە دەکەیت." + _CALL_RULES
            ),
        ),
    )
}


def lookup(character_id: str) -> Optional[Character]:
    return _REGISTRY.get(character_id or "")


def all_characters() -> list[Character]:
    return list(_REGISTRY.values())
