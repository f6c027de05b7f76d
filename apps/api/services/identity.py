"""Random display pseudonyms for generated commenters."""

from __future__ import annotations

import random
from typing import Dict, Iterable, List, Optional, Sequence

JP_ADJECTIVES = (
    "眠い", "腹ペコ", "限界", "謎の", "通りすがりの", "深夜の", "無職の", "匿名の",
    "暇な", "常連の", "新参の", "熱烈な", "冷静な", "適当な", "本気の", "うっかり",
    "今日も", "明日も", "永遠の", "刹那の", "伝説の", "ただの",
)
JP_NOUNS = (
    "猫", "OL", "おじさん", "学生", "エンジニア", "主婦", "名無し", "浪人",
    "ニート", "オタク", "ガジェッター", "社会人", "大学生", "高校生", "主夫",
    "フリーター", "プログラマー", "デザイナー", "パパ", "ママ",
    "一般人", "常連", "新規", "通りすがり", "暇人",
)
EN_ADJECTIVES = (
    "Happy", "Lazy", "Super", "Yellow", "Cool", "Dark", "Silent", "Quick",
    "Tiny", "Wild", "Calm", "Bored", "Chill", "Random", "Real", "True",
    "Sleepy", "Hungry", "Anonymous", "Mystery",
)
EN_NOUNS = (
    "Dog", "Cat", "User", "Taro", "Hanako", "Papa", "Mama", "Dev", "Geek",
    "Guy", "Gal", "Kid", "Dad", "Mom", "Anon", "Guest", "Visitor",
    "Reader", "Writer", "Coder", "Gamer", "Otaku",
)
DECORATORS = (
    "123", "007", "_jp", "w", "（仮）", "2026", "!!", "_sub", "...", "",
    "さん", "氏", "ちゃん", "2nd", "v2", "01", "99", "（二度目）",
)

UNIQUE_NAME_ATTEMPTS_PER_NAME = 50


def _jp_full(rng: random.Random) -> str:
    return rng.choice(JP_ADJECTIVES) + rng.choice(JP_NOUNS) + rng.choice(DECORATORS)


def _en_handle(rng: random.Random) -> str:
    return (
        f"{rng.choice(EN_ADJECTIVES).lower()}_{rng.choice(EN_NOUNS).lower()}"
        f"{rng.randrange(1000):03d}"
    )


def _jp_short(rng: random.Random) -> str:
    return rng.choice(JP_NOUNS) + rng.choice(DECORATORS)


_PATTERNS = (_jp_full, _en_handle, _jp_short)


def generate_random_user_name(rng: Optional[random.Random] = None) -> str:
    """Build one forum-style handle from a uniformly chosen pattern."""
    rng = rng or random.Random()
    return rng.choice(_PATTERNS)(rng)


def generate_unique_user_names(count: int, rng: Optional[random.Random] = None) -> List[str]:
    """Return up to ``count`` distinct handles.

    Gives up after ``count * 50`` draws, so the result can be shorter than
    requested; callers fill the gap themselves.
    """
    rng = rng or random.Random()
    names: List[str] = []
    seen = set()
    attempts = 0
    max_attempts = max(count, 0) * UNIQUE_NAME_ATTEMPTS_PER_NAME
    while len(names) < count and attempts < max_attempts:
        candidate = generate_random_user_name(rng)
        attempts += 1
        if candidate not in seen:
            seen.add(candidate)
            names.append(candidate)
    return names


def build_speaker_name_map(
    speaker_names: Iterable[str],
    rng: Optional[random.Random] = None,
) -> Dict[str, str]:
    """Map every distinct source name to a pseudonym, first-seen order."""
    rng = rng or random.Random()
    distinct: List[str] = list(dict.fromkeys(speaker_names))
    generated = generate_unique_user_names(len(distinct), rng)
    mapping: Dict[str, str] = {}
    for idx, name in enumerate(distinct):
        mapping[name] = generated[idx] if idx < len(generated) else generate_random_user_name(rng)
    return mapping


def fresh_names_for(count: int, rng: Optional[random.Random] = None) -> List[str]:
    """Exactly ``count`` handles, unique when the generator allows it."""
    rng = rng or random.Random()
    names = generate_unique_user_names(count, rng)
    while len(names) < count:
        names.append(generate_random_user_name(rng))
    return names


def rename_speakers(turns: Sequence, rng: Optional[random.Random] = None) -> list:
    """Rewrite ``speaker_name`` on each turn through a per-thread name map."""
    mapping = build_speaker_name_map((turn.speaker_name for turn in turns), rng)
    return [
        turn.model_copy(update={"speaker_name": mapping.get(turn.speaker_name, turn.speaker_name)})
        for turn in turns
    ]
