from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

CHARS_PER_TOKEN = 4


@dataclass(frozen=True, slots=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    def as_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


def _tokens(chars: int) -> int:
    return math.ceil(chars / CHARS_PER_TOKEN)


def estimate_usage(prompt_texts: Sequence[str], generated_text: str) -> TokenUsage:
    """Approximate token counts at four characters per token.

    The total is estimated from the combined character count rather than by
    adding the two rounded estimates.
    """
    prompt_chars = sum(len(text) for text in prompt_texts)
    completion_chars = len(generated_text)
    return TokenUsage(
        prompt_tokens=_tokens(prompt_chars),
        completion_tokens=_tokens(completion_chars),
        total_tokens=_tokens(prompt_chars + completion_chars),
    )
