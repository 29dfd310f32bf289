"""
Prompt Enhancement

Rewrites a prompt through the fallback chain and scores the rewrite with a
deterministic keyword heuristic (no model involved in scoring).

Two clamp policies exist and are kept apart:
- `score()` (standalone):       clamp to [60, 98]
- `PromptEnhancer.enhance()`:   at least original + 10, at most 95
"""

from __future__ import annotations
import re
import logging
from typing import List, Optional, Tuple

from promptop.core.dispatcher import RequestDispatcher
from promptop.core.fallback import FallbackChain
from promptop.core.models import EnhancementResult

logger = logging.getLogger("promptop.enhancer")


OFFLINE_ENHANCER_ID = "promptop-enhancer-v1"

SPECIFICITY_KEYWORDS = [
    "specific",
    "detailed",
    "example",
    "format",
    "step",
    "audience",
    "tone",
    "length",
    "include",
    "avoid",
    "constraint",
    "output",
]

CLARITY_WORDS = [
    "clear",
    "concise",
    "structured",
    "precise",
    "explain",
    "ensure",
    "focus",
]

NUMBERED_LIST_PATTERN = re.compile(r"^\s*\d+[.)]\s+", re.MULTILINE)

BASE_SCORE = 50

STANDALONE_MIN, STANDALONE_MAX = 60, 98
PIPELINE_MIN_GAIN, PIPELINE_MAX = 10, 95


def _has_word(text: str, word: str) -> bool:
    return re.search(rf"\b{re.escape(word)}", text, re.IGNORECASE) is not None


def _newly_present(original: str, enhanced: str, words: List[str]) -> List[str]:
    return [w for w in words if _has_word(enhanced, w) and not _has_word(original, w)]


def _gained(original: str, enhanced: str, present) -> bool:
    return bool(present(enhanced)) and not present(original)


def _has_colon(text: str) -> bool:
    return ":" in text


def _has_newline(text: str) -> bool:
    return "\n" in text


def _has_numbered_list(text: str) -> bool:
    return NUMBERED_LIST_PATTERN.search(text) is not None


# =============================================================================
# SCORING
# =============================================================================

def raw_score(original: str, enhanced: str) -> int:
    """Unclamped heuristic score of `enhanced` relative to `original`."""
    total = BASE_SCORE

    if len(enhanced) > len(original) * 1.2:
        total += 15
    elif len(enhanced) > len(original):
        total += 10

    total += 5 * len(_newly_present(original, enhanced, SPECIFICITY_KEYWORDS))

    if _gained(original, enhanced, _has_colon):
        total += 8
    if _gained(original, enhanced, _has_newline):
        total += 6
    if _gained(original, enhanced, _has_numbered_list):
        total += 10

    total += 3 * len(_newly_present(original, enhanced, CLARITY_WORDS))

    if _newly_present(original, enhanced, ["context"]):
        total += 8
    if _newly_present(original, enhanced, ["background"]):
        total += 6

    return total


def score(original: str, enhanced: str) -> int:
    """Standalone enhancement score, clamped to [60, 98]."""
    return max(STANDALONE_MIN, min(STANDALONE_MAX, raw_score(original, enhanced)))


def original_quality(prompt: str) -> int:
    """Baseline quality of an unenhanced prompt: grows with length, caps at 50."""
    return int(min(5 + len(prompt) / 10, 50))


def pipeline_scores(original: str, enhanced: str) -> Tuple[int, int]:
    """(original_score, enhanced_score) under the pipeline clamp policy."""
    before = original_quality(original)
    after = max(raw_score(original, enhanced), before + PIPELINE_MIN_GAIN)
    return before, min(PIPELINE_MAX, after)


def generate_improvements(original: str, enhanced: str) -> List[str]:
    """Up to five human-readable reasons, from the same tests as the score."""
    improvements = []

    if len(enhanced) > len(original) * 1.2:
        improvements.append("Expanded the prompt with more detail and direction")
    elif len(enhanced) > len(original):
        improvements.append("Added detail to the prompt")

    specifics = _newly_present(original, enhanced, SPECIFICITY_KEYWORDS)
    if specifics:
        improvements.append(f"Added specific requirements ({', '.join(specifics[:3])})")

    if _gained(original, enhanced, _has_numbered_list):
        improvements.append("Organized instructions into a numbered list")
    elif _gained(original, enhanced, _has_colon) or _gained(original, enhanced, _has_newline):
        improvements.append("Improved structure with clear sections")

    if _newly_present(original, enhanced, CLARITY_WORDS):
        improvements.append("Improved clarity with precise instructions")

    if _newly_present(original, enhanced, ["context"]):
        improvements.append("Added context for better understanding")

    if _newly_present(original, enhanced, ["background"]):
        improvements.append("Included background information")

    return improvements[:5]


# =============================================================================
# PIPELINE
# =============================================================================

def build_enhancement_prompt(prompt: str) -> str:
    return f"""You are an expert prompt engineer. Rewrite the prompt below so it produces better results from an AI model.

Make it:
1. Specific about the desired output, format and length
2. Clear about the audience and tone
3. Rich in relevant context and background
4. Structured with step-by-step instructions where useful

Return only the improved prompt, with no commentary.

Original prompt:
{prompt}"""


def offline_enhancement(prompt: str) -> str:
    """Canned rewrite used when no provider produced a result."""
    return f"""**Enhanced Professional Prompt:**

{prompt}

**Additional Requirements:**
- Provide detailed, comprehensive responses
- Include specific examples where relevant
- Structure the output clearly with headings or bullet points
- Ensure accuracy and cite sources when applicable
- Consider multiple perspectives or approaches
- Provide actionable insights or recommendations"""


_WRAPPER_PREFIX = re.compile(r"^(?:\*\*)?(?:improved|enhanced) prompt:?(?:\*\*)?:?\s*", re.IGNORECASE)


def clean_enhanced_text(text: str) -> str:
    """Strip code fences, labels and wrapping quotes models like to add."""
    text = text.strip()
    if text.startswith("```") and text.endswith("```"):
        text = text[3:-3].strip()
    text = _WRAPPER_PREFIX.sub("", text)
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        text = text[1:-1].strip()
    return text


class PromptEnhancer:
    """Rewrites prompts through the fallback chain and scores the result."""

    def __init__(
        self,
        dispatcher: RequestDispatcher,
        chain: Optional[FallbackChain] = None,
    ):
        self.dispatcher = dispatcher
        self.chain = chain or FallbackChain.enhancement()

    async def enhance(self, prompt: str) -> EnhancementResult:
        result = await self.dispatcher.execute_with_fallback(
            build_enhancement_prompt(prompt), self.chain
        )

        enhanced = clean_enhanced_text(result.response_text) if result else ""
        if enhanced:
            model = result.resolved_model_id
            fallback_used = False
        else:
            logger.warning("All enhancement providers failed, using offline enhancer")
            enhanced = offline_enhancement(prompt)
            model = OFFLINE_ENHANCER_ID
            fallback_used = True

        original_score, enhanced_score = pipeline_scores(prompt, enhanced)

        return EnhancementResult(
            enhanced_text=enhanced,
            original_score=original_score,
            enhanced_score=enhanced_score,
            improvements=generate_improvements(prompt, enhanced),
            model=model,
            fallback_used=fallback_used,
        )
