"""Model routing and per-turn "tip" summaries.

The router classifies a user message with one cheap Haiku call and picks the
tier that should answer it. Context comes from the one-line tips that the
assistant appends to each reply as `<!--tip:...-->`.
"""

import json
import re
from collections.abc import Iterable
from dataclasses import dataclass

from claude_chat.clients.anthropic import AnthropicClient
from claude_chat.models.catalog import ClaudeModel
from claude_chat.models.conversation import HistoryTurn
from claude_chat.models.llm import APIMessage
from claude_chat.utils.logging import get_logger

logger = get_logger(__name__)

TIP_PATTERN = re.compile(r"<!--tip:(.+?)-->\n?", re.DOTALL)

CONFIDENCE_THRESHOLD = 0.8

CLASSIFICATION_PROMPT = """Classify the user's message into a processing tier based on the message \
and conversation arc provided.

HAIKU: Greetings, questions, casual chat, acknowledgments, follow-ups, emotional support, small talk, \
advice, planning, opinions, everyday conversation, simple explanations, simple code questions, short \
creative writing, factual lookups, recommendations, anything that can be answered well without deep \
multi-step reasoning and without using external tools.

SONNET: Weather queries, web search queries, any request requiring tool use, complex multi-step \
reasoning, writing or debugging substantial code, detailed document analysis, extended creative \
writing, comparative analysis, technical architecture, research synthesis from multiple sources.

When in doubt between HAIKU and SONNET, choose HAIKU. Most messages should be HAIKU.
Do NOT classify as OPUS. The OPUS tier is not available for automatic routing.

Respond with ONLY a JSON object, no other text:
{"tier": "HAIKU|SONNET", "confidence": 0.0-1.0}"""


def extract_tip(text: str) -> tuple[str, str | None]:
    """Strip the first tip marker from a reply, returning (cleaned text, tip)."""
    match = TIP_PATTERN.search(text)
    if match is None:
        return text, None
    tip = match.group(1).strip()
    cleaned = TIP_PATTERN.sub("", text).strip()
    return cleaned, tip or None


def strip_tips(text: str) -> str:
    """Remove every tip marker, for replaying history to the API."""
    if TIP_PATTERN.search(text) is None:
        return text
    return TIP_PATTERN.sub("", text).strip()


def collect_tips(history: Iterable[HistoryTurn]) -> list[str]:
    """Tips from prior assistant replies, oldest first."""
    tips = []
    for turn in history:
        if turn.role == "assistant":
            _, tip = extract_tip(turn.text)
            if tip:
                tips.append(tip)
    return tips


@dataclass(frozen=True)
class RouterDecision:
    """Parsed classifier output."""

    tier: ClaudeModel
    confidence: float


def parse_router_response(text: str) -> RouterDecision:
    """Parse `{"tier": ..., "confidence": ...}`, tolerating fences and chatter.

    Unparseable output defaults to Haiku with full confidence.
    """
    cleaned = text.replace("```json", "").replace("```", "").strip()
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        cleaned = cleaned[start : end + 1]

    try:
        payload = json.loads(cleaned)
        tier_name = str(payload["tier"]).upper()
        confidence = float(payload["confidence"])
    except (json.JSONDecodeError, KeyError, TypeError, ValueError):
        logger.info(f"Router: failed to parse {text!r}, defaulting to Haiku")
        return RouterDecision(tier=ClaudeModel.HAIKU, confidence=1.0)

    tier = ClaudeModel.HAIKU if tier_name == "HAIKU" else ClaudeModel.SONNET
    return RouterDecision(tier=tier, confidence=confidence)


def apply_escalation(decision: RouterDecision) -> ClaudeModel:
    """Low-confidence Haiku escalates to Sonnet; Opus is never auto-selected."""
    if decision.tier == ClaudeModel.OPUS:
        return ClaudeModel.SONNET
    if decision.tier == ClaudeModel.HAIKU and decision.confidence < CONFIDENCE_THRESHOLD:
        return ClaudeModel.SONNET
    return decision.tier


class ModelRouter:
    """Chooses a model tier for a user message."""

    def __init__(self, client: AnthropicClient, fallback: ClaudeModel = ClaudeModel.SONNET):
        self.client = client
        self.fallback = fallback

    def build_prompt(self, user_text: str, tips: list[str]) -> str:
        prompt = ""
        if tips:
            prompt += "[Conversation arc]\n"
            prompt += "".join(f"Turn {index}: {tip}\n" for index, tip in enumerate(tips, start=1))
            prompt += "\n"
        return prompt + f"[Current message]\n{user_text}"

    async def classify(self, user_text: str, tips: list[str], api_key: str | None) -> ClaudeModel:
        """Pick a model. Any failure falls back to Sonnet."""
        try:
            result = await self.client.single_shot(
                messages=[APIMessage(role="user", content=self.build_prompt(user_text, tips))],
                system_prompt=CLASSIFICATION_PROMPT,
                model=ClaudeModel.HAIKU,
                api_key=api_key,
                max_tokens=64,
            )
        except Exception as e:
            logger.warning(f"Router failed ({type(e).__name__}), defaulting to {self.fallback.display_name}")
            return self.fallback

        decision = parse_router_response(result.text)
        model = apply_escalation(decision)
        logger.info(
            f"Router: {decision.tier.display_name} (confidence {decision.confidence:.2f}) -> {model.display_name}"
        )
        return model
