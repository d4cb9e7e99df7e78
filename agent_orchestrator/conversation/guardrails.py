"""
Guardrails around the reasoning step.

Three layers, each checking a different concern:
1. InjectionGuardrail     - flags and removes instruction-injection attempts in user text
2. HallucinationGuardrail - flags unverifiable claims in agent replies
3. PersonaGuardrail       - blocks AI self-references in agent replies

They are composed into a GuardrailPipeline for pre-reasoning sanitization
and post-reasoning cleanup.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from agent_orchestrator.utils import fold_text

logger = logging.getLogger(__name__)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?¿¡\n])\s+")
_CLAUSE_SPLIT = re.compile(r"\s*(?:[,;:]|\band\b|\bthen\b|\by\b|\bluego\b)\s*", re.IGNORECASE)


@dataclass
class GuardrailResult:
    """Outcome of a single guardrail check."""
    passed: bool
    violation_type: Optional[str] = None
    message: Optional[str] = None
    severity: str = "warning"  # "warning" | "block"


@dataclass
class SanitizedInput:
    """User text with injected directives removed."""
    text: str
    flagged: bool = False
    matched: list[str] = field(default_factory=list)


def _split_sentences(text: str) -> list[str]:
    return [s for s in _SENTENCE_SPLIT.split(text.strip()) if s.strip()]


class InjectionGuardrail:
    """Detects attempts to override the assistant's instructions."""

    PATTERNS = [
        re.compile(r"\b(?:ignore|disregard|forget)\b.{0,40}\b(?:instructions?|rules|prompt|above)\b"),
        re.compile(r"\b(?:system prompt|developer mode|jailbreak)\b"),
        re.compile(r"\byou are now\b"),
        re.compile(r"\b(?:pretend|act) (?:to be|as if you are|as)\b.{0,40}\b(?:ai|assistant|admin|developer)\b"),
        re.compile(r"\b(?:reveal|show|print|repeat)\b.{0,30}\b(?:instructions|prompt|configuration)\b"),
        re.compile(r"\b(?:ignora|olvida|omite)\b.{0,40}\b(?:instrucciones|reglas|prompt)\b"),
        re.compile(r"\b(?:ahora eres|actua como|finge ser)\b"),
        re.compile(r"\b(?:muestra|revela|repite)\b.{0,30}\b(?:instrucciones|prompt)\b"),
        re.compile(r"</?(?:system|assistant|instructions)>"),
    ]

    def _hits(self, text: str) -> list[str]:
        folded = fold_text(text)
        return [p.pattern for p in self.PATTERNS if p.search(folded)]

    def check(self, text: str) -> GuardrailResult:
        sanitized = self.sanitize(text)
        if sanitized.flagged:
            return GuardrailResult(
                passed=False,
                violation_type="prompt_injection",
                message=f"Injection pattern(s) detected: {sanitized.matched}.",
                severity="warning",
            )
        return GuardrailResult(passed=True)

    def sanitize(self, text: str) -> SanitizedInput:
        """Drop the clauses carrying an injection pattern; keep the rest."""
        kept: list[str] = []
        matched: list[str] = []
        for sentence in _split_sentences(text):
            hits = self._hits(sentence)
            if not hits:
                kept.append(sentence)
                continue
            matched.extend(hits)
            kept.extend(c for c in _CLAUSE_SPLIT.split(sentence) if c.strip() and not self._hits(c))
        if matched:
            logger.warning("Prompt injection neutralised (%d pattern hit(s))", len(matched))
        return SanitizedInput(text=" ".join(kept).strip(), flagged=bool(matched), matched=matched)


class HallucinationGuardrail:
    """Detects potentially fabricated claims in agent responses."""

    FORBIDDEN_CLAIMS = [
        "we guarantee", "guaranteed", "100% covered", "fully covered",
        "best in the city", "cheapest", "lowest price", "award-winning",
        "garantizamos", "garantizado", "el mejor de la ciudad", "el mas barato",
    ]

    def check_response(self, response_text: str) -> GuardrailResult:
        lower = fold_text(response_text)
        for claim in self.FORBIDDEN_CLAIMS:
            if claim in lower:
                logger.warning("Unverifiable claim in reply: '%s'", claim)
                return GuardrailResult(
                    passed=False,
                    violation_type="potential_hallucination",
                    message=f"Response contains unverified claim: '{claim}'.",
                    severity="block",
                )
        return GuardrailResult(passed=True)


class PersonaGuardrail:
    """Keeps the assistant in persona."""

    FORBIDDEN_PATTERNS = [
        "as an ai", "as a language model", "i'm just a computer", "i am an ai",
        "my training data", "openai", "como una ia", "como modelo de lenguaje", "soy una ia",
    ]

    def check_persona(self, response_text: str) -> GuardrailResult:
        lower = fold_text(response_text)
        for pattern in self.FORBIDDEN_PATTERNS:
            if pattern in lower:
                return GuardrailResult(
                    passed=False,
                    violation_type="persona_break",
                    message=f"Response breaks persona with: '{pattern}'.",
                    severity="warning",
                )
        return GuardrailResult(passed=True)


class GuardrailPipeline:
    """Composes the guardrails into pre- and post-reasoning passes."""

    SAFE_REPLY = {
        "en": "Let me check that with the team so I give you accurate information. Is there anything else I can help with?",
        "es": "Déjame confirmarlo con el equipo para darte información precisa. ¿Hay algo más en lo que te pueda ayudar?",
    }

    def __init__(self) -> None:
        self.injection = InjectionGuardrail()
        self.hallucination = HallucinationGuardrail()
        self.persona = PersonaGuardrail()

    def sanitize_user_input(self, text: str) -> SanitizedInput:
        """Pre-reasoning: neutralise injected directives, keep the legitimate request."""
        return self.injection.sanitize(text)

    def check_agent_response(self, text: str) -> list[GuardrailResult]:
        """Post-reasoning: report hallucination and persona violations."""
        results = [
            self.hallucination.check_response(text),
            self.persona.check_persona(text),
        ]
        return [r for r in results if not r.passed]

    def clean_agent_response(self, text: str, locale: str = "en") -> str:
        """Remove sentences that fail a post-reasoning check.

        Falls back to a neutral reply when nothing survives.
        """
        if not self.check_agent_response(text):
            return text
        kept = [s for s in _split_sentences(text) if not self.check_agent_response(s)]
        if not kept:
            return self.SAFE_REPLY["es" if locale == "es" else "en"]
        return " ".join(kept)
