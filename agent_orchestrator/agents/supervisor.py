"""
Rule-based intent supervisor.

Classification is a pure function of the text: ordered regex rules over
an accent-folded, lowercased copy of the message, first match wins,
no match means ``general``. English and Spanish phrasings are covered.
A rule scoped to verticals is skipped for any other vertical.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from agent_orchestrator.schemas.tenant import Vertical
from agent_orchestrator.utils import fold_text

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    URGENT = "urgent"
    HUMAN_REQUEST = "human_request"
    CANCEL = "cancel"
    BOOKING = "booking"
    ORDER = "order"
    INSURANCE = "insurance"
    MENU = "menu"
    PRICE = "price"
    LOCATION = "location"
    HOURS = "hours"
    FAQ = "faq"
    GREETING = "greeting"
    GENERAL = "general"


@dataclass(frozen=True)
class IntentRule:
    intent: Intent
    pattern: re.Pattern
    # None applies to every vertical
    verticals: Optional[frozenset[Vertical]] = None

    def applies_to(self, vertical: Optional[Vertical]) -> bool:
        return self.verticals is None or vertical in self.verticals


def _rule(intent: Intent, *alternatives: str, verticals: Optional[frozenset[Vertical]] = None) -> IntentRule:
    return IntentRule(intent, re.compile(r"\b(?:" + "|".join(alternatives) + r")"), verticals)


# Priority order matters: urgent and human requests must win over anything
# else a message also mentions.
RULES: tuple[IntentRule, ...] = (
    _rule(
        Intent.URGENT,
        r"pain\b", r"painful\b", r"hurts?\b", r"toothache\b", r"bleed\w*", r"swollen\b", r"swelling\b",
        r"dolor\w*", r"duele\w*", r"sangr\w*", r"hinchad\w*", r"infla\w*", r"urgen\w*", r"emergen\w*",
    ),
    # Injury words only signal urgency for dental tenants
    _rule(
        Intent.URGENT,
        r"broken\b", r"chipped\b", r"knocked out\b", r"accident\w*",
        r"roto\b", r"rota\b", r"quebr\w*", r"fractur\w*",
        verticals=frozenset({Vertical.DENTAL}),
    ),
    _rule(
        Intent.HUMAN_REQUEST,
        r"human\b", r"real person\b", r"(?:talk|speak) (?:to|with) (?:someone|somebody|a person)\b",
        r"manager\b", r"supervisor\b",
        r"representative\b", r"operator\b", r"staff member\b",
        r"humano\b", r"hablar con una persona\b", r"asesor\w*", r"gerente\b", r"encargad[oa]\b",
        r"hablar con alguien\b", r"quiero hablar\b",
    ),
    _rule(
        Intent.CANCEL,
        r"cancel\w*", r"call off\b", r"anular\b", r"anula\b",
    ),
    _rule(
        Intent.BOOKING,
        r"book\w*", r"reserv\w*", r"appointment\w*", r"schedul\w*", r"table for\b",
        r"cita\b", r"citas\b", r"agend\w*", r"mesa para\b", r"turno\b", r"disponib\w*", r"availab\w*",
    ),
    _rule(
        Intent.ORDER,
        r"order\w*", r"takeout\b", r"take out\b", r"to go\b", r"pick ?up\b", r"deliver\w*",
        r"pedid\w*", r"ordenar\b", r"para llevar\b", r"a domicilio\b",
    ),
    _rule(
        Intent.INSURANCE,
        r"insurance\b", r"insured\b", r"coverage\b", r"covered\b",
        r"segur[oa]s?\b", r"aseguradora\w*", r"cobertura\b", r"cubre\w*",
    ),
    _rule(
        Intent.MENU,
        r"menu\b", r"dish\w*", r"vegetarian\b", r"vegan\b", r"gluten\b", r"what do you serve\b",
        r"platillo\w*", r"platos?\b", r"comida\b", r"bebidas?\b", r"postres?\b",
    ),
    _rule(
        Intent.PRICE,
        r"price\w*", r"cost\w*", r"how much\b", r"fee\w*", r"rates?\b", r"quote\b",
        r"precio\w*", r"costo\w*", r"cuanto\b", r"cuesta\b", r"tarifa\w*", r"cotiz\w*", r"presupuesto\b",
    ),
    _rule(
        Intent.LOCATION,
        r"where\b", r"address\b", r"located\b", r"location\b", r"directions?\b", r"parking\b",
        r"donde\b", r"direccion\b", r"ubicacion\b", r"ubicad[oa]s?\b", r"como llego\b", r"estacionamiento\b",
    ),
    _rule(
        Intent.HOURS,
        r"hours\b", r"open\w*", r"close\w*", r"what time\b",
        r"horario\w*", r"abren\b", r"cierran\b", r"atienden\b", r"a que hora\b", r"hasta que hora\b",
    ),
    _rule(
        Intent.FAQ,
        r"do you\b", r"can i\b", r"is there\b", r"are there\b", r"accept\w*", r"polic\w*",
        r"how does\b", r"como funciona\b", r"tienen\b", r"aceptan\b", r"puedo\b", r"se puede\b",
        r"ofrecen\b", r"que incluye\b",
    ),
    IntentRule(
        Intent.GREETING,
        re.compile(r"^\W*(?:hi|hello|hey|good (?:morning|afternoon|evening)|hola|buen[oa]s|buen dia|que tal|saludos)\b"),
    ),
)


class IntentSupervisor:
    """Deterministic text -> intent classifier."""

    def __init__(self, rules: Optional[tuple[IntentRule, ...]] = None) -> None:
        self._rules = rules if rules is not None else RULES

    def classify(self, text: Optional[str], vertical: Optional[Vertical] = None) -> Intent:
        if not text or not text.strip():
            return Intent.GENERAL
        folded = fold_text(text)
        for rule in self._rules:
            if rule.applies_to(vertical) and rule.pattern.search(folded):
                logger.debug("Intent %s matched", rule.intent.value)
                return rule.intent
        return Intent.GENERAL


def classify_intent(text: Optional[str], vertical: Optional[Vertical] = None) -> Intent:
    """Module-level shortcut using the built-in rule table."""
    return _DEFAULT.classify(text, vertical)


_DEFAULT = IntentSupervisor()
