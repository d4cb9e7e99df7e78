"""Classify a user's reply to a pending confirmation prompt."""

import re
from enum import Enum

from agent_orchestrator.utils import fold_text


class ConfirmationReply(str, Enum):
    AFFIRM = "affirm"
    DENY = "deny"
    UNCLEAR = "unclear"


AFFIRM_PATTERN = re.compile(
    r"^\W*(?:yes|yeah|yep|yup|sure|ok|okay|confirm(?:ed)?|correct|right|that'?s right|go ahead|"
    r"please do|do it|sounds good|perfect|"
    r"si|sip|claro|correcto|confirmo|confirmado|de acuerdo|dale|adelante|perfecto|esta bien|por favor)\b"
)

DENY_PATTERN = re.compile(
    r"^\W*(?:no|nope|nah|don'?t|do not|cancel|never ?mind|wait|stop|not now|"
    r"mejor no|no gracias|cancela|espera|todavia no|aun no)\b"
)


def parse_confirmation(text: str) -> ConfirmationReply:
    """Negation is checked first so "no, don't" never reads as a yes."""
    folded = fold_text(text).strip()
    if not folded:
        return ConfirmationReply.UNCLEAR
    if DENY_PATTERN.search(folded):
        return ConfirmationReply.DENY
    if AFFIRM_PATTERN.search(folded):
        return ConfirmationReply.AFFIRM
    return ConfirmationReply.UNCLEAR
