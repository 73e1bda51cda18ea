"""
Best-effort removal of gift/personalization wording from offer UI.

Only used when an identity-gated offer is shown to a shopper without identity
and the scenario did not author an identity_absent_ui. Every use is an
authoring defect and is recorded by the engine as a failed guardrail.
"""
import re

from .models import OfferUI

# English and Arabic phrasings seen in authored scenarios
GIFT_PATTERN = re.compile(
    r"(?:free\s+)?(?:book\s+)?gifts?"
    r"|personali[sz]ed|personal\s+pick"
    r"|next\s+in\s+your\s+series"
    r"|just\s+for\s+you"
    r"|هدية|هدايا|مجانا\s+لك|مخصص(?:ة)?|خاص\s+بك",
    re.IGNORECASE,
)

# Separators between marketing phrases: "+", em/en dash, middle dot, comma
SEGMENT_SEPARATOR = re.compile(r"(\s*(?:\+|—|–|·|,)\s*)")

PARENTHETICAL = re.compile(r"\s*\([^)]*\)")


def _strip_phrases(text: str) -> str:
    """Drop every segment of the text that mentions a gift or personalization."""
    if not text:
        return text

    # Parentheticals first, e.g. "(next in your series)"
    text = PARENTHETICAL.sub(
        lambda m: "" if GIFT_PATTERN.search(m.group(0)) else m.group(0), text
    )

    parts = SEGMENT_SEPARATOR.split(text)
    segments = parts[0::2]
    separators = parts[1::2]

    kept = []
    for idx, segment in enumerate(segments):
        if not segment.strip() or GIFT_PATTERN.search(segment):
            continue
        sep = separators[idx - 1] if idx > 0 else ""
        kept.append((sep, segment.strip()))

    if not kept:
        return ""

    out = kept[0][1]
    for sep, segment in kept[1:]:
        out += sep + segment

    # Anything left inline
    out = GIFT_PATTERN.sub("", out)
    return re.sub(r"\s{2,}", " ", out).strip(" +—–·,")


def contains_gift_marker(ui: OfferUI) -> bool:
    """True when any UI field still mentions a gift or personalization."""
    texts = [ui.title, ui.subtitle] + list(ui.badges)
    return any(GIFT_PATTERN.search(t or "") for t in texts)


def sanitize_offer_ui(ui: OfferUI) -> OfferUI:
    """Return a copy of the UI with gift/personalization phrases and badges removed."""
    title = _strip_phrases(ui.title)
    subtitle = _strip_phrases(ui.subtitle)
    badges = [b for b in ui.badges if not GIFT_PATTERN.search(b)]
    return OfferUI(title=title or "Offer", subtitle=subtitle, badges=badges)
