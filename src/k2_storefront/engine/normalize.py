"""
Text normalization shared by search tokenization and trigger matching.

Latin and Arabic queries are folded onto the same form so that a
diacritic-bearing Arabic query matches diacritic-free catalog text.
"""
import re
import unicodedata

# Arabic tashkeel (diacritics) and tatweel (kashida)
TASHKEEL_AND_TATWEEL = re.compile(r"[\u0610-\u061A\u0640\u064B-\u065F\u0670]")

# Common punctuation in both Latin and Arabic
PUNCTUATION = re.compile(r"[؟،؛.,:;!?'\"()\[\]{}\-_]")

WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """
    Normalize text for matching: lowercase, NFKC, strip Arabic diacritics,
    replace punctuation with spaces, collapse whitespace.
    """
    if not text:
        return ""
    folded = unicodedata.normalize("NFKC", text.lower())
    folded = TASHKEEL_AND_TATWEEL.sub("", folded)
    folded = PUNCTUATION.sub(" ", folded)
    return WHITESPACE.sub(" ", folded).strip()
