"""
Baseline Search - plain relevance-ranked catalog search.

Used when K2 mode is off, or when no scenario trigger matched the query.
"""
import re

import pandas as pd

from ..catalog.product_catalog import Product, ProductCatalog
from .normalize import normalize_text

# Per-field weights for a token found in the field
FIELD_WEIGHTS = {
    'brand': 3,
    'title': 2,
    'category': 1,
}

DEFAULT_LIMIT = 20
MAX_LIMIT = 50

TOKEN_SPLIT = re.compile(r"[\s/]+")


def tokenize(query: str) -> list[str]:
    """Split a normalized query into non-empty search tokens."""
    return [t for t in TOKEN_SPLIT.split(normalize_text(query)) if t]


def clamp_limit(raw_limit, default: int = DEFAULT_LIMIT, maximum: int = MAX_LIMIT) -> int:
    """Coerce a user-supplied limit into [1, maximum], falling back to default."""
    try:
        limit = int(raw_limit)
    except (TypeError, ValueError):
        return default
    if limit <= 0:
        return default
    return min(limit, maximum)


def score_frame(frame: pd.DataFrame, tokens: list[str]) -> pd.Series:
    """Token-overlap score for every row of the catalog frame."""
    scores = pd.Series(0, index=frame.index, dtype='int64')
    if frame.empty:
        return scores

    fields = {
        'brand': frame['brand'].map(normalize_text),
        'title': frame['title'].map(normalize_text),
        'category': frame['category'].str.replace('_', ' ', regex=False).map(normalize_text),
    }
    for token in tokens:
        for name, column in fields.items():
            hits = column.str.contains(token, regex=False)
            scores = scores + hits.astype('int64') * FIELD_WEIGHTS[name]
    return scores


def search_products(
    catalog: ProductCatalog,
    query: str,
    limit: int = DEFAULT_LIMIT,
    include_oos: bool = False,
) -> list[Product]:
    """
    Rank catalog products against a free-text query.

    Out-of-stock products are filtered unless include_oos is set. Products
    scoring zero are dropped; ties keep catalog order.
    """
    frame = catalog.frame
    if not include_oos:
        frame = frame[frame['in_stock']]

    tokens = tokenize(query)
    if tokens:
        scored = frame.assign(score=score_frame(frame, tokens))
        scored = scored[scored['score'] > 0]
        frame = scored.sort_values('score', ascending=False, kind='stable')

    ids = frame['id'].head(limit).tolist()
    return [catalog.products[sku_id] for sku_id in ids]
