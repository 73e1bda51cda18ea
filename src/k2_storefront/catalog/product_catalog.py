"""
Product Catalog - Loads the static storefront catalog once per process.

Products are held both as dataclasses (for the scenario engine and checkout)
and as a pandas frame (for relevance search over brand/title/category).
"""
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from ..config.settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class Availability:
    in_stock: bool
    stock_level: int = 0


@dataclass
class Product:
    """A catalog entry. Immutable for the lifetime of the process."""
    id: str
    title: str
    brand: str
    category: str
    price: float  # SAR decimals
    availability: Availability
    default_promise: str = ""
    currency: str = "SAR"
    image_url: str = ""
    attributes: dict = field(default_factory=dict)

    # Merchant-confidential; never part of a public payload
    margin_bps: Optional[int] = None
    unit_cost: Optional[float] = None
    fulfillment_cost: Optional[float] = None
    velocity: Optional[str] = None
    lifecycle_stage: Optional[str] = None

    @property
    def in_stock(self) -> bool:
        return self.availability.in_stock

    def to_public(self) -> dict:
        """Consumer-facing product shape, stripped of merchant-confidential fields."""
        return {
            "id": self.id,
            "title": self.title,
            "brand": self.brand,
            "category": self.category,
            "price": self.price,
            "currency": self.currency,
            "image_url": self.image_url,
            "attributes": dict(self.attributes),
            "availability": {
                "in_stock": self.availability.in_stock,
                "stock_level": self.availability.stock_level,
            },
            "delivery": {"default_promise": self.default_promise},
        }

    @classmethod
    def from_dict(cls, row: dict) -> 'Product':
        """Create a Product from a catalog fixture record."""
        availability = row.get('availability') or {}
        delivery = row.get('delivery') or {}
        return cls(
            id=str(row['id']).strip(),
            title=row.get('title', ''),
            brand=row.get('brand', ''),
            category=row.get('category', ''),
            price=float(row.get('price', 0)),
            currency=row.get('currency', 'SAR'),
            availability=Availability(
                in_stock=bool(availability.get('in_stock', False)),
                stock_level=int(availability.get('stock_level', 0) or 0),
            ),
            default_promise=delivery.get('default_promise', ''),
            image_url=row.get('image_url', ''),
            attributes=dict(row.get('attributes') or {}),
            margin_bps=row.get('margin_bps'),
            unit_cost=row.get('unit_cost'),
            fulfillment_cost=row.get('fulfillment_cost'),
            velocity=row.get('velocity'),
            lifecycle_stage=row.get('lifecycle_stage'),
        )


class ProductCatalog:
    """
    In-memory catalog keyed by stable SKU id.

    Catalog order is preserved; baseline search relies on it for ties.
    """

    def __init__(self, products: Iterable[Product]):
        self.products: dict[str, Product] = {}
        for product in products:
            if product.id in self.products:
                logger.warning("Duplicate SKU %s in catalog, keeping first entry", product.id)
                continue
            self.products[product.id] = product

        self.frame = pd.DataFrame(
            [
                {
                    'id': p.id,
                    'title': p.title,
                    'brand': p.brand,
                    'category': p.category,
                    'in_stock': p.in_stock,
                }
                for p in self.products.values()
            ],
            columns=['id', 'title', 'brand', 'category', 'in_stock'],
        )

    @classmethod
    def from_json(cls, path: Optional[Path] = None) -> 'ProductCatalog':
        """Load the catalog fixture from disk."""
        path = path or get_settings().catalog_path
        if not path.exists():
            raise FileNotFoundError(f"Catalog fixture not found at {path}.")

        with open(path, 'r', encoding='utf-8') as f:
            rows = json.load(f)

        catalog = cls(Product.from_dict(row) for row in rows)
        logger.info("Loaded %d products from %s", len(catalog), path.name)
        return catalog

    def get(self, sku_id: str) -> Optional[Product]:
        return self.products.get(sku_id)

    def __contains__(self, sku_id: str) -> bool:
        return sku_id in self.products

    def __len__(self) -> int:
        return len(self.products)

    def __iter__(self):
        return iter(self.products.values())
