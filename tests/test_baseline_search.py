import pytest

from k2_storefront.catalog.product_catalog import ProductCatalog
from k2_storefront.engine.baseline_search import clamp_limit, search_products, tokenize

from conftest import make_product


@pytest.fixture
def tiny_catalog():
    return ProductCatalog([
        make_product("p1", title="Blue Backpack", brand="Roco", category="school_bags"),
        make_product("p2", title="Roco Ruler", brand="Roco", category="stationery"),
        make_product("p3", title="Office Chair", brand="Jarir", category="office_furniture"),
        make_product("p4", title="Red Backpack", brand="Atrium", category="school_bags", in_stock=False),
    ])


def test_tokenize_splits_on_space_and_slash():
    assert tokenize("Pens/Markers  for kids") == ["pens", "markers", "for", "kids"]
    assert tokenize("   ") == []


@pytest.mark.parametrize("raw, expected", [
    (None, 20),
    ("", 20),
    ("abc", 20),
    ("0", 20),
    ("-3", 20),
    ("5", 5),
    ("500", 50),
    (7, 7),
])
def test_clamp_limit(raw, expected):
    assert clamp_limit(raw) == expected


def test_brand_outranks_title_and_category(tiny_catalog):
    results = search_products(tiny_catalog, "roco")
    # p1 and p2 both score on brand; p2 also has "roco" in its title
    assert [p.id for p in results] == ["p2", "p1"]


def test_category_underscores_match_as_spaces(tiny_catalog):
    results = search_products(tiny_catalog, "furniture")
    assert [p.id for p in results] == ["p3"]


def test_out_of_stock_filtered_unless_requested(tiny_catalog):
    assert [p.id for p in search_products(tiny_catalog, "backpack")] == ["p1"]
    with_oos = search_products(tiny_catalog, "backpack", include_oos=True)
    assert [p.id for p in with_oos] == ["p1", "p4"]


def test_zero_score_dropped(tiny_catalog):
    assert search_products(tiny_catalog, "telescope") == []


def test_empty_query_returns_catalog_order(tiny_catalog):
    assert [p.id for p in search_products(tiny_catalog, "")] == ["p1", "p2", "p3"]


def test_limit_applies(tiny_catalog):
    assert len(search_products(tiny_catalog, "", limit=2)) == 2


def test_search_real_catalog(catalog):
    results = search_products(catalog, "casio calculator")
    assert results[0].id == "jarir_casio_fx991ex_calculator"
    assert all(p.in_stock for p in results)
