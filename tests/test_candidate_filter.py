from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from candidate_filter import filter_candidates, rejection_reason, summarize_candidates
from candidate_source import parse_candidate_payload
from models import NO_LINK, PLACEHOLDER_IMAGE_URL, SearchMetadata, Strategy


def raw(name="Widget", price=100, brand="Acme", category="Gadgets", **extra):
    item = {"name": name, "price": price, "brand": brand, "category": category}
    item.update(extra)
    return item


def names(candidates):
    return [c.name for c in candidates]


def test_malformed_entries_are_dropped_not_raised():
    items = [
        raw("ok"),
        raw(name=""),
        raw("no brand", brand=None),
        raw("string price", price="12.99"),
        raw("negative", price=-1),
        raw("bad rating", rating=7),
        raw("bool price", price=True),
        "not a dict",
        {"name": "missing price", "brand": "Acme", "category": "Gadgets"},
    ]
    assert names(filter_candidates(items, Strategy(type="fancy"))) == ["ok"]


def test_zero_price_is_a_valid_price():
    assert names(filter_candidates([raw("free", price=0)], Strategy(type="fancy"))) == ["free"]


def test_price_bounds():
    items = [raw("cheap", price=10), raw("mid", price=50), raw("pricey", price=500)]
    strategy = Strategy(type="cost-effective", min_price=20, max_price=100)
    assert names(filter_candidates(items, strategy)) == ["mid"]


def test_zero_max_price_is_enforced():
    items = [raw("free", price=0), raw("paid", price=1)]
    strategy = Strategy(type="price-priority", max_price=0)
    assert names(filter_candidates(items, strategy)) == ["free"]


def test_min_rating_treats_missing_rating_as_zero():
    items = [raw("good", rating=4.5), raw("unrated"), raw("meh", rating=3.0)]
    strategy = Strategy(type="fancy", min_rating=4)
    assert names(filter_candidates(items, strategy)) == ["good"]


def test_preferred_and_excluded_brands():
    items = [raw("a", brand="Apple"), raw("s", brand="Samsung"), raw("x", brand="Xiaomi")]
    preferred = Strategy(type="fancy", preferred_brands=["Apple", "Samsung"])
    assert names(filter_candidates(items, preferred)) == ["a", "s"]

    excluded = Strategy(type="fancy", excluded_brands=["Samsung"])
    assert names(filter_candidates(items, excluded)) == ["a", "x"]


def test_survivors_satisfy_every_constraint():
    items = [
        raw(f"item{i}", price=p, brand=b, rating=r)
        for i, (p, b, r) in enumerate([
            (99, "Apple", 4.9), (199, "Apple", 3.5), (299, "Google", 4.2),
            (399, "Xiaomi", 4.8), (49, "Google", 4.6), (150, "Nokia", 4.4),
        ])
    ]
    strategy = Strategy(
        type="cost-effective", min_price=50, max_price=350, min_rating=4.0,
        preferred_brands=["Apple", "Google", "Xiaomi"], excluded_brands=["Xiaomi"],
    )
    kept = filter_candidates(items, strategy)
    assert names(kept) == ["item0", "item2"]
    for c in kept:
        assert 50 <= c.price <= 350
        assert c.rating >= 4.0
        assert c.brand in ("Apple", "Google")


def test_no_constraints_keeps_valid_items_in_order():
    items = [raw(f"item{i}", price=i * 10) for i in range(5)]
    assert names(filter_candidates(items, Strategy(type="fancy"))) == [
        "item0", "item1", "item2", "item3", "item4",
    ]
    assert names(filter_candidates(items)) == names(filter_candidates(items, Strategy(type="fancy")))


def test_normalization_fills_defaults():
    c = filter_candidates([raw()])[0]
    assert c.image_url == PLACEHOLDER_IMAGE_URL
    assert c.product_url == NO_LINK
    assert c.rating == 0
    assert c.review_count == 0
    assert c.source_platform == "Unknown"
    assert c.description == ""
    assert c.features == []
    assert c.specifications == {}


def test_normalization_accepts_snake_case_and_fixes_urls():
    c = filter_candidates([raw(
        image_url="cdn.example.com/a.jpg",
        product_url="https://shop.example.com/p/1",
        review_count=12,
        source_platform="Amazon",
        features=["fast"],
    )])[0]
    assert c.image_url == "https://cdn.example.com/a.jpg"
    assert c.product_url == "https://shop.example.com/p/1"
    assert c.review_count == 12
    assert c.source_platform == "Amazon"
    assert c.features == ["fast"]


def test_malformed_url_falls_back_to_placeholder():
    c = filter_candidates([raw(imageUrl="not a url", productUrl="also bad")])[0]
    assert c.image_url == PLACEHOLDER_IMAGE_URL
    assert c.product_url == NO_LINK


def test_non_list_payload_yields_nothing():
    assert filter_candidates({"name": "x"}) == []
    assert filter_candidates(None) == []


def test_rejection_reason_explains():
    assert rejection_reason(raw(price=500), Strategy(type="fancy", max_price=100)).startswith("price")
    assert rejection_reason(raw(), None) is None


def test_summarize_candidates():
    kept = filter_candidates([raw("a", price=10, brand="X"), raw("b", price=30, brand="Y")])
    summary = summarize_candidates(kept)
    assert summary["productCount"] == 2
    assert summary["priceRange"] == {"min": 10, "max": 30, "average": 20}
    assert summary["brandCount"] == 2


def test_non_finite_numbers_are_rejected():
    items = parse_candidate_payload(
        '[{"name": "nan", "price": NaN, "brand": "Acme", "category": "Gadgets"},'
        ' {"name": "inf", "price": Infinity, "brand": "Acme", "category": "Gadgets"},'
        ' {"name": "nan rating", "price": 50, "brand": "Acme", "category": "Gadgets",'
        '  "rating": NaN},'
        ' {"name": "ok", "price": 50, "brand": "Acme", "category": "Gadgets"}]'
    )
    kept = filter_candidates(items, Strategy(type="fancy", max_price=100))
    assert names(kept) == ["ok"]


@pytest.mark.parametrize("field", ["maxPrice", "minPrice", "minRating"])
def test_strategy_rejects_non_finite_bounds(field):
    with pytest.raises(PydanticValidationError):
        Strategy.model_validate({"type": "fancy", field: float("nan")})
    with pytest.raises(PydanticValidationError):
        Strategy.model_validate({"type": "fancy", field: float("inf")})


def test_mistyped_optional_fields_are_defaulted_not_raised():
    items = [
        raw("Good", sourcePlatform="Amazon", description="solid"),
        raw("Odd", description={"short": "x"}, sourcePlatform=7,
            features="fast", specifications=["a"], reviewCount="many"),
        raw("Numeric", description=42),
    ]
    kept = filter_candidates(items, Strategy(type="fancy"))
    assert names(kept) == ["Good", "Odd", "Numeric"]
    odd = kept[1]
    assert odd.description == ""
    assert odd.source_platform == "Unknown"
    assert odd.features == []
    assert odd.specifications == {}
    assert odd.review_count == 0
    assert kept[0].source_platform == "Amazon"


def test_summary_carries_search_metadata():
    meta = SearchMetadata(query="phone", strategy="fancy", source="gemini")
    summary = summarize_candidates(filter_candidates([raw("a", price=10)]), meta)
    assert summary["searchId"] == meta.search_id
    assert summary["query"] == "phone"
    assert summary["strategy"] == "fancy"
    assert summary["source"] == "gemini"
    assert "timestamp" in summary
    assert summary["productCount"] == 1
