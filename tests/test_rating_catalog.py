import pytest

from kpi_portal.services.rating_catalog import (
    ALLOWED_RATINGS,
    BELOW,
    CUSTOM,
    EXCEEDS,
    MEETS,
    NOT_RATED,
    RatingCatalog,
    item_rating_label,
    quantize,
    rating_label,
    rating_percentage,
)

@pytest.mark.parametrize("value", ALLOWED_RATINGS)
def test_quantize_keeps_allowed_values(value):
    assert quantize(value) == value
    assert quantize(quantize(value)) == value

@pytest.mark.parametrize("value", [-50.0, 0.0, 0.3, 1.1, 1.3, 1.49, 2.0, 1e9])
def test_quantize_always_returns_member(value):
    assert quantize(value) in ALLOWED_RATINGS

def test_quantize_snaps_extremes_to_the_ends():
    assert quantize(-10) == 1.00
    assert quantize(99) == 1.50

def test_quantize_tie_keeps_first_declared():
    assert quantize(1.125) == 1.00
    assert quantize(1.375) == 1.25

def test_rating_label_tiers():
    assert rating_label(1.45) == EXCEEDS
    assert rating_label(1.40) == EXCEEDS
    assert rating_label(1.20) == MEETS
    assert rating_label(1.05) == BELOW
    assert rating_label(0) == NOT_RATED

def test_item_rating_label_is_exact_match():
    assert item_rating_label(1.0) == BELOW
    assert item_rating_label(1.25) == MEETS
    assert item_rating_label(1.5) == EXCEEDS
    assert item_rating_label(0) == NOT_RATED
    assert item_rating_label(1.3) == CUSTOM

def test_catalog_falls_back_to_default_scale():
    catalog = RatingCatalog([])
    assert catalog.values("quarterly") == [1.00, 1.25, 1.50]
    assert catalog.max_rating("yearly") == 1.50

def test_catalog_orders_and_filters_by_period():
    catalog = RatingCatalog([
        {"rating_type": "yearly", "rating_value": 2.0, "label": "Top"},
        {"rating_type": "quarterly", "rating_value": 1.5, "label": "High"},
        {"rating_type": "quarterly", "rating_value": 1.0, "label": "Low"},
        {"rating_type": "qualitative", "rating_value": 1.5, "label": "Exceeds"},
    ])
    assert catalog.values("quarterly") == [1.0, 1.5]
    assert catalog.max_rating("yearly") == 2.0
    assert [o.label for o in catalog.qualitative()] == ["Exceeds"]
    assert catalog.label_for(1.0, "quarterly") == "Low"
    assert catalog.is_admissible(1.5, "quarterly")
    assert not catalog.is_admissible(1.25, "quarterly")

def test_empty_catalog_without_fallback_has_zero_max():
    catalog = RatingCatalog([], fallback=False)
    assert catalog.max_rating("quarterly") == 0.0
    assert rating_percentage(1.25, catalog.max_rating("quarterly")) == 0.0

def test_rating_percentage():
    assert rating_percentage(1.5, 1.5) == pytest.approx(100.0)
    assert rating_percentage(1.0, 1.5) == pytest.approx(66.6667, abs=0.001)
