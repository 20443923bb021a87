"""Tests for services/products.py — CRUD and unit economics."""
import pytest

from commerce_ingest.db.models import Product
from commerce_ingest.services.products import (
    ProductService,
    amazon_contribution,
    dtc_contribution,
    editable_fields,
    product_economics,
    product_to_dict,
)


def _product(**kwargs):
    defaults = dict(
        sku="SKU-1", amazon_rrp=12.0, referral_percent=15, landed_cost=2.5, fba_fee=3.0,
        dtc_rrp=24.0, dtc_fulfillment_fee=1.0, dtc_courier=2.0,
    )
    defaults.update(kwargs)
    return Product(**defaults)


# ── economics ────────────────────────────────────────────────────────

def test_amazon_contribution():
    profit, margin = amazon_contribution(_product())
    # ex VAT 10.00, referral 1.80
    assert profit == pytest.approx(2.7)
    assert margin == pytest.approx(0.27)


def test_dtc_contribution_over_free_shipping_threshold():
    profit, margin = dtc_contribution(_product())
    # ex VAT 20.00, cost of sale 1 + 2 + 0.48
    assert profit == pytest.approx(14.02)
    assert margin == pytest.approx(0.701)


def test_dtc_contribution_under_threshold_offsets_shipping():
    profit, _ = dtc_contribution(_product(dtc_rrp=12.0))
    # cost of sale 1 + 2 + 0.24 - 1.99
    assert profit == pytest.approx(6.25)


def test_missing_prices_give_zero_margin():
    profit, margin = amazon_contribution(Product(sku="X"))
    assert profit == 0
    assert margin == 0.0


def test_product_economics():
    econ = product_economics(_product())

    assert econ["sku"] == "SKU-1"
    assert econ["amazonRrpExVat"] == 10.0
    assert econ["amazonReferralFee"] == 1.8
    assert econ["amazonGrossProfit"] == 7.5
    assert econ["amazonGrossMargin"] == 0.75
    assert econ["amazonContribProfit"] == 2.7
    assert econ["dtcRrpExVat"] == 20.0
    assert econ["dtcContribProfit"] == 14.02


def test_editable_fields_exclude_bookkeeping():
    fields = editable_fields()
    assert "landed_cost" in fields
    assert "sku" in fields
    for name in ("id", "org_id", "created_at", "updated_at"):
        assert name not in fields


# ── ProductService ───────────────────────────────────────────────────

def test_set_creates_then_updates(session):
    service = ProductService(session, 1)

    created = service.set("SKU-1", {"product_name": "Widget", "landed_cost": 2.5})
    updated = service.set("SKU-1", {"landed_cost": 2.75})

    assert created.id == updated.id
    assert updated.product_name == "Widget"
    assert updated.landed_cost == 2.75
    assert len(service.list()) == 1


def test_set_rejects_unknown_fields(session):
    with pytest.raises(ValueError, match="Unknown product field\\(s\\): colour"):
        ProductService(session, 1).set("SKU-1", {"colour": "red"})


def test_set_rejects_bookkeeping_columns(session):
    with pytest.raises(ValueError, match="org_id"):
        ProductService(session, 1).set("SKU-1", {"org_id": 2})


def test_list_sorted_and_active_only(session):
    service = ProductService(session, 1)
    service.set("SKU-B", {"active": True})
    service.set("SKU-A", {"active": True})
    service.set("SKU-C", {"active": False})

    assert [p.sku for p in service.list()] == ["SKU-A", "SKU-B", "SKU-C"]
    assert [p.sku for p in service.list(active_only=True)] == ["SKU-A", "SKU-B"]


def test_get_missing(session):
    assert ProductService(session, 1).get("NOPE") is None


def test_delete(session):
    service = ProductService(session, 1)
    service.set("SKU-1", {"brand": "Acme"})

    assert service.delete("SKU-1") is True
    assert service.delete("SKU-1") is False
    assert service.get("SKU-1") is None


def test_product_to_dict(session):
    product = ProductService(session, 1).set("SKU-1", {"brand": "Acme", "pieces_per_pack": 4})
    data = product_to_dict(product)
    assert data["sku"] == "SKU-1"
    assert data["pieces_per_pack"] == 4
    assert data["org_id"] == 1
