"""Product catalogue CRUD and per-channel unit economics."""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from commerce_ingest.db.models import Product
from commerce_ingest.db.upsert import upsert

VAT_RATE = 1.2
PAYMENT_FEE_RATE = 0.02
FREE_SHIPPING_THRESHOLD = 20.0
CUSTOMER_SHIPPING_CHARGE = 1.99

# Columns a caller may not set directly
_READ_ONLY = {"id", "org_id", "created_at", "updated_at"}


def editable_fields() -> list[str]:
    return [c.name for c in Product.__table__.columns if c.name not in _READ_ONLY]


def _n(value: Any) -> float:
    return float(value) if value not in (None, "") else 0.0


def amazon_contribution(product: Product) -> tuple[float, float]:
    """(profit, margin) per unit sold on Amazon."""
    ex_vat = _n(product.amazon_rrp) / VAT_RATE
    referral_fee = _n(product.amazon_rrp) * _n(product.referral_percent) / 100
    profit = ex_vat - (_n(product.landed_cost) + _n(product.fba_fee) + referral_fee)
    return profit, (profit / ex_vat if ex_vat else 0.0)


def dtc_contribution(product: Product) -> tuple[float, float]:
    """(profit, margin) per unit sold direct.

    Orders under the free-shipping threshold carry a shipping charge paid
    by the customer, which offsets cost of sale.
    """
    rrp = _n(product.dtc_rrp)
    ex_vat = rrp / VAT_RATE
    customer_shipping = 0.0 if rrp >= FREE_SHIPPING_THRESHOLD else CUSTOMER_SHIPPING_CHARGE
    cost_of_sale = (
        _n(product.dtc_fulfillment_fee) + _n(product.dtc_courier) + rrp * PAYMENT_FEE_RATE - customer_shipping
    )
    profit = ex_vat - (_n(product.landed_cost) + cost_of_sale)
    return profit, (profit / ex_vat if ex_vat else 0.0)


def product_economics(product: Product) -> dict[str, Any]:
    amazon_ex_vat = _n(product.amazon_rrp) / VAT_RATE
    amazon_profit, amazon_margin = amazon_contribution(product)
    dtc_profit, dtc_margin = dtc_contribution(product)
    gross_profit = amazon_ex_vat - _n(product.landed_cost)
    return {
        "sku": product.sku,
        "amazonRrpExVat": round(amazon_ex_vat, 2),
        "amazonReferralFee": round(_n(product.amazon_rrp) * _n(product.referral_percent) / 100, 2),
        "amazonGrossProfit": round(gross_profit, 2),
        "amazonGrossMargin": round(gross_profit / amazon_ex_vat, 4) if amazon_ex_vat else 0.0,
        "amazonContribProfit": round(amazon_profit, 2),
        "amazonContribMargin": round(amazon_margin, 4),
        "dtcRrpExVat": round(_n(product.dtc_rrp) / VAT_RATE, 2),
        "dtcContribProfit": round(dtc_profit, 2),
        "dtcContribMargin": round(dtc_margin, 4),
    }


def product_to_dict(product: Product) -> dict[str, Any]:
    return {c.name: getattr(product, c.name) for c in Product.__table__.columns}


class ProductService:
    def __init__(self, session: Session, org_id: int) -> None:
        self._session = session
        self._org_id = org_id

    def list(self, active_only: bool = False) -> list[Product]:
        stmt = select(Product).where(Product.org_id == self._org_id).order_by(Product.sku)
        if active_only:
            stmt = stmt.where(Product.active.is_(True))
        return list(self._session.scalars(stmt))

    def get(self, sku: str) -> Product | None:
        return self._session.scalar(select(Product).where(Product.org_id == self._org_id, Product.sku == sku))

    def set(self, sku: str, fields: dict[str, Any]) -> Product:
        """Create the product or update the given fields.

        Raises:
            ValueError: If a field is not an editable product column.
        """
        unknown = sorted(set(fields) - set(editable_fields()))
        if unknown:
            raise ValueError(f"Unknown product field(s): {', '.join(unknown)}")

        upsert(self._session, Product, {**fields, "org_id": self._org_id, "sku": sku})
        self._session.commit()
        product = self.get(sku)
        self._session.refresh(product)
        return product  # type: ignore[return-value]

    def delete(self, sku: str) -> bool:
        result = self._session.execute(delete(Product).where(Product.org_id == self._org_id, Product.sku == sku))
        self._session.commit()
        return bool(result.rowcount)
