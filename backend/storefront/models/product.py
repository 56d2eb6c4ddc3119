"""
Product Model

Only the catalogue fields the order lifecycle reads: prices and stock.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean
from datetime import datetime

from storefront.db.base import Base


class Product(Base):
    """Sellable product with retail/wholesale prices and on-hand stock"""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)

    # Pricing
    price_retail = Column(Numeric(10, 2), nullable=False)
    price_wholesale = Column(Numeric(10, 2), nullable=True)

    # Stock on hand; decremented at checkout, restored on cancel/return
    quantity = Column(Integer, nullable=False, default=0)

    # Per-product wholesale ordering rules; None means unrestricted
    wholesale_min_quantity = Column(Integer, nullable=True)
    wholesale_multiplicity = Column(Integer, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Product {self.code} qty={self.quantity}>"

    def price_for(self, client_type: str):
        """Unit price for a client type; wholesale falls back to retail."""
        if client_type == "wholesale" and self.price_wholesale is not None:
            return self.price_wholesale
        return self.price_retail
