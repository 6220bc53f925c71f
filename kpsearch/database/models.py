"""
Database models for the Kunstpakket catalog.

Rows are written by the external catalog sync; the search API only reads
them, apart from the type backfill job which updates ``Product.type``.
"""
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Computed,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.dialects.postgresql import TSVECTOR
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship

Base = declarative_base()

# Dutch stemming, weighted title > full title > description
SEARCH_VECTOR_EXPRESSION = (
    "setweight(to_tsvector('dutch', coalesce(title, '')), 'A') || "
    "setweight(to_tsvector('dutch', coalesce(full_title, '')), 'B') || "
    "setweight(to_tsvector('dutch', coalesce(description, '')), 'C')"
)


product_categories = Table(
    "product_categories",
    Base.metadata,
    Column("product_id", BigInteger, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", BigInteger, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)


class Category(Base):
    """Catalog category as delivered by the shop platform"""

    __tablename__ = "categories"

    id = Column(BigInteger, primary_key=True)
    title = Column(String(255), nullable=False, index=True)
    url = Column(Text, nullable=True)
    is_visible = Column(Boolean, default=True)

    products = relationship("Product", secondary=product_categories, back_populates="categories")

    def __repr__(self):
        return f"<Category(id={self.id}, title='{self.title}')>"


class Product(Base):
    """Sellable catalog product"""

    __tablename__ = "products"

    id = Column(BigInteger, primary_key=True)
    title = Column(String(500), nullable=False)
    full_title = Column(String(1000), nullable=True)
    description = Column(Text, nullable=True)
    content = Column(Text, nullable=True)
    brand = Column(String(255), nullable=True, index=True)
    artist = Column(String(255), nullable=True, index=True)
    type = Column(String(50), nullable=True)  # NULL is displayed as "Overig"

    price = Column(Float, nullable=False)
    old_price = Column(Float, nullable=True)
    stock = Column(Integer, default=0)
    stock_sold = Column(Integer, nullable=True, default=0)

    image = Column(Text, nullable=True)
    url = Column(Text, nullable=True)
    is_visible = Column(Boolean, default=True, nullable=False)

    search_vector = Column(TSVECTOR, Computed(SEARCH_VECTOR_EXPRESSION, persisted=True))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    categories = relationship("Category", secondary=product_categories, back_populates="products")

    __table_args__ = (
        Index("idx_products_search_vector", "search_vector", postgresql_using="gin"),
        Index("idx_products_type", "type"),
        Index("idx_products_price", "price"),
        Index("idx_products_stock_sold", "stock_sold"),
        Index("idx_products_visible", "is_visible"),
    )

    def __repr__(self):
        return f"<Product(id={self.id}, title='{self.title[:50] if self.title else ''}...', type='{self.type}')>"
