from kpsearch.database.models import Base, Category, Product, product_categories

__all__ = ["Base", "Category", "Product", "product_categories"]
