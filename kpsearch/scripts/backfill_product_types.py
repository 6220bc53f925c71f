"""
Reclassify catalog products with the rule-based type classifier.

Products are read in fixed-size batches ordered by id and processed one batch
at a time; each batch is committed before the next is read.

Usage:
    python -m kpsearch.scripts.backfill_product_types [--batch-size 500] [--limit 1000] [--only-missing] [--dry-run]
"""
import argparse
import logging
import sys
import time
from collections import Counter
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from kpsearch.core.config import settings
from kpsearch.core.database import get_sync_db_session
from kpsearch.database.models import Product
from kpsearch.services.type_classifier import OTHER_TYPE_LABEL, ProductTypeClassifier, type_classifier

logger = logging.getLogger(__name__)


class TypeBackfillProcessor:
    """Assigns Product.type batch by batch."""

    def __init__(
        self,
        batch_size: int = 500,
        classifier: ProductTypeClassifier = type_classifier,
        only_missing: bool = False,
        dry_run: bool = False,
        session_factory=get_sync_db_session,
    ):
        self.batch_size = batch_size
        self.classifier = classifier
        self.only_missing = only_missing
        self.dry_run = dry_run
        self.session_factory = session_factory
        self.stats = {
            "total_processed": 0,
            "changed": 0,
            "unchanged": 0,
            "batches": 0,
            "last_processed_id": 0,
        }
        self.type_counts: Counter = Counter()

    def classify(self, product: Product) -> Optional[str]:
        categories = [category.title for category in (product.categories or [])]
        return self.classifier.classify_product(product, categories)

    def process_batch(self, session, after_id: int, size: Optional[int] = None) -> List[int]:
        """Classify the next batch; returns the ids it handled."""
        query = (
            select(Product)
            .options(selectinload(Product.categories))
            .where(Product.id > after_id)
            .order_by(Product.id)
            .limit(size or self.batch_size)
        )
        if self.only_missing:
            query = query.where(Product.type.is_(None))

        products = session.execute(query).scalars().all()
        for product in products:
            new_type = self.classify(product)
            self.type_counts[new_type or OTHER_TYPE_LABEL] += 1
            if new_type != product.type:
                logger.debug(f"Product {product.id} '{product.title}': {product.type} → {new_type}")
                if not self.dry_run:
                    product.type = new_type
                self.stats["changed"] += 1
            else:
                self.stats["unchanged"] += 1

        if self.dry_run:
            session.rollback()
        return [product.id for product in products]

    def run(self, limit: Optional[int] = None) -> Dict:
        start_time = time.time()
        after_id = 0

        while limit is None or self.stats["total_processed"] < limit:
            size = self.batch_size
            if limit is not None:
                size = min(size, limit - self.stats["total_processed"])

            with self.session_factory() as session:
                ids = self.process_batch(session, after_id, size)
            if not ids:
                break

            after_id = ids[-1]
            self.stats["total_processed"] += len(ids)
            self.stats["batches"] += 1
            self.stats["last_processed_id"] = after_id
            logger.info(
                f"Batch {self.stats['batches']}: {len(ids)} products (up to id {after_id}), "
                f"{self.stats['changed']} changed so far"
            )

        self.stats["elapsed_seconds"] = round(time.time() - start_time, 1)
        self._print_summary()
        return self.stats

    def _print_summary(self):
        logger.info("=" * 60)
        logger.info("TYPE BACKFILL SUMMARY" + (" (dry run)" if self.dry_run else ""))
        logger.info("=" * 60)
        logger.info(f"Processed: {self.stats['total_processed']} in {self.stats['batches']} batches")
        logger.info(f"Changed:   {self.stats['changed']}")
        logger.info(f"Unchanged: {self.stats['unchanged']}")
        for type_name, count in self.type_counts.most_common():
            logger.info(f"  {type_name:<16} {count}")
        logger.info("=" * 60)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Reclassify product types with the rule table")
    parser.add_argument("--batch-size", type=int, default=settings.backfill_batch_size, help="Products per batch")
    parser.add_argument("--limit", type=int, default=None, help="Stop after this many products")
    parser.add_argument("--only-missing", action="store_true", help="Only products without a type")
    parser.add_argument("--dry-run", action="store_true", help="Classify without writing")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    if args.batch_size < 1:
        logger.error("--batch-size must be at least 1")
        sys.exit(1)

    processor = TypeBackfillProcessor(
        batch_size=args.batch_size,
        only_missing=args.only_missing,
        dry_run=args.dry_run,
    )
    try:
        processor.run(limit=args.limit)
    except KeyboardInterrupt:
        logger.info(f"Interrupted by user after product id {processor.stats['last_processed_id']}")


if __name__ == "__main__":
    main()
