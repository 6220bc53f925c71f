"""
Unit tests for the product type backfill job
"""
from contextlib import contextmanager
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from kpsearch.scripts.backfill_product_types import TypeBackfillProcessor, main


class FakeSession:
    """Hands out pre-arranged batches, one per execute call"""

    def __init__(self, batches, statements):
        self.batches = batches
        self.statements = statements
        self.rollback = MagicMock()

    def execute(self, statement):
        self.statements.append(statement)
        result = MagicMock()
        result.scalars.return_value.all.return_value = self.batches.pop(0) if self.batches else []
        return result


def make_session_factory(batches):
    statements = []
    sessions = []

    @contextmanager
    def factory():
        session = FakeSession(batches, statements)
        sessions.append(session)
        yield session

    factory.statements = statements
    factory.sessions = sessions
    return factory


def literal_sql(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))


@pytest.fixture
def catalog_rows(product_factory):
    return [
        product_factory(id=1, title="Mok Sterrennacht", full_title=None, type=None, description=None, categories=[]),
        product_factory(id=2, title="Beeldje Hart van Brons", type="Beeld", categories=[]),
        product_factory(
            id=3, title="Kunstprint Zonnebloemen", full_title=None, type="Schilderij", description=None, categories=[]
        ),
    ]


class TestTypeBackfillProcessor:

    @pytest.mark.unit
    def test_classify_uses_category_titles(self, product_factory):
        processor = TypeBackfillProcessor(session_factory=make_session_factory([]))
        product = product_factory(
            title="Zonnebloemen",
            full_title=None,
            description=None,
            categories=[SimpleNamespace(title="Schilderijen")],
        )
        assert processor.classify(product) == "Schilderij"

    @pytest.mark.unit
    def test_run_updates_changed_types(self, catalog_rows):
        factory = make_session_factory([catalog_rows[:2], catalog_rows[2:]])
        processor = TypeBackfillProcessor(batch_size=2, session_factory=factory)

        stats = processor.run()

        assert [row.type for row in catalog_rows] == ["Mok", "Beeld", None]
        assert stats["total_processed"] == 3
        assert stats["batches"] == 2
        assert stats["changed"] == 2
        assert stats["unchanged"] == 1
        assert stats["last_processed_id"] == 3
        assert processor.type_counts == {"Mok": 1, "Beeld": 1, "Overig": 1}
        assert len(factory.sessions) == 3

    @pytest.mark.unit
    def test_keyset_pagination(self, catalog_rows):
        factory = make_session_factory([catalog_rows[:2], catalog_rows[2:]])
        TypeBackfillProcessor(batch_size=2, session_factory=factory).run()

        second = literal_sql(factory.statements[1])
        assert "products.id > 2" in second
        assert "ORDER BY products.id" in second

    @pytest.mark.unit
    def test_dry_run_leaves_rows_untouched(self, catalog_rows):
        factory = make_session_factory([catalog_rows])
        processor = TypeBackfillProcessor(batch_size=10, dry_run=True, session_factory=factory)

        stats = processor.run()

        assert [row.type for row in catalog_rows] == [None, "Beeld", "Schilderij"]
        assert stats["changed"] == 2
        factory.sessions[0].rollback.assert_called_once()

    @pytest.mark.unit
    def test_limit_shrinks_last_batch(self, catalog_rows):
        factory = make_session_factory([catalog_rows[:2], catalog_rows[2:]])
        processor = TypeBackfillProcessor(batch_size=2, session_factory=factory)

        stats = processor.run(limit=3)

        assert stats["total_processed"] == 3
        assert "LIMIT 1" in literal_sql(factory.statements[1])
        assert len(factory.sessions) == 2

    @pytest.mark.unit
    def test_only_missing_filters_on_null_type(self):
        factory = make_session_factory([])
        TypeBackfillProcessor(only_missing=True, session_factory=factory).run()

        assert "products.type IS NULL" in literal_sql(factory.statements[0])


class TestCommandLine:

    @pytest.mark.unit
    def test_rejects_non_positive_batch_size(self):
        with pytest.raises(SystemExit):
            main(["--batch-size", "0"])

    @pytest.mark.unit
    def test_passes_flags(self, monkeypatch):
        captured = {}

        class RecordingProcessor:
            def __init__(self, **kwargs):
                captured.update(kwargs)
                self.stats = {"last_processed_id": 0}

            def run(self, limit=None):
                captured["limit"] = limit

        monkeypatch.setattr("kpsearch.scripts.backfill_product_types.TypeBackfillProcessor", RecordingProcessor)

        main(["--batch-size", "50", "--limit", "200", "--only-missing", "--dry-run"])

        assert captured == {"batch_size": 50, "only_missing": True, "dry_run": True, "limit": 200}
