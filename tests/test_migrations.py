import pytest
from sqlalchemy import create_engine, inspect, text

from studio_api.database.migration_runner import upgrade_head
from studio_api.models.orm_models import Base


@pytest.fixture
def sqlite_url(tmp_path):
    return f"sqlite:///{tmp_path / 'studio.db'}"


@pytest.mark.integration
@pytest.mark.slow
class TestBaselineMigration:
    def test_schema_matches_models(self, sqlite_url):
        upgrade_head(sqlalchemy_url=sqlite_url)

        engine = create_engine(sqlite_url)
        try:
            insp = inspect(engine)
            assert set(insp.get_table_names()) == set(Base.metadata.tables) | {"alembic_version"}
            for table in Base.metadata.sorted_tables:
                columns = {c["name"] for c in insp.get_columns(table.name)}
                assert columns == {c.name for c in table.columns}, table.name
        finally:
            engine.dispose()

    def test_upgrade_is_repeatable(self, sqlite_url):
        upgrade_head(sqlalchemy_url=sqlite_url)
        upgrade_head(sqlalchemy_url=sqlite_url, lock_name="tenant:acme")

        engine = create_engine(sqlite_url)
        try:
            with engine.connect() as conn:
                version = conn.execute(text("SELECT version_num FROM alembic_version")).scalar()
            assert version == "0002_subscriptions_applications_resets"
        finally:
            engine.dispose()

    def test_empty_url_rejected(self):
        with pytest.raises(ValueError):
            upgrade_head(sqlalchemy_url=" ")
