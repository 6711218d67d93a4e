from sqlalchemy import inspect

from civic_portal import main


def test_startup_creates_complaint_columns_and_indexes(db_engine, monkeypatch) -> None:
    monkeypatch.setattr(main, 'engine', db_engine)

    main.initialize_database()

    inspector = inspect(db_engine)
    columns = {column['name'] for column in inspector.get_columns('complaints')}
    indexes = {index['name'] for index in inspector.get_indexes('complaints')}
    assert {'response_read', 'version'} <= columns
    assert {'idx_complaints_owner_created', 'idx_complaints_status_category'} <= indexes
    assert 'revoked_tokens' in inspector.get_table_names()
