"""
Alembic revisions against the model metadata.
"""

import sqlalchemy as sa
from flask_migrate import upgrade

from tiretrack import create_app
from tiretrack.extensions import db


def test_upgrade_builds_the_model_schema(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'migrated.sqlite3'}",
    })

    with app.app_context():
        upgrade()

        inspector = sa.inspect(db.engine)
        migrated = {
            name: {column["name"] for column in inspector.get_columns(name)}
            for name in inspector.get_table_names()
            if name != "alembic_version"
        }
        expected = {table.name: {column.name for column in table.columns} for table in db.metadata.sorted_tables}
        assert migrated == expected

        checks = {c["name"] for c in inspector.get_check_constraints("purchase_order_items")}
        assert "ck_po_items_received_le_quantity" in checks
        tire_fks = {fk["referred_table"] for fk in inspector.get_foreign_keys("tires")}
        assert "retread_order_items" in tire_fks

        db.engine.dispose()
