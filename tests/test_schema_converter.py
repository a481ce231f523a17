import pytest

from schemaport.errors import ConversionError
from schemaport.services.schema_analysis import SchemaAnalyzer
from schemaport.services.schema_analysis.models import Column, Index, SchemaModel, Table
from schemaport.services.sql_conversion import SchemaConverter
from schemaport.services.sql_conversion.utils.dependency_order import order_tables
from schemaport.services.sql_conversion.utils.manual_review_logger import ManualReviewLogger

SCENARIO_A_CHILD_FIRST = """
CREATE TABLE tbl_order (order_id INT AUTO_INCREMENT PRIMARY KEY, product_id INT);
CREATE TABLE tbl_product (product_id INT AUTO_INCREMENT PRIMARY KEY, product_name VARCHAR(255));
"""


def test_scenario_a_ordering(converter):
    model = SchemaAnalyzer().parse_schema(SCENARIO_A_CHILD_FIRST)
    result = converter.convert_schema(model)

    assert result.table_order == ["products", "orders"]
    assert result.drop_order == ["orders", "products"]
    assert result.create[0].startswith("CREATE TABLE products")
    assert result.drop == ("DROP TABLE IF EXISTS orders CASCADE", "DROP TABLE IF EXISTS products CASCADE")


def test_legacy_groups(legacy_conversion):
    assert legacy_conversion.table_order == ["customers", "products", "orders"]
    assert legacy_conversion.drop_order == ["orders", "products", "customers"]
    assert legacy_conversion.create[0].startswith("CREATE TABLE customers")
    assert "COMMENT ON TABLE customers IS 'Registered shop customers'" in legacy_conversion.create
    assert "COMMENT ON COLUMN orders.note IS 'Delivery note for the courier'" in legacy_conversion.create

    assert list(legacy_conversion.index) == [
        "CREATE UNIQUE INDEX uq_customers_email ON customers (email)",
        "CREATE INDEX idx_products_status ON products (status)",
        "CREATE INDEX idx_orders_customer_id ON orders (customer_id)",
        "CREATE INDEX idx_orders_product_id ON orders (product_id)",
    ]
    assert list(legacy_conversion.foreign_key) == [
        "ALTER TABLE orders ADD CONSTRAINT fk_orders_customer_id FOREIGN KEY (customer_id) "
        "REFERENCES customers (id) ON DELETE CASCADE ON UPDATE NO ACTION",
        "ALTER TABLE orders ADD CONSTRAINT fk_orders_product_id FOREIGN KEY (product_id) "
        "REFERENCES products (id) ON DELETE NO ACTION ON UPDATE NO ACTION",
    ]


def test_create_statements_carry_no_constraints_to_other_tables(legacy_conversion):
    for statement in legacy_conversion.create:
        assert "REFERENCES" not in statement


def test_column_translation(legacy_conversion):
    customers = legacy_conversion.create[0]
    assert "id SERIAL NOT NULL" in customers
    assert "is_active BOOLEAN NOT NULL DEFAULT TRUE" in customers
    assert "CURRENT_TIMESTAMP" in customers

    products = next(s for s in legacy_conversion.create if s.startswith("CREATE TABLE products"))
    assert "BIGSERIAL" in products
    assert "NUMERIC(10, 2)" in products or "NUMERIC(10,2)" in products
    assert "CHECK" in products and "'archived'" in products


def test_parent_precedes_child_for_every_relationship(legacy_model, legacy_conversion):
    targets = {t.source_name: t.target_name for t in legacy_model.tables}
    order = legacy_conversion.table_order
    for rel in legacy_model.relationships:
        if rel.is_self_referential:
            continue
        assert order.index(targets[rel.referenced_table]) < order.index(targets[rel.table])


def test_complete_sql_order(legacy_conversion):
    sql = legacy_conversion.complete_sql
    assert sql.index("DROP TABLE") < sql.index("CREATE TABLE") < sql.index("CREATE INDEX") < sql.index("ALTER TABLE")
    assert sql.endswith(";\n\n")


def test_summary(legacy_conversion):
    summary = legacy_conversion.summary()
    assert summary["tables_converted"] == 3
    assert summary["foreign_keys"] == 2
    assert summary["indexes"] == 4
    assert summary["drop_statements"] == 3
    assert summary["data_type_conversions"]["TINYINT(1)"] == ["BOOLEAN"]
    assert summary["data_type_conversions"]["INT(11)"] == ["INTEGER", "SERIAL"]


def test_implied_foreign_keys_can_be_suppressed(legacy_model):
    result = SchemaConverter("mysql", "postgres", emit_implied_foreign_keys=False).convert_schema(legacy_model)
    assert len(result.foreign_key) == 1
    assert "fk_orders_customer_id" in result.foreign_key[0]
    assert not any("product_id" in s for s in result.index)
    assert result.table_order == ["customers", "products", "orders"]


def test_foreign_key_indexes_can_be_disabled(legacy_model):
    result = SchemaConverter("mysql", "postgres", index_foreign_key_columns=False).convert_schema(legacy_model)
    assert len(result.index) == 3


def test_explicit_cycle_is_fatal(converter):
    model = SchemaAnalyzer().parse_schema("""
        CREATE TABLE alpha (id INT PRIMARY KEY, beta_ref INT);
        CREATE TABLE beta (id INT PRIMARY KEY, alpha_ref INT);
        ALTER TABLE alpha ADD CONSTRAINT fk_a FOREIGN KEY (beta_ref) REFERENCES beta (id);
        ALTER TABLE beta ADD CONSTRAINT fk_b FOREIGN KEY (alpha_ref) REFERENCES alpha (id);
    """)
    with pytest.raises(ConversionError, match="Cyclic"):
        converter.convert_schema(model)


def test_implied_edge_closing_a_cycle_is_skipped(converter):
    model = SchemaAnalyzer().parse_schema("""
        CREATE TABLE team (id INT PRIMARY KEY, captain_id INT);
        CREATE TABLE captain (id INT PRIMARY KEY, team_ref INT, FOREIGN KEY (team_ref) REFERENCES team (id));
    """)
    result = converter.convert_schema(model)
    assert result.table_order == ["teams", "captains"]
    assert result.skipped_implied_edges == (("team", "captain"),)
    assert len(result.foreign_key) == 2


def test_self_reference_only_in_foreign_key_group(converter):
    model = SchemaAnalyzer().parse_schema(
        "CREATE TABLE category (id INT PRIMARY KEY, parent_ref INT, "
        "FOREIGN KEY (parent_ref) REFERENCES category (id));"
    )
    result = converter.convert_schema(model)
    assert result.table_order == ["categories"]
    assert "REFERENCES" not in result.create[0]
    assert result.foreign_key == (
        "ALTER TABLE categories ADD CONSTRAINT fk_categories_parent_ref FOREIGN KEY (parent_ref) "
        "REFERENCES categories (id) ON DELETE NO ACTION ON UPDATE NO ACTION",
    )
    assert result.tables[0].foreign_keys[0].self_referential is True


def test_duplicate_target_names_are_rejected(converter):
    tables = tuple(
        Table(source_name=name, target_name="users",
              columns=(Column(name="id", source_type="INT", ordinal=1),))
        for name in ("tbl_user", "legacy_users")
    )
    with pytest.raises(ConversionError, match="users"):
        converter.convert_schema(SchemaModel(tables=tables))


def test_review_items_are_logged(legacy_model, tmp_path):
    review = ManualReviewLogger(output_dir=str(tmp_path))
    SchemaConverter("mysql", "postgres", manual_review_logger=review).convert_schema(legacy_model)

    issues = {item["issue_type"] for item in review.review_items}
    assert {"ON_UPDATE_clause", "Implied_relationship", "Partial_timestamps", "Type_widened"} <= issues
    path = review.write_manual_review_log()
    assert path is not None and path.startswith(str(tmp_path))


def test_converter_leaves_model_untouched(converter, legacy_model):
    before = legacy_model.model_dump()
    converter.convert_schema(legacy_model)
    assert legacy_model.model_dump() == before


def test_order_tables_is_stable():
    order, skipped = order_tables(["c", "a", "b"], [("c", "b")])
    assert order == ["a", "b", "c"]
    assert skipped == []


def test_truncated_index_names_are_unique_across_tables(converter):
    prefix = "inventory_adjustment_reason_history_snapshot_archive_region"
    assert len(prefix) == 59
    tables = tuple(
        Table(
            source_name=f"{prefix}_{suffix}",
            target_name=f"{prefix}_{suffix}",
            columns=(Column(name="id", source_type="INT", ordinal=1),
                     Column(name="code", source_type="VARCHAR(10)", ordinal=2)),
            primary_key=("id",),
            indexes=(Index(table=f"{prefix}_{suffix}", columns=("code",)),),
        )
        for suffix in ("e", "w")
    )

    result = converter.convert_schema(SchemaModel(tables=tables))

    names = [ix.name for t in result.tables for ix in t.indexes]
    assert names == [f"idx_{prefix}", f"idx_{prefix[:57]}_2"]
    assert all(len(name) <= 63 for name in names)
    assert f"DROP INDEX IF EXISTS idx_{prefix[:57]}_2" in [ix.drop_statement for t in result.tables for ix in t.indexes]
