import pytest

from schemaport.errors import ParseError
from schemaport.services.schema_analysis import SchemaAnalyzer
from schemaport.services.schema_analysis.naming import TableRenamer

SCENARIO_A = """
CREATE TABLE tbl_product (product_id INT AUTO_INCREMENT PRIMARY KEY, product_name VARCHAR(255));
CREATE TABLE tbl_order (order_id INT AUTO_INCREMENT PRIMARY KEY, product_id INT);
"""


def test_legacy_dump_summary(legacy_model):
    summary = legacy_model.summary
    assert summary.total_tables == 3
    assert summary.total_columns == 20
    assert summary.total_relationships == 2
    assert summary.explicit_relationships == 1
    assert summary.implied_relationships == 1
    assert summary.total_indexes == 3
    assert summary.tables_with_timestamps == 2
    assert summary.tables_with_partial_timestamps == 1
    assert summary.tables_with_auto_increment == 3


def test_legacy_dump_tables(legacy_model):
    assert [t.source_name for t in legacy_model.tables] == ["tbl_customer_account", "tbl_product", "tbl_orders"]
    assert [t.target_name for t in legacy_model.tables] == ["customers", "products", "orders"]

    customers = legacy_model.get_table("tbl_customer_account")
    assert customers.primary_key == ("id",)
    assert customers.auto_increment_column == "id"
    assert customers.timestamps == "full"
    assert customers.comment == "Registered shop customers"
    assert customers.get_column("id").nullable is False
    assert customers.get_column("updated_at").on_update == "current_timestamp()"
    assert [c.ordinal for c in customers.columns] == [1, 2, 3, 4, 5, 6]

    products = legacy_model.get_table("tbl_product")
    assert products.timestamps == "partial"
    assert products.get_column("id").unsigned is True
    assert products.get_column("status").source_type == "enum('active','archived')"
    assert products.get_column("price").default == "'0.00'"

    orders = legacy_model.get_table("tbl_orders")
    assert orders.get_column("note").comment == "Delivery note for the courier"
    assert [i.columns for i in orders.indexes] == [("customer_id",)]


def test_legacy_dump_relationships(legacy_model):
    explicit = [r for r in legacy_model.relationships if r.origin == "explicit"]
    implied = [r for r in legacy_model.relationships if r.origin == "implied"]

    assert len(explicit) == 1
    assert explicit[0].table == "tbl_orders"
    assert explicit[0].column == "customer_id"
    assert explicit[0].referenced_table == "tbl_customer_account"
    assert explicit[0].referenced_column == "id"
    assert explicit[0].on_delete == "CASCADE"
    assert explicit[0].constraint_name == "fk_orders_customer"

    assert len(implied) == 1
    assert (implied[0].table, implied[0].column) == ("tbl_orders", "product_id")
    assert (implied[0].referenced_table, implied[0].referenced_column) == ("tbl_product", "id")
    assert legacy_model.diagnostics == ()


def test_scenario_a_implied_relationship():
    model = SchemaAnalyzer().parse_schema(SCENARIO_A)
    assert len(model.tables) == 2
    assert len(model.relationships) == 1
    rel = model.relationships[0]
    assert rel.origin == "implied"
    assert (rel.table, rel.column) == ("tbl_order", "product_id")
    assert (rel.referenced_table, rel.referenced_column) == ("tbl_product", "product_id")


def test_ambiguous_candidates_record_no_relationship():
    renamer = TableRenamer(rules={
        "lookup": {"tbl_product": "products", "old_product": "product_archive"},
        "strip_prefixes": ["tbl_", "old_"],
    })
    text = SCENARIO_A + "CREATE TABLE old_product (product_id INT PRIMARY KEY, archived_on DATE);"
    model = SchemaAnalyzer(renamer=renamer).parse_schema(text)

    assert model.relationships == ()
    assert len(model.diagnostics) == 1
    assert model.diagnostics[0].code == "ambiguous"
    assert "tbl_order.product_id" in model.diagnostics[0].message


def test_inference_can_be_disabled():
    model = SchemaAnalyzer(infer_relationships=False).parse_schema(SCENARIO_A)
    assert model.relationships == ()


def test_summary_is_idempotent(analyzer, legacy_ddl):
    first = analyzer.parse_schema(legacy_ddl, source="legacy_store.sql")
    second = SchemaAnalyzer().parse_schema(legacy_ddl, source="legacy_store.sql")
    assert first.summary == second.summary
    assert [t.source_name for t in first.tables] == [t.source_name for t in second.tables]
    assert first == second


def test_build_report(analyzer, legacy_model):
    report = analyzer.build_report(legacy_model)
    assert set(report) == {"source", "summary", "tables", "relationships", "indexes", "diagnostics"}
    assert report["summary"]["total_tables"] == 3
    assert sorted(r["origin"] for r in report["relationships"]) == ["explicit", "implied"]
    assert report["tables"][0]["target_name"] == "customers"
    assert report["tables"][0]["columns"][0]["name"] == "id"


def test_missing_file(analyzer, tmp_path):
    with pytest.raises(ParseError, match="not found"):
        analyzer.parse_schema_from_file(tmp_path / "nope.sql")


def test_empty_file(analyzer, tmp_path):
    path = tmp_path / "empty.sql"
    path.write_text("   \n", encoding="utf-8")
    with pytest.raises(ParseError, match="empty"):
        analyzer.parse_schema_from_file(path)


@pytest.mark.parametrize("text, message", [
    ("SET NAMES utf8; INSERT INTO t VALUES (1);", "No recognizable CREATE TABLE"),
    ("CREATE TABLE t (id INT); CREATE TABLE T (id INT);", "declared more than once"),
    ("CREATE TABLE t (id INT); ALTER TABLE u ADD PRIMARY KEY (id);", "undeclared table"),
    ("CREATE TABLE t (id INT, u_ref INT, FOREIGN KEY (u_ref) REFERENCES u (id));", "undeclared table 'u'"),
    ("CREATE TABLE t (id INT, name VARCHAR(10);", "Malformed CREATE TABLE"),
    ("CREATE TABLE t (a INT AUTO_INCREMENT, b INT AUTO_INCREMENT);", "More than one AUTO_INCREMENT"),
    ("CREATE TABLE t (a INT, KEY idx (missing));", "unknown column 'missing'"),
    ("CREATE TABLE t (a INT, PRIMARY KEY (b));", "unknown column 'b'"),
])
def test_malformed_input_aborts(analyzer, text, message):
    with pytest.raises(ParseError, match=message):
        analyzer.parse_schema(text)


def test_composite_unique_index_needs_opt_in():
    text = "CREATE TABLE t (a INT, b INT, UNIQUE KEY uq_ab (a, b));"
    with pytest.raises(ParseError, match="Multi-column unique"):
        SchemaAnalyzer(allow_composite_unique_indexes=False).parse_schema(text)

    model = SchemaAnalyzer(allow_composite_unique_indexes=True).parse_schema(text)
    assert model.tables[0].indexes[0].columns == ("a", "b")
    assert model.tables[0].indexes[0].unique is True
