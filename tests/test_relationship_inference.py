from schemaport.services.schema_analysis.models import Column, Relationship, Table
from schemaport.services.schema_analysis.relationship_inference import infer_relationships, match_column


def _table(name, columns, primary_key=("id",), target=None):
    return Table(
        source_name=name,
        target_name=target or name,
        columns=tuple(Column(name=c, source_type="INT", ordinal=i) for i, c in enumerate(columns, start=1)),
        primary_key=primary_key,
    )


PRODUCT = _table("tbl_product", ["product_id", "product_name"], primary_key=("product_id",))
ORDER = _table("tbl_order", ["order_id", "product_id"], primary_key=("order_id",))
STEMS = {"tbl_product": {"product", "products"}, "tbl_order": {"order", "orders"}}


def test_single_candidate_is_implied():
    relationships, diagnostics = infer_relationships((PRODUCT, ORDER), [], STEMS)
    assert diagnostics == ()
    assert relationships == (Relationship(
        table="tbl_order", column="product_id",
        referenced_table="tbl_product", referenced_column="product_id", origin="implied",
    ),)


def test_equal_candidates_are_ambiguous():
    archive = _table("old_product", ["product_id"], primary_key=("product_id",))
    stems = dict(STEMS, old_product={"product", "product_archive"})
    relationships, diagnostics = infer_relationships((PRODUCT, archive, ORDER), [], stems)
    assert relationships == ()
    assert len(diagnostics) == 1
    assert diagnostics[0].code == "ambiguous"
    assert diagnostics[0].column == "product_id"
    assert set(diagnostics[0].candidates) == {"tbl_product", "old_product"}


def test_explicit_relationship_is_not_inferred_again():
    explicit = Relationship(
        table="tbl_order", column="product_id",
        referenced_table="tbl_product", referenced_column="product_id", origin="explicit",
    )
    relationships, diagnostics = infer_relationships((PRODUCT, ORDER), [explicit], STEMS)
    assert relationships == ()
    assert diagnostics == ()


def test_longest_stem_wins():
    item = _table("tbl_item", ["id"])
    order_item = _table("tbl_order_item", ["id"])
    shipment = _table("tbl_shipment", ["id", "order_item_id"])
    stems = {"tbl_item": {"item"}, "tbl_order_item": {"order_item"}, "tbl_shipment": {"shipment"}}
    match = match_column(shipment, "order_item_id", (item, order_item, shipment), stems)
    assert match.origin == "implied"
    assert match.candidates == ("tbl_order_item",)
    assert match.stem_length == len("order_item")


def test_role_prefixed_columns_can_be_disabled():
    customer = _table("tbl_customer", ["id"])
    invoice = _table("tbl_invoice", ["id", "billing_customer_id"])
    stems = {"tbl_customer": {"customer"}, "tbl_invoice": {"invoice"}}

    relationships, _ = infer_relationships((customer, invoice), [], stems, allow_role_prefixed=True)
    assert [(r.column, r.referenced_table, r.referenced_column) for r in relationships] == [
        ("billing_customer_id", "tbl_customer", "id"),
    ]

    relationships, _ = infer_relationships((customer, invoice), [], stems, allow_role_prefixed=False)
    assert relationships == ()


def test_own_primary_key_is_never_a_reference():
    product = _table("tbl_product", ["product_id"], primary_key=("product_id",))
    legacy = _table("legacy_product", ["id"])
    stems = {"tbl_product": {"product"}, "legacy_product": {"product"}}
    relationships, diagnostics = infer_relationships((product, legacy), [], stems)
    assert relationships == ()
    assert diagnostics == ()


def test_target_without_single_key_is_reported():
    pair = _table("tbl_pair", ["left_id", "right_id"], primary_key=("left_id", "right_id"))
    usage = _table("tbl_usage", ["id", "pair_id"])
    stems = {"tbl_pair": {"pair"}, "tbl_usage": {"usage"}}
    relationships, diagnostics = infer_relationships((pair, usage), [], stems)
    assert relationships == ()
    assert diagnostics[0].code == "unresolved_column"


def test_non_id_columns_never_match():
    assert match_column(ORDER, "product_name", (PRODUCT, ORDER), STEMS).origin == "none"
