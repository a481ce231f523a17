import pytest

from schemaport.errors import ConversionError
from schemaport.services.schema_analysis.naming import TableRenamer, pluralize, singularize


@pytest.mark.parametrize("plural, singular", [
    ("categories", "category"),
    ("addresses", "address"),
    ("boxes", "box"),
    ("order_items", "order_item"),
    ("people", "person"),
    ("news", "news"),
    ("status", "status"),
    ("product", "product"),
])
def test_singularize(plural, singular):
    assert singularize(plural) == singular


@pytest.mark.parametrize("singular, plural", [
    ("category", "categories"),
    ("box", "boxes"),
    ("order_item", "order_items"),
    ("person", "people"),
    ("day", "days"),
    ("status", "statuses"),
    ("orders", "orders"),
    ("equipment", "equipment"),
])
def test_pluralize(singular, plural):
    assert pluralize(singular) == plural


def test_lookup_wins_over_generic_rule():
    renamer = TableRenamer()
    assert renamer.rename("tbl_customer_account") == "customers"
    assert renamer.rename("TBL_PRODUCT") == "products"
    assert renamer.rename("inventory_log") == "inventory_logs"


def test_generic_rule_strips_prefix_and_pluralizes():
    renamer = TableRenamer()
    assert renamer.rename("tbl_supplier") == "suppliers"
    assert renamer.rename("inventory_category") == "inventory_categories"
    assert renamer.rename("Tbl_Warehouse") == "warehouses"


def test_rename_is_deterministic_and_total_for_lookup():
    renamer = TableRenamer()
    for source_name, target in renamer.lookup.items():
        assert target
        assert renamer.rename(source_name) == target
        assert TableRenamer().rename(source_name) == target


def test_rename_all_rejects_collisions():
    renamer = TableRenamer(rules={"lookup": {"legacy_users": "users"}})
    with pytest.raises(ConversionError) as exc_info:
        renamer.rename_all(["legacy_users", "user"])
    assert "users" in str(exc_info.value)
    assert exc_info.value.table == "user"


def test_rename_all_preserves_declaration_order():
    mapping = TableRenamer().rename_all(["tbl_product", "tbl_order", "tbl_supplier"])
    assert list(mapping.items()) == [
        ("tbl_product", "products"), ("tbl_order", "orders"), ("tbl_supplier", "suppliers"),
    ]


def test_name_stems():
    renamer = TableRenamer()
    assert renamer.name_stems("tbl_customer_account", "customers") == {
        "customer_account", "customer", "customers",
    }
    assert renamer.name_stems("tbl_product", "products") == {"product", "products"}
