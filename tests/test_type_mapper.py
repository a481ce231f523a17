import pytest

from schemaport.errors import ConversionError
from schemaport.services.schema_analysis.models import Column, SchemaModel, Table
from schemaport.services.sql_conversion import SchemaConverter, TypeMapper


@pytest.fixture(scope="module")
def mapper():
    return TypeMapper("mysql", "postgres")


@pytest.mark.parametrize("source_type, target_type", [
    ("INT", "INTEGER"),
    ("int(11)", "INTEGER"),
    ("varchar(255)", "VARCHAR(255)"),
    ("decimal(10,2)", "NUMERIC(10,2)"),
    ("decimal(10, 2)", "NUMERIC(10,2)"),
    ("tinyint(1)", "BOOLEAN"),
    ("tinyint(4)", "SMALLINT"),
    ("datetime", "TIMESTAMP"),
    ("timestamp", "TIMESTAMPTZ"),
    ("json", "JSONB"),
    ("double", "DOUBLE PRECISION"),
    ("longtext", "TEXT"),
    ("blob", "BYTEA"),
    ("bit(1)", "BOOLEAN"),
])
def test_base_mappings(mapper, source_type, target_type):
    assert mapper.map_type(source_type).target_type == target_type


def test_unsigned_integers_are_widened(mapper):
    mapping = mapper.map_type("int(10)", unsigned=True)
    assert mapping.target_type == "BIGINT"
    assert mapping.notes
    assert mapper.map_type("bigint(20)", unsigned=True).target_type == "NUMERIC(20,0)"


def test_auto_increment_becomes_serial(mapper):
    assert mapper.map_type("int(11)", auto_increment=True).target_type == "SERIAL"
    assert mapper.map_type("bigint", auto_increment=True).target_type == "BIGSERIAL"
    assert mapper.map_type("smallint", auto_increment=True).target_type == "SMALLSERIAL"
    assert mapper.map_type("int(10)", unsigned=True, auto_increment=True).target_type == "BIGSERIAL"


def test_auto_increment_on_text_type_fails(mapper):
    with pytest.raises(ConversionError, match="AUTO_INCREMENT"):
        mapper.map_type("varchar(10)", table="t", column="c", auto_increment=True)


def test_oversized_varchar_becomes_text(mapper):
    mapping = mapper.map_type("varchar(20000000)")
    assert mapping.target_type == "TEXT"
    assert "exceeds" in mapping.notes[0]


def test_enum_gets_check_values(mapper):
    mapping = mapper.map_type("enum('active','archived')")
    assert mapping.target_type == "VARCHAR(8)"
    assert mapping.check_values == ("active", "archived")


def test_enum_values_must_be_literals(mapper):
    with pytest.raises(ConversionError, match="quoted literals"):
        mapper.map_type("enum(a, b)", table="t", column="c")


def test_unmapped_type_names_exact_type(mapper):
    with pytest.raises(ConversionError) as exc_info:
        mapper.map_type("geometry", table="tbl_shop", column="location")
    error = exc_info.value
    assert error.table == "tbl_shop"
    assert error.column == "location"
    assert error.source_type == "geometry"
    assert "tbl_shop.location" in str(error)


def test_every_fixture_type_maps(mapper, legacy_model):
    for table in legacy_model.tables:
        for column in table.columns:
            assert mapper.map_column(table, column).target_type


def test_enum_without_mapping_entry_is_a_conversion_error():
    table = Table(
        source_name="tbl_flag",
        target_name="flags",
        columns=(Column(name="state", source_type="ENUM('a','b')", ordinal=1),),
    )
    model = SchemaModel(tables=(table,))
    converter = SchemaConverter("mysql", "postgres", type_mapper=TypeMapper(rules={}))

    with pytest.raises(ConversionError) as exc_info:
        converter.convert_schema(model)

    error = exc_info.value
    assert (error.table, error.column, error.source_type) == ("tbl_flag", "state", "ENUM('a','b')")
    assert "ENUM('a','b')" in str(error)
    assert error.to_dict()["source_type"] == "ENUM('a','b')"
