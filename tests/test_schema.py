import pytest

from ensemble import ConfigurationError, Model
from ensemble.typed.schema import default_table_name, normalize_model_schema
from ensemble.values import Integer, Json, Nullable, Text, Timestamp, Uuid


def u64() -> Integer:
    return Integer(64, unsigned=True)


def test_default_table_name_is_plural_snake_case() -> None:
    assert default_table_name("User") == "users"
    assert default_table_name("UserProfile") == "user_profiles"
    assert default_table_name("Category") == "categories"
    assert default_table_name("Box") == "boxes"
    assert default_table_name("HTTPRequest") == "http_requests"


def test_explicit_table_name_wins() -> None:
    schema = normalize_model_schema(
        {"table": "people", "columns": {"id": {"type": u64(), "primary": True}}},
        model_name="Person",
    )
    assert schema.table_name == "people"


def test_unsigned_64_bit_key_increments_by_default() -> None:
    schema = normalize_model_schema({"columns": {"id": {"type": u64(), "primary": True}}}, model_name="Item")
    assert schema.primary_key.incrementing is True

    manual = normalize_model_schema(
        {"columns": {"id": {"type": u64(), "primary": True, "increments": False}}},
        model_name="Item",
    )
    assert manual.primary_key.incrementing is False


def test_only_unsigned_64_bit_keys_may_increment() -> None:
    with pytest.raises(ConfigurationError):
        normalize_model_schema(
            {"columns": {"id": {"type": Integer(32), "primary": True, "increments": True}}},
            model_name="Item",
        )
    with pytest.raises(ConfigurationError):
        normalize_model_schema(
            {
                "columns": {
                    "id": {"type": u64(), "primary": True},
                    "rank": {"type": u64(), "increments": True},
                }
            },
            model_name="Item",
        )


def test_uuid_key_records_its_version() -> None:
    schema = normalize_model_schema({"columns": {"id": {"type": Uuid(1), "primary": True}}}, model_name="Token")
    assert schema.primary_key.uuid_version == 1
    assert schema.primary_key.incrementing is False
    with pytest.raises(ConfigurationError):
        normalize_model_schema({"columns": {"id": {"type": Uuid(3), "primary": True}}}, model_name="Token")


@pytest.mark.parametrize(
    "declaration",
    [
        {"columns": {}},
        {"columns": {"name": {"type": Text()}}},
        {"columns": {"a": {"type": u64(), "primary": True}, "b": {"type": Text(), "primary": True}}},
        {"columns": {"id": {"type": Nullable(u64()), "primary": True}}},
        {"columns": {"bad-name": {"type": u64(), "primary": True}}},
        {"columns": {"id": {"primary": True}}},
        {"table": "drop table", "columns": {"id": {"type": u64(), "primary": True}}},
    ],
)
def test_invalid_declarations_raise_configuration_error(declaration) -> None:
    with pytest.raises(ConfigurationError):
        normalize_model_schema(declaration, model_name="Broken")


def test_timestamps_are_detected_from_columns() -> None:
    columns = {
        "id": {"type": u64(), "primary": True},
        "created_at": {"type": Timestamp()},
        "updated_at": {"type": Timestamp()},
    }
    schema = normalize_model_schema({"columns": columns}, model_name="Post")
    assert schema.timestamps is not None
    assert schema.timestamps.created_at == "created_at"

    disabled = normalize_model_schema({"columns": columns, "timestamps": False}, model_name="Post")
    assert disabled.timestamps is None


def test_timestamps_absent_without_columns() -> None:
    schema = normalize_model_schema({"columns": {"id": {"type": u64(), "primary": True}}}, model_name="Tag")
    assert schema.timestamps is None
    with pytest.raises(ConfigurationError):
        normalize_model_schema(
            {"columns": {"id": {"type": u64(), "primary": True}}, "timestamps": True},
            model_name="Tag",
        )


def test_custom_timestamp_columns_must_be_timestamps() -> None:
    schema = normalize_model_schema(
        {
            "columns": {
                "id": {"type": u64(), "primary": True},
                "inserted": {"type": Nullable(Timestamp())},
                "touched": {"type": Timestamp()},
            },
            "timestamps": {"created_at": "inserted", "updated_at": "touched"},
        },
        model_name="Event",
    )
    assert schema.timestamps is not None
    assert schema.timestamps.updated_at == "touched"

    with pytest.raises(ConfigurationError):
        normalize_model_schema(
            {
                "columns": {
                    "id": {"type": u64(), "primary": True},
                    "created_at": {"type": Text()},
                    "updated_at": {"type": Timestamp()},
                },
                "timestamps": True,
            },
            model_name="Event",
        )


def test_column_lookup_rejects_unknown_names() -> None:
    schema = normalize_model_schema({"columns": {"id": {"type": u64(), "primary": True}}}, model_name="Tag")
    assert schema.has_column("id")
    with pytest.raises(ValueError, match="Unknown column"):
        schema.column("missing")


def test_model_declaration_errors_surface_at_class_creation() -> None:
    with pytest.raises(ConfigurationError):

        class Orphan(Model):
            schema = {"columns": {"name": {"type": Text()}}}

    with pytest.raises(ConfigurationError):

        class Shadowing(Model):
            schema = {"columns": {"id": {"type": u64(), "primary": True}, "save": {"type": Text()}}}


def test_model_exposes_descriptor_metadata() -> None:
    class Comment(Model):
        schema = {
            "columns": {
                "id": {"type": u64(), "primary": True},
                "body": {"type": Text()},
                "votes": {"type": Integer(32), "default": 0},
            }
        }

    assert Comment.table_name() == "comments"
    assert Comment.keys() == ["id", "body", "votes"]
    comment = Comment(body="hi")
    assert comment.to_dict() == {"id": None, "body": "hi", "votes": 0}
    assert comment.primary_key is None
    assert comment.exists is False
    with pytest.raises(ValueError, match="Unknown column"):
        Comment(title="nope")


def test_mutable_defaults_are_not_shared() -> None:
    class Document(Model):
        schema = {
            "columns": {
                "id": {"type": u64(), "primary": True},
                "meta": {"type": Json(), "default": {}},
                "tags": {"type": Json(), "default": list},
            }
        }

    first = Document()
    second = Document()
    first.meta["x"] = 1
    first.tags.append("a")
    assert second.meta == {}
    assert second.tags == []
    assert Document().meta == {}


def test_irregular_nouns_pluralize() -> None:
    assert default_table_name("Person") == "people"
    assert default_table_name("Child") == "children"
    assert default_table_name("SalesPerson") == "sales_people"
    assert default_table_name("Batch") == "batches"
