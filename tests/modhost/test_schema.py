"""
Tests for Configuration Schema Validation.

============================================================
PURPOSE
============================================================
TEST PRINCIPLES:
- Validation is fail-fast and reports the first error in key order
- Defaults are substituted, never shared between resolutions
- Sensitive values are carried but never shown

============================================================
"""

import pytest

from hostcore.exceptions import (
    ConfigurationError,
    MissingRequiredField,
    TypeMismatch,
    UnknownField,
    ValidatorRejected,
)
from modhost.schema import (
    MISSING,
    REDACTION_MARKER,
    FieldSpec,
    FieldType,
    ResolvedConfig,
    type_name,
    validate,
)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def db_schema():
    return {
        "url": FieldSpec(type="string", required=True),
        "pool_size": FieldSpec(type=int, default=5, validator=lambda v: v > 0),
        "password": FieldSpec(type="string", sensitive=True, default=""),
        "options": FieldSpec(type="mapping", default={}),
    }


# ============================================================
# FIELD TYPES
# ============================================================

class TestFieldType:

    def test_bool_is_not_a_number(self):
        assert not FieldType.INTEGER.accepts(True)
        assert not FieldType.FLOAT.accepts(False)
        assert FieldType.BOOLEAN.accepts(True)

    def test_float_accepts_int(self):
        assert FieldType.FLOAT.accepts(3)
        assert not FieldType.INTEGER.accepts(3.0)

    def test_list_accepts_tuple(self):
        assert FieldType.LIST.accepts((1, 2))
        assert not FieldType.LIST.accepts("ab")

    def test_parse(self):
        assert FieldType.parse("INTEGER") is FieldType.INTEGER
        assert FieldType.parse(dict) is FieldType.MAPPING
        assert FieldType.parse(FieldType.ANY) is FieldType.ANY
        with pytest.raises(ValueError):
            FieldType.parse(set)

    def test_type_name(self):
        assert type_name(None) == "null"
        assert type_name(True) == "boolean"
        assert type_name([]) == "list"


class TestFieldSpec:

    def test_missing_sentinel(self):
        spec = FieldSpec()
        assert spec.default is MISSING
        assert not spec.has_default
        assert FieldSpec(default=None).has_default

    def test_problems(self):
        assert FieldSpec(required=True, default=1).problems() == [
            "field cannot be both required and defaulted"
        ]
        assert FieldSpec(type="integer", default="x").problems()
        assert FieldSpec(validator="nope").problems() == ["validator must be callable"]
        assert FieldSpec(type="integer", default=None).problems() == []


# ============================================================
# VALIDATION
# ============================================================

class TestValidate:

    def test_defaults_substituted(self, db_schema):
        config = validate(db_schema, {"url": "postgres://x"}, module="db")
        assert dict(config) == {
            "url": "postgres://x",
            "pool_size": 5,
            "password": "",
            "options": {},
        }

    def test_defaults_are_copied(self, db_schema):
        first = validate(db_schema, {"url": "a"})
        first["options"]["k"] = 1
        second = validate(db_schema, {"url": "b"})
        assert second["options"] == {}

    def test_optional_without_default_omitted(self):
        config = validate({"region": FieldSpec(type="string")}, {})
        assert "region" not in config
        assert len(config) == 0

    def test_none_supplied_is_empty(self):
        assert dict(validate({}, None)) == {}

    def test_missing_required(self, db_schema):
        with pytest.raises(MissingRequiredField) as exc_info:
            validate(db_schema, {}, module="db")
        assert exc_info.value.key == "url"
        assert exc_info.value.module == "db"

    def test_type_mismatch(self, db_schema):
        with pytest.raises(TypeMismatch) as exc_info:
            validate(db_schema, {"url": "x", "pool_size": "10"})
        assert exc_info.value.key == "pool_size"
        assert exc_info.value.actual_type == "string"

    def test_bool_for_integer_rejected(self, db_schema):
        with pytest.raises(TypeMismatch):
            validate(db_schema, {"url": "x", "pool_size": True})

    def test_validator_rejects(self, db_schema):
        with pytest.raises(ValidatorRejected) as exc_info:
            validate(db_schema, {"url": "x", "pool_size": 0})
        assert exc_info.value.key == "pool_size"

    def test_validator_exception_becomes_rejection(self):
        def must_be_port(value):
            raise ValueError("not a port")

        with pytest.raises(ValidatorRejected) as exc_info:
            validate({"port": FieldSpec(type="integer", validator=must_be_port)}, {"port": 1})
        assert isinstance(exc_info.value.cause, ValueError)

    def test_validator_runs_on_default(self):
        schema = {"retries": FieldSpec(type="integer", default=-1, validator=lambda v: v >= 0)}
        with pytest.raises(ValidatorRejected):
            validate(schema, {})

    def test_sensitive_rejection_is_redacted(self):
        schema = {"token": FieldSpec(type="string", sensitive=True, validator=lambda v: len(v) > 10)}
        with pytest.raises(ValidatorRejected) as exc_info:
            validate(schema, {"token": "abc123"})
        assert "abc123" not in exc_info.value.message
        assert "abc123" not in str(exc_info.value.context)

    def test_sensitive_validator_exception_is_redacted(self):
        schema = {"port": FieldSpec(type="string", sensitive=True, validator=int)}
        with pytest.raises(ValidatorRejected) as exc_info:
            validate(schema, {"port": "hunter2-secret"})

        error = exc_info.value
        assert error.cause is None
        assert error.__cause__ is None
        assert error.context["cause_type"] == "ValueError"
        assert "hunter2-secret" not in str(error.to_dict())
        assert "hunter2-secret" not in error.to_log_format()

    def test_unknown_field(self, db_schema):
        with pytest.raises(UnknownField) as exc_info:
            validate(db_schema, {"url": "x", "timeout": 3})
        assert exc_info.value.key == "timeout"

    def test_first_error_in_key_order(self):
        schema = {
            "b": FieldSpec(type="integer", required=True),
            "a": FieldSpec(type="integer", required=True),
        }
        with pytest.raises(MissingRequiredField) as exc_info:
            validate(schema, {})
        assert exc_info.value.key == "a"

    def test_schema_errors_before_unknown_keys(self, db_schema):
        with pytest.raises(MissingRequiredField):
            validate(db_schema, {"zzz": 1})

    def test_non_mapping_supplied(self, db_schema):
        with pytest.raises(ConfigurationError):
            validate(db_schema, ["url"], module="db")


class TestResolvedConfig:

    def test_read_only_mapping(self, db_schema):
        config = validate(db_schema, {"url": "x", "password": "s3cret"})
        assert isinstance(config, ResolvedConfig)
        assert config["password"] == "s3cret"
        with pytest.raises(TypeError):
            config["url"] = "y"

    def test_redaction(self, db_schema):
        config = validate(db_schema, {"url": "x", "password": "s3cret"})
        assert config.sensitive_keys == frozenset({"password"})
        assert config.is_sensitive("password")
        assert config.redacted()["password"] == REDACTION_MARKER
        assert "s3cret" not in repr(config)
