"""
Modhost - Configuration Schema.

============================================================
RESPONSIBILITY
============================================================
Validates a module's supplied configuration against the schema
declared in its manifest.

- One FieldSpec per configuration key
- validate() is pure: no side effects, fail-fast on the first error
- Fields are checked in sorted key order so the reported error
  is reproducible across runs
- Sensitive flags are carried forward on the ResolvedConfig; the
  values themselves pass through unchanged

============================================================
VALIDATION ORDER (per field)
============================================================
1. Absent + required           -> MissingRequiredField
2. Absent + default            -> default substituted
3. Present + wrong kind        -> TypeMismatch
4. Validator falsy or raises   -> ValidatorRejected
Then: any supplied key not in the schema -> UnknownField

============================================================
"""

import copy
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Optional, Union

from hostcore.exceptions import (
    ConfigurationError,
    MissingRequiredField,
    TypeMismatch,
    UnknownField,
    ValidatorRejected,
)


REDACTION_MARKER = "***REDACTED***"
"""Fixed replacement for sensitive values in any diagnostic output."""


# ============================================================
# MISSING SENTINEL
# ============================================================

class _Missing:
    """Marks a FieldSpec without a default (None is a valid default)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


# ============================================================
# FIELD TYPES
# ============================================================

class FieldType(Enum):
    """Primitive kind tags for configuration values."""

    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    LIST = "list"
    MAPPING = "mapping"
    ANY = "any"

    def accepts(self, value: Any) -> bool:
        """
        Check a value against this kind.

        bool is never accepted as INTEGER or FLOAT. FLOAT accepts ints.
        """
        if self is FieldType.ANY:
            return True
        if self is FieldType.BOOLEAN:
            return isinstance(value, bool)
        if isinstance(value, bool):
            return False
        if self is FieldType.STRING:
            return isinstance(value, str)
        if self is FieldType.INTEGER:
            return isinstance(value, int)
        if self is FieldType.FLOAT:
            return isinstance(value, (int, float))
        if self is FieldType.LIST:
            return isinstance(value, (list, tuple))
        if self is FieldType.MAPPING:
            return isinstance(value, Mapping)
        return False

    @classmethod
    def parse(cls, value: Union["FieldType", str, type]) -> "FieldType":
        """Accept a FieldType, its tag string, or a builtin type."""
        if isinstance(value, FieldType):
            return value
        if isinstance(value, type):
            try:
                return _PYTHON_TYPES[value]
            except KeyError:
                raise ValueError(f"Unsupported field type: {value.__name__}") from None
        return cls(str(value).lower())


_PYTHON_TYPES = {
    str: FieldType.STRING,
    int: FieldType.INTEGER,
    float: FieldType.FLOAT,
    bool: FieldType.BOOLEAN,
    list: FieldType.LIST,
    tuple: FieldType.LIST,
    dict: FieldType.MAPPING,
    object: FieldType.ANY,
}


def type_name(value: Any) -> str:
    """Kind tag describing an actual value, for TypeMismatch."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return FieldType.BOOLEAN.value
    if isinstance(value, str):
        return FieldType.STRING.value
    if isinstance(value, int):
        return FieldType.INTEGER.value
    if isinstance(value, float):
        return FieldType.FLOAT.value
    if isinstance(value, (list, tuple)):
        return FieldType.LIST.value
    if isinstance(value, Mapping):
        return FieldType.MAPPING.value
    return type(value).__name__


# ============================================================
# FIELD SPEC
# ============================================================

@dataclass(frozen=True)
class FieldSpec:
    """Rules for one configuration key."""

    type: FieldType = FieldType.ANY
    """Primitive kind of the value."""

    required: bool = False
    """Must be supplied. Cannot be combined with a default."""

    default: Any = MISSING
    """Substituted when the key is absent."""

    sensitive: bool = False
    """Redact this value in every dump and diagnostic."""

    validator: Optional[Callable[[Any], Any]] = None
    """Predicate over the resolved value; falsy or raising rejects it."""

    description: str = ""
    """Human-readable note for operators."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", FieldType.parse(self.type))

    @property
    def has_default(self) -> bool:
        return self.default is not MISSING

    def problems(self) -> List[str]:
        """Reasons this spec is not well formed (empty when valid)."""
        problems = []
        if self.required and self.has_default:
            problems.append("field cannot be both required and defaulted")
        if self.has_default and self.default is not None and not self.type.accepts(self.default):
            problems.append(
                f"default {type_name(self.default)} does not match type {self.type.value}"
            )
        if self.validator is not None and not callable(self.validator):
            problems.append("validator must be callable")
        return problems


Schema = Mapping[str, FieldSpec]


# ============================================================
# RESOLVED CONFIG
# ============================================================

class ResolvedConfig(Mapping):
    """
    Immutable, fully validated configuration for one module.

    Behaves as a read-only mapping. repr() never shows sensitive
    values, so accidentally logging the object does not leak them.
    """

    def __init__(
        self,
        values: Optional[Mapping[str, Any]] = None,
        sensitive_keys: FrozenSet[str] = frozenset(),
    ):
        self._values: Dict[str, Any] = dict(values or {})
        self._sensitive = frozenset(sensitive_keys)

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ResolvedConfig({self.redacted()!r})"

    @property
    def sensitive_keys(self) -> FrozenSet[str]:
        return self._sensitive

    def is_sensitive(self, key: str) -> bool:
        return key in self._sensitive

    def redacted(self, marker: str = REDACTION_MARKER) -> Dict[str, Any]:
        """Plain dict copy with sensitive values replaced by the marker."""
        return {
            key: marker if key in self._sensitive else value
            for key, value in self._values.items()
        }


# ============================================================
# VALIDATION
# ============================================================

def validate(
    schema: Schema,
    supplied: Optional[Mapping[str, Any]] = None,
    module: Optional[str] = None,
) -> ResolvedConfig:
    """
    Validate supplied values against a schema.

    Args:
        schema: Mapping of key to FieldSpec
        supplied: Raw values (None is treated as empty)
        module: Owning module, used only to label errors

    Returns:
        ResolvedConfig with defaults substituted

    Raises:
        MissingRequiredField, TypeMismatch, ValidatorRejected, UnknownField
    """
    if supplied is None:
        supplied = {}
    if not isinstance(supplied, Mapping):
        raise ConfigurationError(
            message=f"Configuration for module {module} must be a mapping, got {type_name(supplied)}",
            source=module,
        )

    resolved: Dict[str, Any] = {}
    sensitive = set()

    for key in sorted(schema):
        spec = schema[key]
        if spec.sensitive:
            sensitive.add(key)

        if key not in supplied:
            if spec.required:
                raise MissingRequiredField(key, module=module)
            if not spec.has_default:
                continue
            value = copy.deepcopy(spec.default)
        else:
            value = supplied[key]
            if not spec.type.accepts(value):
                raise TypeMismatch(
                    key,
                    expected_type=spec.type.value,
                    actual_type=type_name(value),
                    module=module,
                )

        if spec.validator is not None:
            _run_validator(spec, key, value, module)

        resolved[key] = value

    for key in sorted(supplied, key=str):
        if key not in schema:
            raise UnknownField(str(key), module=module)

    return ResolvedConfig(resolved, frozenset(sensitive))


def _run_validator(spec: FieldSpec, key: str, value: Any, module: Optional[str]) -> None:
    try:
        accepted = spec.validator(value)
    except Exception as e:
        error = ValidatorRejected(
            key, value, module=module, sensitive=spec.sensitive, cause=e,
        )
        if spec.sensitive:
            # the validator's message may quote the value
            raise error from None
        raise error from e
    if not accepted:
        raise ValidatorRejected(key, value, module=module, sensitive=spec.sensitive)


__all__ = [
    "REDACTION_MARKER",
    "MISSING",
    "FieldType",
    "FieldSpec",
    "Schema",
    "ResolvedConfig",
    "type_name",
    "validate",
]
