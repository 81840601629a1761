"""
Validation service used by repositories before anything is persisted.

    factory = ValidationFactory()
    validator = factory.make({"title": ""}, {"title": "required|max:120"})
    validator.passes()   # False
    validator.errors()   # {"title": ["The title field is required."]}

How it works
------------
The rule set is compiled into a throwaway pydantic model (`create_model`):

  - one field per ruled attribute, aliased to the attribute name so any key
    (even `model_config` or `_token`) is usable;
  - `required` makes the pydantic field required (a missing key becomes a
    `required` failure); every other field defaults to "absent" and is only
    checked when the key is present;
  - one `AfterValidator` per field runs the field's rules in order and raises a
    `PydanticCustomError` whose type is the rule name. Checking stops at the
    first failing rule of a field, so each failing field reports one message.

pydantic then collects the failures of every field in a single pass and the
validator turns them into `{field: [message]}` using custom messages first.
"""
import re
import uuid
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Callable

from pydantic import AfterValidator, ConfigDict, Field, create_model
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from repokit.exceptions.base import RepositoryConfigurationError

# rule name -> check(value, params) -> bool
RuleCheck = Callable[[Any, list[str]], bool]

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

DEFAULT_MESSAGES = {
    "required": "The {attribute} field is required.",
    "string": "The {attribute} must be a string.",
    "integer": "The {attribute} must be an integer.",
    "numeric": "The {attribute} must be a number.",
    "boolean": "The {attribute} field must be true or false.",
    "email": "The {attribute} must be a valid email address.",
    "date": "The {attribute} is not a valid date.",
    "uuid": "The {attribute} must be a valid UUID.",
    "min": "The {attribute} must be at least {min}.",
    "max": "The {attribute} may not be greater than {max}.",
    "between": "The {attribute} must be between {min} and {max}.",
    "in": "The selected {attribute} is invalid.",
    "not_in": "The selected {attribute} is invalid.",
    "regex": "The {attribute} format is invalid.",
    "nullable": "The {attribute} field may not be null.",
}

# Structural rules shape the pydantic field instead of running as checks.
STRUCTURAL_RULES = {"required", "nullable", "sometimes"}


# =================================================================================================================
# Built-in checks
# =================================================================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _size(value: Any) -> float | None:
    """Length for strings/collections, magnitude for numbers, None when neither applies."""
    if isinstance(value, (str, list, tuple, set, dict)):
        return len(value)
    if _is_number(value):
        return float(value)
    return None


def _numeric(value: Any) -> bool:
    if _is_number(value):
        return True
    if isinstance(value, str):
        try:
            Decimal(value.strip())
        except InvalidOperation:
            return False
        return True
    return False


def _date(value: Any) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    if isinstance(value, str):
        try:
            datetime.fromisoformat(value.strip())
        except ValueError:
            return False
        return True
    return False


def _uuid(value: Any) -> bool:
    if isinstance(value, uuid.UUID):
        return True
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def _compare_size(value: Any, op: Callable[[float], bool]) -> bool:
    size = _size(value)
    return size is not None and op(size)


BUILTIN_RULES: dict[str, RuleCheck] = {
    "string": lambda v, p: isinstance(v, str),
    "integer": lambda v, p: isinstance(v, int) and not isinstance(v, bool),
    "numeric": lambda v, p: _numeric(v),
    "boolean": lambda v, p: isinstance(v, bool) or v in (0, 1, "0", "1"),
    "email": lambda v, p: isinstance(v, str) and bool(_EMAIL_RE.match(v)),
    "date": lambda v, p: _date(v),
    "uuid": lambda v, p: _uuid(v),
    "min": lambda v, p: _compare_size(v, lambda s: s >= float(p[0])),
    "max": lambda v, p: _compare_size(v, lambda s: s <= float(p[0])),
    "between": lambda v, p: _compare_size(v, lambda s: float(p[0]) <= s <= float(p[1])),
    "in": lambda v, p: str(v) in p,
    "not_in": lambda v, p: str(v) not in p,
    "regex": lambda v, p: isinstance(v, str) and re.search(p[0], v) is not None,
}

# how many parameters each rule expects (None = any number >= 1)
RULE_ARITY = {"min": 1, "max": 1, "between": 2, "in": None, "not_in": None, "regex": 1}

# rules whose parameters are compared as numbers
NUMERIC_PARAM_RULES = {"min", "max", "between"}


def _parameters_parse(name: str, params: list[str]) -> bool:
    try:
        if name in NUMERIC_PARAM_RULES:
            for param in params:
                float(param)
        elif name == "regex":
            re.compile(params[0])
    except (ValueError, re.error):
        return False
    return True


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _context(name: str, params: list[str]) -> dict[str, Any]:
    if name in ("min", "max"):
        return {name: params[0]}
    if name == "between":
        return {"min": params[0], "max": params[1]}
    if name in ("in", "not_in"):
        return {"values": ", ".join(params)}
    return {}


# =================================================================================================================
# Rule parsing
# =================================================================================================================

def parse_rules(field_rules: Any) -> list[tuple[str, list[str]]]:
    """
    Parse one field's rules into [(name, params), ...].

    Accepts a pipe-delimited string ("required|max:20") or a list/tuple of tokens
    (["required", "regex:^a|b$"]); use the list form when a parameter contains '|'.
    """
    if isinstance(field_rules, str):
        tokens = [t for t in field_rules.split("|") if t.strip()]
    elif isinstance(field_rules, (list, tuple)):
        tokens = list(field_rules)
    else:
        raise RepositoryConfigurationError(f"Rules must be a string or a list of strings, got {type(field_rules).__name__}")

    parsed = []
    for token in tokens:
        name, _, raw = str(token).strip().partition(":")
        name = name.strip()
        if name == "regex":
            params = [raw] if raw else []
        else:
            params = [p.strip() for p in raw.split(",")] if raw else []
        parsed.append((name, params))
    return parsed


class Validator:
    """
    Validates one attributes mapping against one rule set. Cheap to build; `passes()`
    runs the rules (once) and `errors()` returns the collected messages.
    """

    def __init__(self, attributes: Mapping[str, Any], rules: Mapping[str, Any],
                 messages: Mapping[str, str] | None = None,
                 extensions: Mapping[str, tuple[RuleCheck, str]] | None = None):
        self.attributes = dict(attributes)
        self.messages = dict(messages or {})
        self._extensions = dict(extensions or {})
        self._rules = {field: parse_rules(field_rules) for field, field_rules in rules.items()}
        self._errors: dict[str, list[str]] | None = None
        self._schema = self._compile()

    # ------------------------
    # Public API
    # ------------------------
    def passes(self) -> bool:
        if self._errors is None:
            self._errors = self._run()
        return not self._errors

    def fails(self) -> bool:
        return not self.passes()

    def errors(self) -> dict[str, list[str]]:
        self.passes()
        return {field: list(messages) for field, messages in self._errors.items()}

    # ------------------------
    # Compilation
    # ------------------------
    def _check_for(self, name: str) -> RuleCheck:
        if name in self._extensions:
            return self._extensions[name][0]
        if name in BUILTIN_RULES:
            return BUILTIN_RULES[name]
        raise RepositoryConfigurationError(f"Unknown validation rule '{name}'")

    def _compile(self):
        fields = {}
        for index, (field, parsed) in enumerate(self._rules.items()):
            names = {name for name, _ in parsed}
            checks = []
            for name, params in parsed:
                if name in STRUCTURAL_RULES:
                    continue
                arity = RULE_ARITY.get(name)
                if (arity is None and name in RULE_ARITY and not params) or (arity and len(params) != arity):
                    raise RepositoryConfigurationError(f"Rule '{name}' on '{field}' has wrong parameters: {params}")
                if not _parameters_parse(name, params):
                    raise RepositoryConfigurationError(f"Rule '{name}' on '{field}' has invalid parameters: {params}")
                checks.append((name, params, self._check_for(name)))

            validator = AfterValidator(
                _field_validator(checks, required="required" in names, nullable="nullable" in names)
            )
            annotation = Annotated[Any, validator]
            if "required" in names:
                fields[f"field_{index}"] = (annotation, Field(..., alias=field))
            else:
                fields[f"field_{index}"] = (annotation, Field(default=None, alias=field))

        return create_model(
            "RuleSet",
            __config__=ConfigDict(extra="ignore", arbitrary_types_allowed=True),
            **fields,
        )

    # ------------------------
    # Execution
    # ------------------------
    def _run(self) -> dict[str, list[str]]:
        try:
            self._schema.model_validate(self.attributes)
        except PydanticValidationError as exc:
            errors: dict[str, list[str]] = {}
            for err in exc.errors():
                field = str(err["loc"][0])
                rule = "required" if err["type"] == "missing" else err["type"]
                errors.setdefault(field, []).append(self._message(field, rule, err.get("ctx") or {}))
            return errors
        return {}

    def _message(self, field: str, rule: str, context: Mapping[str, Any]) -> str:
        template = (
            self.messages.get(f"{field}.{rule}")
            or self.messages.get(rule)
            or (self._extensions[rule][1] if rule in self._extensions else None)
            or DEFAULT_MESSAGES.get(rule, "The {attribute} is invalid.")
        )
        values = {"attribute": field.replace("_", " "), **context}
        return template.format_map(_Missing(values))


def _field_validator(checks, *, required: bool, nullable: bool):
    def validate(value: Any) -> Any:
        if required and _is_empty(value):
            raise PydanticCustomError("required", "required")
        if value is None:
            if nullable:
                return value
            raise PydanticCustomError("nullable", "nullable")
        for name, params, check in checks:
            if not check(value, params):
                raise PydanticCustomError(name, name, _context(name, params))
        return value

    return validate


class _Missing(dict):
    """format_map helper: leave unknown placeholders as-is instead of raising KeyError."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class ValidationFactory:
    """
    Builds validators. One factory is shared by all repositories of an application;
    custom rules registered with `extend` are available to every validator it makes.

        factory.extend("slug", lambda v, p: bool(SLUG_RE.match(v)), "The {attribute} must be a slug.")
    """

    def __init__(self) -> None:
        self._extensions: dict[str, tuple[RuleCheck, str]] = {}

    def extend(self, name: str, check: RuleCheck, message: str | None = None) -> None:
        if name in STRUCTURAL_RULES:
            raise RepositoryConfigurationError(f"Rule '{name}' is reserved")
        self._extensions[name] = (check, message or "The {attribute} is invalid.")

    def make(self, attributes: Mapping[str, Any], rules: Mapping[str, Any],
             messages: Mapping[str, str] | None = None) -> Validator:
        return Validator(attributes, rules, messages, extensions=self._extensions)
