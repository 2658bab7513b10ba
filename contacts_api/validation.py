"""Declarative field validation for raw request payloads.

A rule-set maps each accepted field to a comma-separated rule expression::

    validate({"email": "required,isEmail", "phone": ""}, payload)

Fields are checked in declaration order, ``required`` before format rules.
Fields missing from the rule-set are dropped from the cleaned data. Numbers
and booleans are kept as their string form; objects and lists are rejected.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from email_validator import EmailNotValidError, validate_email


@dataclass
class ValidationResult:
    """Cleaned fields plus the ordered list of rule violations."""

    data: dict[str, Any] = field(default_factory=dict)
    message: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.message


def _is_email(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _is_strong_password(value: Any) -> bool:
    if not isinstance(value, str) or len(value) < 8:
        return False
    return all(
        re.search(pattern, value)
        for pattern in (r"[a-z]", r"[A-Z]", r"\d", r"[^A-Za-z0-9]")
    )


FORMAT_RULES: dict[str, tuple[Callable[[Any], bool], str]] = {
    "isEmail": (_is_email, "{field} must be a valid email"),
    "isStrongPassword": (
        _is_strong_password,
        "{field} must be at least 8 characters and contain upper and lower "
        "case letters, a number and a symbol",
    ),
}


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (bool, int, float)):
        return str(value)
    return value


def _is_missing(value: Any) -> bool:
    return value is None or value == ""


def _parse_rules(expression: str) -> list[str]:
    rules = [rule.strip() for rule in expression.split(",") if rule.strip()]
    for rule in rules:
        if rule != "required" and rule not in FORMAT_RULES:
            raise ValueError(f"Unknown validation rule: {rule}")
    return rules


def validate(rules: Mapping[str, str], payload: Mapping[str, Any] | None) -> ValidationResult:
    """
    Check ``payload`` against ``rules``.

    Args:
        rules (Mapping[str, str]): Field name to rule expression. An empty
            expression accepts the field as optional.
        payload (Mapping[str, Any] | None): Raw input; ``None`` is treated
            as an empty payload.

    Raises:
        ValueError: If a rule expression names an unknown rule.

    Returns:
        ValidationResult: Cleaned recognized fields and violation messages.
    """
    payload = payload or {}
    result = ValidationResult()

    for name, expression in rules.items():
        checks = _parse_rules(expression)
        value = _clean(payload.get(name))
        if _is_missing(value):
            if "required" in checks:
                result.message.append(f"{name} is required")
            continue

        if not isinstance(value, str):
            result.message.append(f"{name} must be a string")
            continue

        result.data[name] = value
        for check in checks:
            if check == "required":
                continue
            predicate, template = FORMAT_RULES[check]
            if not predicate(value):
                result.message.append(template.format(field=name))

    return result
