"""
Declarative field validation and free-text sanitization.

Pure functions, no Flask or database imports: handlers validate at the
boundary before anything touches the repository.
"""
from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any


VALIDATION_PATTERNS: dict[str, re.Pattern[str]] = {
    "email": re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
    "tracking_number": re.compile(r"^[A-Z0-9]{8,20}$"),
    "phone": re.compile(r"^\+?[\d\s\-()]{10,}$"),
    "postal_code": re.compile(r"^[A-Z0-9\s\-]{3,10}$", re.IGNORECASE),
    "name": re.compile(r"^[a-zA-Z\s\-']{2,50}$"),
    "alphanumeric": re.compile(r"^[a-zA-Z0-9]+$"),
    "no_special_chars": re.compile(r"^[a-zA-Z0-9\s\-_]+$"),
}


@dataclass(frozen=True)
class Rule:
    message: str
    required: bool = False
    min_length: int | None = None
    max_length: int | None = None
    pattern: re.Pattern[str] | None = None
    custom: Callable[[Any], bool] | None = None


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


# ---------- Rule factories ----------
def required(message: str = "This field is required") -> Rule:
    return Rule(message=message, required=True)


def min_length(n: int, message: str | None = None) -> Rule:
    return Rule(message=message or f"Must be at least {n} characters long", min_length=n)


def max_length(n: int, message: str | None = None) -> Rule:
    return Rule(message=message or f"Must be no more than {n} characters long", max_length=n)


def pattern(regex: str | re.Pattern[str], message: str = "Invalid format") -> Rule:
    compiled = re.compile(regex) if isinstance(regex, str) else regex
    return Rule(message=message, pattern=compiled)


def custom(predicate: Callable[[Any], bool], message: str) -> Rule:
    return Rule(message=message, custom=predicate)


def email(message: str = "Please enter a valid email address") -> Rule:
    return pattern(VALIDATION_PATTERNS["email"], message)


def tracking_number(message: str = "Please enter a valid tracking number (8-20 alphanumeric characters)") -> Rule:
    return pattern(VALIDATION_PATTERNS["tracking_number"], message)


def name(message: str = "Please enter a valid name (letters, spaces, hyphens, and apostrophes only)") -> Rule:
    return pattern(VALIDATION_PATTERNS["name"], message)


def phone(message: str = "Please enter a valid phone number") -> Rule:
    return pattern(VALIDATION_PATTERNS["phone"], message)


# ---------- Evaluation ----------
def _is_blank(value: Any) -> bool:
    # 0, False and empty containers count as missing, like any falsy value.
    if isinstance(value, str):
        return value.strip() == ""
    return not value


def validate_field(value: Any, rules: Sequence[Rule]) -> ValidationResult:
    """
    Apply `rules` in order to one value.

    A blank value only ever yields the first `required` rule's message; blank
    optional values pass. Otherwise every rule is checked and messages accumulate.
    """
    if _is_blank(value):
        for rule in rules:
            if rule.required:
                return ValidationResult(is_valid=False, errors=[rule.message])
        return ValidationResult(is_valid=True)

    text = value.strip() if isinstance(value, str) else str(value)
    errors: list[str] = []
    for rule in rules:
        if rule.min_length is not None and len(text) < rule.min_length:
            errors.append(rule.message)
        if rule.max_length is not None and len(text) > rule.max_length:
            errors.append(rule.message)
        if rule.pattern is not None and not rule.pattern.search(text):
            errors.append(rule.message)
        if rule.custom is not None and not rule.custom(value):
            errors.append(rule.message)
    return ValidationResult(is_valid=not errors, errors=errors)


def validate_form(data: Mapping[str, Any], schema: Mapping[str, Sequence[Rule]]) -> dict[str, ValidationResult]:
    return {field_name: validate_field(data.get(field_name), rules) for field_name, rules in schema.items()}


def is_form_valid(results: Mapping[str, ValidationResult]) -> bool:
    return all(r.is_valid for r in results.values())


def get_all_errors(results: Mapping[str, ValidationResult]) -> list[str]:
    out: list[str] = []
    for r in results.values():
        out.extend(r.errors)
    return out


def get_field_error(field_name: str, results: Mapping[str, ValidationResult]) -> str | None:
    r = results.get(field_name)
    return r.errors[0] if r and r.errors else None


def has_field_error(field_name: str, results: Mapping[str, ValidationResult]) -> bool:
    r = results.get(field_name)
    return bool(r) and not r.is_valid


# ---------- Sanitizing / formatting ----------
_ANGLE_RE = re.compile(r"[<>]")
_JS_PROTO_RE = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"on\w+=", re.IGNORECASE)


def sanitize_input(value: Any) -> str:
    """Strip script-injection vectors from free text. Not an HTML sanitizer."""
    if not isinstance(value, str):
        return ""
    out = value.strip()
    out = _ANGLE_RE.sub("", out)
    out = _JS_PROTO_RE.sub("", out)
    out = _EVENT_HANDLER_RE.sub("", out)
    return out


def format_tracking_number(value: str) -> str:
    return re.sub(r"[^A-Z0-9]", "", (value or "").upper())


def format_phone_number(value: str) -> str:
    digits = re.sub(r"\D", "", value or "")
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    if len(digits) == 11 and digits[0] == "1":
        return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
    return value


FORM_SCHEMAS: dict[str, dict[str, list[Rule]]] = {
    "tracking": {
        "trackingNumber": [
            required("Please enter a tracking number"),
            tracking_number(),
        ],
    },
    "contact": {
        "name": [
            required("Please enter your name"),
            min_length(2, "Name must be at least 2 characters"),
            max_length(50, "Name must be less than 50 characters"),
            name(),
        ],
        "email": [
            required("Please enter your email address"),
            email(),
        ],
        "message": [
            required("Please enter a message"),
            min_length(10, "Message must be at least 10 characters"),
            max_length(1000, "Message must be less than 1000 characters"),
        ],
    },
    "admin_package": {
        "trackingNumber": [
            required("Please enter a tracking number"),
            tracking_number(),
        ],
        "status": [
            required("Please select a status"),
        ],
        "location": [
            required("Please enter current location"),
            min_length(2, "Location must be at least 2 characters"),
            max_length(100, "Location must be less than 100 characters"),
        ],
        "destination": [
            required("Please enter destination"),
            min_length(2, "Destination must be at least 2 characters"),
            max_length(100, "Destination must be less than 100 characters"),
        ],
        "customerName": [
            max_length(50, "Customer name must be less than 50 characters"),
            name("Please enter a valid customer name"),
        ],
        "customerEmail": [
            email("Please enter a valid email address"),
        ],
        "notes": [
            max_length(500, "Notes must be less than 500 characters"),
        ],
    },
    "login": {
        "email": [
            required("Please enter your email address"),
            email(),
        ],
        "password": [
            required("Please enter your password"),
            min_length(6, "Password must be at least 6 characters"),
        ],
    },
}
