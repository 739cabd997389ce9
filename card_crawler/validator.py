# card_crawler/validator.py

from __future__ import annotations
import logging
import re
from typing import Any, List, Mapping, Optional, Union
from urllib.parse import urlsplit

from .aggregator import is_empty
from .config_behavior import (
    CARD_SCHEMA,
    VALIDATION_AMOUNT_FIELDS,
    VALIDATION_AMOUNT_PATTERNS,
    VALIDATION_CHARGE_HINTS,
    VALIDATION_EMAIL_PATTERN,
    VALIDATION_ERROR_PENALTY,
    VALIDATION_MAX_ANNUAL_FEE,
    VALIDATION_MAX_JOINING_FEE,
    VALIDATION_PERCENTAGE_PATTERN,
    VALIDATION_PHONE_PATTERNS,
    VALIDATION_REQUIRED_FIELDS,
    VALIDATION_WARNING_PENALTY,
)
from .models import FieldKind, ValidationResult

logger = logging.getLogger(__name__)

_AMOUNT_RES = [re.compile(p, re.IGNORECASE) for p in VALIDATION_AMOUNT_PATTERNS]
_PERCENTAGE_RE = re.compile(VALIDATION_PERCENTAGE_PATTERN)
_CHARGE_HINT_RES = [re.compile(p, re.IGNORECASE) for p in VALIDATION_CHARGE_HINTS]
_PHONE_RES = [re.compile(p) for p in VALIDATION_PHONE_PATTERNS]
_EMAIL_RE = re.compile(VALIDATION_EMAIL_PATTERN)


def is_valid_amount(value: Any) -> bool:
    return isinstance(value, str) and any(r.match(value.strip()) for r in _AMOUNT_RES)


def is_valid_percentage(value: Any) -> bool:
    return isinstance(value, str) and bool(_PERCENTAGE_RE.search(value))


def is_valid_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def is_valid_phone(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    digits = re.sub(r"[\s\-()]", "", value)
    return any(r.match(digits) for r in _PHONE_RES)


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and bool(_EMAIL_RE.match(value.strip()))


def _amount(value: Any) -> Optional[float]:
    if not isinstance(value, str):
        return None
    match = re.search(r"[0-9][0-9,]*(?:\.[0-9]+)?", value)
    if not match:
        return None
    return float(match.group(0).replace(",", ""))


def _percentage(value: Any) -> Optional[float]:
    if not isinstance(value, str):
        return None
    match = re.search(r"(\d+(?:\.\d+)?)\s*%", value)
    return float(match.group(1)) if match else None


def _check_required(fields: Mapping[str, Any], errors: List[str]) -> None:
    for name in VALIDATION_REQUIRED_FIELDS:
        if is_empty(fields.get(name)):
            errors.append(f"Required field '{name}' is missing or empty")


def _check_amounts(fields: Mapping[str, Any], errors: List[str], warnings: List[str]) -> None:
    for name in VALIDATION_AMOUNT_FIELDS:
        value = fields.get(name)
        if not is_empty(value) and not is_valid_amount(value):
            errors.append(f"Invalid amount format for '{name}': {value!r}")

    charges = fields.get("other_charges")
    if isinstance(charges, list):
        for index, charge in enumerate(charges, start=1):
            if is_empty(charge) or is_valid_amount(charge):
                continue
            if not any(r.search(str(charge)) for r in _CHARGE_HINT_RES):
                warnings.append(f"Other charge {index} has no recognisable charge type: {charge!r}")


def _check_percentages(fields: Mapping[str, Any], errors: List[str], warnings: List[str]) -> None:
    rate = fields.get("interest_rate")
    if not is_empty(rate) and not is_valid_percentage(rate):
        errors.append(f"Invalid interest rate format: {rate!r}")

    markup = fields.get("foreign_currency_markup")
    if not is_empty(markup) and not is_valid_percentage(markup):
        warnings.append(f"Invalid foreign currency markup format: {markup!r}")


def _check_shapes(
    fields: Mapping[str, Any],
    schema: Mapping[str, FieldKind],
    errors: List[str],
    warnings: List[str],
) -> None:
    for name, kind in schema.items():
        value = fields.get(name)
        if value is None:
            continue
        if kind == FieldKind.COLLECTION:
            if not isinstance(value, list):
                errors.append(f"Field '{name}' should be a list, got {type(value).__name__}")
                continue
            blanks = sum(1 for item in value if is_empty(item))
            if blanks:
                warnings.append(f"Field '{name}' contains {blanks} empty item(s)")
        elif kind == FieldKind.OBJECT and not isinstance(value, dict):
            errors.append(f"Field '{name}' should be an object, got {type(value).__name__}")


def _check_links_and_contact(fields: Mapping[str, Any], warnings: List[str]) -> None:
    links = fields.get("links")
    if isinstance(links, dict):
        terms = links.get("terms_and_conditions")
        if terms and not is_valid_url(terms):
            warnings.append(f"Invalid terms and conditions URL: {terms!r}")
        for index, url in enumerate(links.get("pdfs") or [], start=1):
            if not is_valid_url(url):
                warnings.append(f"Invalid PDF URL {index}: {url!r}")

    contact = fields.get("contact_info")
    if isinstance(contact, dict):
        if contact.get("phone") and not is_valid_phone(contact["phone"]):
            warnings.append(f"Invalid phone number format: {contact['phone']!r}")
        if contact.get("email") and not is_valid_email(contact["email"]):
            warnings.append(f"Invalid email format: {contact['email']!r}")


def _check_plausibility(fields: Mapping[str, Any], warnings: List[str]) -> None:
    annual = _amount(fields.get("annual_fee"))
    if annual is not None and annual > VALIDATION_MAX_ANNUAL_FEE:
        warnings.append(f"Annual fee seems unusually high: {fields['annual_fee']!r}")

    joining = _amount(fields.get("joining_fee"))
    if joining is not None and joining > VALIDATION_MAX_JOINING_FEE:
        warnings.append(f"Joining fee seems unusually high: {fields['joining_fee']!r}")

    rate = _percentage(fields.get("interest_rate"))
    if rate is not None and rate > 100:
        warnings.append(f"Interest rate seems unusual: {fields['interest_rate']!r}")


def validate_card_record(
    fields: Mapping[str, Any],
    schema: Optional[Mapping[str, Union[str, FieldKind]]] = None,
) -> ValidationResult:
    """
    Check a merged card record for missing required fields, malformed fees,
    percentages, links and contact details, and implausible amounts.

    score = percentage of non-empty top-level fields, minus 5 per error and
    1 per warning, clamped to 0..100.
    """
    kinds = {
        name: FieldKind(kind)
        for name, kind in (schema if schema is not None else CARD_SCHEMA).items()
    }
    errors: List[str] = []
    warnings: List[str] = []

    _check_required(fields, errors)
    _check_amounts(fields, errors, warnings)
    _check_percentages(fields, errors, warnings)
    _check_shapes(fields, kinds, errors, warnings)
    _check_links_and_contact(fields, warnings)
    _check_plausibility(fields, warnings)

    total = len(fields)
    filled = sum(1 for value in fields.values() if not is_empty(value))
    base = (filled * 100 / total) if total else 0.0
    score = base - len(errors) * VALIDATION_ERROR_PENALTY - len(warnings) * VALIDATION_WARNING_PENALTY
    score = max(0.0, min(100.0, score))

    result = ValidationResult(is_valid=not errors, score=score, errors=errors, warnings=warnings)
    if result.is_valid:
        logger.info("Card record validation passed (score %.1f, %d warning(s))", score, len(warnings))
    else:
        logger.warning(
            "Card record validation failed with %d error(s), %d warning(s) (score %.1f)",
            len(errors), len(warnings), score,
        )
    return result
