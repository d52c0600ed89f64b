# Overview: Runtime settings stored in the settings table.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Setting
from ..validation import ValidationError
from .money import to_cents


IMPORT_LOCKED = "procurement_import_locked"
EXPECTED_COUNT = "expected_procurement_count"
UNIT_PRICE = "unit_price"

EDITABLE_KEYS = {IMPORT_LOCKED, EXPECTED_COUNT, UNIT_PRICE}


def _defaults() -> dict[str, str]:
    return {
        IMPORT_LOCKED: "false",
        EXPECTED_COUNT: str(current_app.config["EXPECTED_PROCUREMENT_COUNT"]),
        UNIT_PRICE: str(current_app.config["DEFAULT_UNIT_PRICE"]),
    }


def ensure_default_settings() -> None:
    """Insert missing defaults; existing values are left alone. Does not commit."""
    existing = {s.key for s in db.session.query(Setting).all()}
    for key, value in _defaults().items():
        if key not in existing:
            db.session.add(Setting(key=key, value=value))
    db.session.flush()


def get_settings() -> dict[str, str]:
    ensure_default_settings()
    return {s.key: s.value for s in db.session.query(Setting).order_by(Setting.key).all()}


def get_setting(key: str) -> str | None:
    ensure_default_settings()
    setting = db.session.get(Setting, key)
    return setting.value if setting else None


def set_setting(key: str, value) -> Setting:
    """Validate and store one setting. Does not commit."""
    if key not in EDITABLE_KEYS:
        raise ValidationError(f"Unknown setting: {key}")

    text = str(value).strip() if value is not None else ""
    if key == IMPORT_LOCKED:
        if text.lower() not in ("true", "false"):
            raise ValidationError(f"{key} must be 'true' or 'false'")
        text = text.lower()
    elif key == EXPECTED_COUNT:
        if not text.isdigit() or int(text) <= 0:
            raise ValidationError(f"{key} must be a positive integer")
    elif key == UNIT_PRICE:
        try:
            cents = to_cents(text)
        except ValueError as e:
            raise ValidationError(str(e))
        if cents is None or cents < 0:
            raise ValidationError(f"{key} must be a non-negative amount")

    ensure_default_settings()
    setting = db.session.get(Setting, key)
    setting.value = text
    return setting


def is_import_locked() -> bool:
    return (get_setting(IMPORT_LOCKED) or "false").lower() == "true"


def expected_procurement_count() -> int:
    return int(get_setting(EXPECTED_COUNT))


def unit_price_cents() -> int:
    return to_cents(get_setting(UNIT_PRICE))
