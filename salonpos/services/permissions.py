from __future__ import annotations

from typing import Any, Mapping

PERMISSION_KEYS = (
    "can_book_appointments",
    "can_offer_discounts",
    "requires_discount_approval",
    "view_global_reports",
    "view_client_contact",
    "view_all_salon_plans",
    "can_book_own_schedule",
    "can_book_peer_schedules",
)

DEFAULT_LEVEL_ID = "lvl_1"

DEFAULT_PERMISSIONS: dict[str, bool] = {
    "can_book_appointments": True,
    "can_offer_discounts": False,
    "requires_discount_approval": True,
    "view_global_reports": False,
    "view_client_contact": True,
    "view_all_salon_plans": False,
    "can_book_own_schedule": True,
    "can_book_peer_schedules": False,
}

ACCESS_LEVELS: dict[str, dict[str, Any]] = {
    "lvl_1": {"name": "Stylist", "permissions": dict(DEFAULT_PERMISSIONS)},
    "lvl_2": {
        "name": "Senior Stylist",
        "permissions": {
            **DEFAULT_PERMISSIONS,
            "can_offer_discounts": True,
            "view_all_salon_plans": True,
        },
    },
    "lvl_3": {
        "name": "Manager",
        "permissions": {
            **DEFAULT_PERMISSIONS,
            "can_offer_discounts": True,
            "requires_discount_approval": False,
            "view_global_reports": True,
            "view_all_salon_plans": True,
            "can_book_peer_schedules": True,
        },
    },
}


def normalize_level_id(level_id: str | None) -> str:
    if level_id and level_id in ACCESS_LEVELS:
        return level_id
    return DEFAULT_LEVEL_ID


def validate_overrides(overrides: Mapping[str, Any] | None) -> dict[str, bool]:
    if not overrides:
        return {}
    unknown = sorted(set(overrides) - set(PERMISSION_KEYS))
    if unknown:
        raise ValueError(f"Unknown permission keys: {', '.join(unknown)}")
    return {key: bool(value) for key, value in overrides.items()}


def effective_permissions(level_id: str | None, overrides: Mapping[str, Any] | None = None) -> dict[str, bool]:
    permissions = dict(ACCESS_LEVELS[normalize_level_id(level_id)]["permissions"])
    for key, value in (overrides or {}).items():
        if key in permissions:
            permissions[key] = bool(value)
    return permissions


def list_access_levels() -> list[dict[str, Any]]:
    return [
        {"id": level_id, "name": level["name"], "permissions": dict(level["permissions"])}
        for level_id, level in ACCESS_LEVELS.items()
    ]
