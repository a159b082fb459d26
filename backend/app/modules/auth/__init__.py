# Authentication module

from app.modules.auth.dependencies import (
    get_token_payload,
    get_current_user,
    require_role,
    get_current_buyer,
    get_current_seller,
    get_current_repair_center,
    get_admin_user,
    get_current_admin,
)

__all__ = [
    "get_token_payload",
    "get_current_user",
    "require_role",
    "get_current_buyer",
    "get_current_seller",
    "get_current_repair_center",
    "get_admin_user",
    "get_current_admin",
]
