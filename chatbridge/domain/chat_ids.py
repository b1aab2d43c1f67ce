from __future__ import annotations

DOMAIN_SEPARATOR = "@"
USER_DOMAIN = "s.whatsapp.net"
GROUP_DOMAIN = "g.us"

def normalize_chat_id(to: str) -> str:
    """Fully qualify a destination. Bare numbers get the one-to-one domain."""
    if DOMAIN_SEPARATOR in to:
        return to
    return f"{to}{DOMAIN_SEPARATOR}{USER_DOMAIN}"

def is_group_chat(chat_id: str) -> bool:
    return chat_id.endswith(f"{DOMAIN_SEPARATOR}{GROUP_DOMAIN}")

def number_of(chat_id: str) -> str:
    return chat_id.split(DOMAIN_SEPARATOR, 1)[0]

def phone_from_user_id(user_id: str | None) -> str | None:
    # "5511999999999:12@s.whatsapp.net" -> "5511999999999"
    if not user_id:
        return None
    return number_of(user_id).split(":", 1)[0] or None
