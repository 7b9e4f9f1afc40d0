import hmac
from fastapi import HTTPException, Header
from shared.config import settings


def is_admin_key(api_key: str | None) -> bool:
    if not api_key or not settings.API_SECRET_KEY:
        return False
    # The shipped default key never grants access in production
    if settings.ENVIRONMENT == "production" and settings.uses_default_api_key:
        return False
    return hmac.compare_digest(api_key, settings.API_SECRET_KEY)


def is_admin_chat(chat_id: int) -> bool:
    return chat_id in settings.ADMIN_CHAT_IDS


async def verify_api_key(x_api_key: str = Header(...)) -> bool:
    if not is_admin_key(x_api_key):
        raise HTTPException(status_code=401, detail="Invalid API key")
    return True
