from jose import JWTError, jwt

from app.core.config import get_settings


settings = get_settings()


def decode_token(token: str) -> dict:
    # Tokens are issued by the auth service; this side only verifies them.
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid or expired token") from exc
