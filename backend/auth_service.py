"""Authentication Service using JWT"""
import os
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional
from pathlib import Path
from dotenv import load_dotenv
import jwt
from pydantic import BaseModel

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

JWT_SECRET = (os.environ.get('JWT_SECRET') or '').strip()
if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET environment variable is required")

JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_HOURS = 24


class TokenData(BaseModel):
    user_id: str
    tenant_id: str
    email: str
    exp: datetime


def create_access_token(user_id: str, email: str, tenant_id: Optional[str] = None) -> str:
    """Create a JWT access token. A user is its own tenant unless told otherwise."""
    expiration = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRATION_HOURS)
    payload = {
        "user_id": user_id,
        "tenant_id": tenant_id or user_id,
        "email": email,
        "exp": expiration
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[TokenData]:
    """Verify and decode a JWT token"""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        return TokenData(
            user_id=payload["user_id"],
            tenant_id=payload.get("tenant_id") or payload["user_id"],
            email=payload["email"],
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Token expired")
        return None
    except (jwt.InvalidTokenError, KeyError) as e:
        logger.warning(f"Invalid token: {str(e)}")
        return None
