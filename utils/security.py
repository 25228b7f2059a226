import os
from typing import Optional

from dotenv import load_dotenv
from jose import JWTError, jwt

load_dotenv()

# tokens are issued by the identity provider; this service only verifies them
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a token; None when the signature or expiry is invalid."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
