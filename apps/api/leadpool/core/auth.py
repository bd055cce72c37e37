from dataclasses import dataclass

from jose import JWTError, jwt
from starlette.requests import Request

from leadpool.core.config import get_settings


@dataclass
class AuthUser:
    sub: str
    name: str
    role: str


ANONYMOUS = AuthUser(sub="anonymous", name="anonymous", role="")


async def get_current_user(request: Request) -> AuthUser:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""

    if not token:
        return ANONYMOUS

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return ANONYMOUS

    subject = str(payload.get("sub", "anonymous"))
    name = str(payload.get("username") or payload.get("name") or subject)
    role = str(payload.get("role", ""))
    return AuthUser(sub=subject, name=name, role=role)
