"""
特權呼叫的身分驗證（Bearer token）

- require_operator：提領抽成，token = settings.operator_token
- require_coordinator：送達亂數，token = settings.vrf_callback_token

token 未設定時只有 debug 模式放行；X-Caller header 不能冒充這兩個身分
"""
import hmac
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import logging

from database import Settings, get_settings

logger = logging.getLogger(__name__)

_auth_scheme = HTTPBearer(auto_error=False)


def _check_token(
    expected: Optional[str],
    creds: Optional[HTTPAuthorizationCredentials],
    settings: Settings,
    role: str
) -> None:
    if not expected:
        if settings.debug:
            return
        raise HTTPException(status_code=401, detail=f"{role} token required in production")
    if not creds:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not hmac.compare_digest(creds.credentials.encode(), expected.encode()):
        logger.warning(f"Rejected {role} call with invalid token")
        raise HTTPException(status_code=403, detail="Forbidden")


def require_operator(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_auth_scheme),
    settings: Settings = Depends(get_settings)
) -> str:
    """驗證通過後以設定的 operator 身分呼叫"""
    _check_token(settings.operator_token, creds, settings, "operator")
    return settings.operator


def require_coordinator(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_auth_scheme),
    settings: Settings = Depends(get_settings)
) -> bool:
    _check_token(settings.vrf_callback_token, creds, settings, "coordinator")
    return True
