"""
API Dependencies
Shared dependencies for authentication, engine access and result mapping
"""
import os
from typing import Optional, Dict, Any
from fastapi import HTTPException, Request, status, Header
from supabase import create_client, Client
from pydantic import BaseModel
from dotenv import load_dotenv

from leadflow.services.engine import EngineServices, build_engine

load_dotenv()


class CurrentUser(BaseModel):
    """Current authenticated user model"""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    tenant_id: Optional[str] = None
    role: str = "user"


def get_supabase() -> Client:
    """
    Get Supabase client with validation.

    Raises:
        RuntimeError: If Supabase URL or SERVICE_KEY is not configured
    """
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_KEY")

    if not url:
        raise RuntimeError(
            "SUPABASE_URL is not configured. "
            "Set SUPABASE_URL environment variable."
        )
    if not key:
        raise RuntimeError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set SUPABASE_SERVICE_KEY environment variable."
        )

    return create_client(url, key)


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> CurrentUser:
    """
    Dependency to get the current authenticated user from JWT token.

    When TenantMiddleware verified the token signature, the user and tenant
    come from its claims. Otherwise the token is checked with Supabase auth
    and the tenant is read from `user_profiles`.

    Raises:
        HTTPException: If token is invalid or the user has no tenant
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Use: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = parts[1]

    state = request.state
    if getattr(state, "token_verified", False) and getattr(state, "user_id", None):
        if not state.tenant_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="User is not assigned to a tenant",
            )
        return CurrentUser(
            id=str(state.user_id),
            email=state.email,
            tenant_id=state.tenant_id,
            role=state.role or "user",
        )

    supabase = get_supabase()
    try:
        user_response = supabase.auth.get_user(token)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token validation failed: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user_response or not user_response.user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    auth_user = user_response.user
    profile_response = supabase.table("user_profiles").select(
        "name, tenant_id, role"
    ).eq("id", auth_user.id).limit(1).execute()
    profile = profile_response.data[0] if profile_response.data else {}

    tenant_id = profile.get("tenant_id")
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not assigned to a tenant",
        )

    return CurrentUser(
        id=str(auth_user.id),
        email=auth_user.email,
        name=profile.get("name"),
        tenant_id=tenant_id,
        role=profile.get("role", "user"),
    )


# Engine singleton
_engine: Optional[EngineServices] = None


def get_engine() -> EngineServices:
    """Get or create the service graph for this process."""
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


def raise_for_result(result: Dict[str, Any]) -> Dict[str, Any]:
    """
    Map a failed service result to an HTTP error.

    not found -> 404, everything else (store/network) -> 502.
    """
    if result.get("success"):
        return result
    error = result.get("error") or "Operation failed"
    if result.get("error_type") == "not_found" or "not found" in error.lower():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error)
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error)
