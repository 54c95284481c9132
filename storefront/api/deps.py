from typing import Annotated
import logging

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.context import AppContext
from storefront.core.permissions import PermissionChecker
from storefront.core.security import AuthUser, verify_access_token
from storefront.database import get_db
from storefront.services.order_service import OrderService
from storefront.services.stock_ledger_service import ProductStockLedger


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()


def get_context(request: Request) -> AppContext:
    """The application context attached by create_app."""
    return request.app.state.context


async def get_current_user(
    context: Annotated[AppContext, Depends(get_context)],
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> AuthUser:
    """
    Dependency to get the current authenticated user.
    Validates the JWT token and returns the identity it carries.
    """
    user = verify_access_token(context.settings, credentials.credentials)
    if user is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_permission_checker(
    user: Annotated[AuthUser, Depends(get_current_user)],
) -> PermissionChecker:
    """
    Get a PermissionChecker instance for the current user.
    """
    return user.permissions


def require_permissions(*required_permissions: str):
    """
    Dependency factory to require specific permissions.

    Usage:
        @router.get("/", dependencies=[Depends(require_permissions("orders:view_all"))])
        async def list_orders():
            ...
    """
    async def permission_dependency(
        permission_checker: Annotated[PermissionChecker, Depends(get_permission_checker)]
    ):
        for permission in required_permissions:
            if not permission_checker.has_permission(permission):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Permission denied. Required: {permission}"
                )
        return True

    return permission_dependency


async def get_order_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    context: Annotated[AppContext, Depends(get_context)],
) -> OrderService:
    return OrderService(db, context)


async def get_stock_ledger(
    db: Annotated[AsyncSession, Depends(get_db)],
    context: Annotated[AppContext, Depends(get_context)],
) -> ProductStockLedger:
    return ProductStockLedger(db, context.stock_locks)


# Type aliases for cleaner endpoint signatures
CurrentUser = Annotated[AuthUser, Depends(get_current_user)]
DB = Annotated[AsyncSession, Depends(get_db)]
Context = Annotated[AppContext, Depends(get_context)]
Permissions = Annotated[PermissionChecker, Depends(get_permission_checker)]
Orders = Annotated[OrderService, Depends(get_order_service)]
Stock = Annotated[ProductStockLedger, Depends(get_stock_ledger)]
