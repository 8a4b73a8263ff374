"""
api/routes/v1/users.py -- Administrative user listing.

Routes:
  GET /api/v1/users   -- registered accounts, paginated (requires ADMIN)

Query parameters:
  page    1-based page number (default 1)
  limit   rows per page, 1..100 (default 10)
  search  case-insensitive substring of display_name or email
  order   created_at | updated_at | email | display_name (default created_at)
  sort    asc | desc (default desc)
"""

import math
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import PaginationInfo, ProfileResponse, UserListResponse
from auth.dependencies import require_roles
from auth.models import AuthContext

router = APIRouter()


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=255),
    order: Literal["created_at", "updated_at", "email", "display_name"] = "created_at",
    sort: Literal["asc", "desc"] = "desc",
    context: AuthContext = Depends(require_roles("ADMIN")),
) -> UserListResponse:
    components = request.app.state.components
    found, total = components.users.list_users(
        search=search.strip() if search else None,
        page=page,
        limit=limit,
        order=order,
        sort=sort,
    )
    role_names = components.roles.role_names_for_users([u.id for u in found])
    return UserListResponse(
        data=[ProfileResponse.from_user(u, role_names[u.id]) for u in found],
        pagination=PaginationInfo(
            current_page=page,
            size_page=len(found),
            max_page=math.ceil(total / limit),
            total_data=total,
        ),
    )
