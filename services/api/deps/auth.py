from typing import Optional

from fastapi import HTTPException, Request


def get_current_user_id(request: Request) -> str:
    if getattr(request.state, "user_id", None):
        return request.state.user_id
    user_id: Optional[str] = request.headers.get("x-user-id")
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=401, detail="missing user")
    request.state.user_id = user_id.strip()
    return request.state.user_id
