from typing import Optional

from fastapi import Header

ANONYMOUS_USER = "anonymous"


def get_user_identifier(x_user_id: Optional[str] = Header(default=None)) -> str:
    """
    FastAPI dependency naming who made a change, for audit rows.

    Login is handled in front of this service; the caller forwards the user in
    the ``X-User-ID`` header. Requests without it are recorded as anonymous.
    """
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return ANONYMOUS_USER
