from typing import Dict, List, Optional

from pydantic import BaseModel


class LoginRequest(BaseModel):
    identifier: str  # username or email
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MeResponse(BaseModel):
    id: int
    username: str
    name: Optional[str] = None
    roles: List[str]
    permissions: Dict[str, bool]
    managed_project_ids: List[int]
