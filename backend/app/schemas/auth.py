from typing import Optional

from pydantic import BaseModel


class MeResponse(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    role: str
    company_id: Optional[int] = None
    is_platform_operator: bool
