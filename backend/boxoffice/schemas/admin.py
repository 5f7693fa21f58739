"""
Pydantic schemas for the admin console and maintenance endpoints.
"""

from typing import Optional

from pydantic import BaseModel, EmailStr


class AdminLogin(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class SweepResponse(BaseModel):
    released_locks: int
    expired_orders: int


class NotificationResponse(BaseModel):
    status: str
    order_id: Optional[str] = None
