from pydantic import BaseModel, EmailStr


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    role: str
    email: EmailStr


class UserResponse(BaseModel):
    email: EmailStr
    role: str
    is_active: bool
