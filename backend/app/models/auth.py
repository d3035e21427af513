from pydantic import BaseModel


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class RegisterRequest(BaseModel):
    email: str = ""
    password: str = ""
    invite_code: str = ""


class SessionUserResponse(BaseModel):
    ok: bool = True
    user_id: str
    email: str
