"""
Authentication API
Account signup, login and session lookup
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from healthchain.database.connection import get_db
from healthchain.database.models import User
from healthchain.services.auth_service import auth_service, audit_service, get_current_user
from healthchain.services.presenters import user_dict

router = APIRouter(prefix="/auth", tags=["Authentication"])


# ==================== Pydantic Models ====================

class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: dict


# ==================== Endpoints ====================

@router.post("/signup", status_code=201)
async def signup(
    request: Request,
    data: SignupRequest,
    db: Session = Depends(get_db)
):
    """Create an account; the role is chosen later by registering a profile"""
    try:
        user = auth_service.create_user(db, data.email, data.password, data.name)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    audit_service.log(
        db=db,
        action="signup",
        resource_type="auth",
        description=f"Account created for {user.email}",
        user=user,
        request=request
    )

    return {"status": "success", "data": user_dict(user)}


@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    data: LoginRequest,
    db: Session = Depends(get_db)
):
    """
    Login with email and password.
    Returns JWT token for subsequent requests.
    """
    user = auth_service.authenticate_user(db, data.email, data.password)

    if not user:
        audit_service.log(
            db=db,
            action="login_failed",
            resource_type="auth",
            description=f"Failed login attempt for email: {data.email}",
            request=request,
            success=False
        )
        raise HTTPException(status_code=401, detail="Invalid email or password")

    token = auth_service.create_access_token(
        data={"sub": user.email, "role": user.role.value}
    )

    audit_service.log(
        db=db,
        action="login",
        resource_type="auth",
        description=f"User {user.email} logged in",
        user=user,
        request=request
    )

    return {
        "access_token": token,
        "token_type": "bearer",
        "user": user_dict(user)
    }


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current user info"""
    return user_dict(current_user)
