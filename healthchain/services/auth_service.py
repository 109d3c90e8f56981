"""
Authentication Service
JWT-based authentication and audit logging
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
import bcrypt
from jose import JWTError, jwt
from fastapi import HTTPException, status, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from healthchain.config import settings
from healthchain.database.connection import get_db
from healthchain.database.models import User, UserRole, AuditLog

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# Security
security = HTTPBearer(auto_error=False)


class AuthService:
    """Authentication and authorization service"""

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt directly"""
        password_bytes = password.encode('utf-8')
        salt = bcrypt.gensalt()
        hashed = bcrypt.hashpw(password_bytes, salt)
        return hashed.decode('utf-8')

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify a password against hash"""
        try:
            return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))
        except ValueError:
            return False

    def create_access_token(self, data: dict, expires_delta: timedelta = None) -> str:
        """Create a JWT access token"""
        to_encode = data.copy()

        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=ALGORITHM)

    def decode_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Decode and validate a JWT token"""
        try:
            return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[ALGORITHM])
        except JWTError:
            return None

    def create_user(self, db: Session, email: str, password: str, name: str = None) -> User:
        """Create an account with no role assigned yet"""
        email = email.lower()
        if db.query(User).filter(User.email == email).first():
            raise ValueError("Email already registered")

        user = User(
            email=email,
            name=name,
            password_hash=self.hash_password(password),
            role=UserRole.UNSET
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    def authenticate_user(self, db: Session, email: str, password: str) -> Optional[User]:
        """Authenticate a user by email and password"""
        user = db.query(User).filter(User.email == email.lower()).first()

        if not user or not user.is_active:
            return None

        if not self.verify_password(password, user.password_hash):
            return None

        user.last_login = datetime.utcnow()
        db.commit()

        return user

    def get_current_user(
        self,
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security),
        db: Session = Depends(get_db)
    ) -> User:
        """Get current user from JWT token"""
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized access",
            headers={"WWW-Authenticate": "Bearer"},
        )

        if not credentials:
            raise credentials_exception

        payload = self.decode_token(credentials.credentials)
        if payload is None:
            raise credentials_exception

        email: str = payload.get("sub")
        if email is None:
            raise credentials_exception

        user = db.query(User).filter(User.email == email).first()
        if user is None or not user.is_active:
            raise credentials_exception

        # Attach user info to request for audit logging
        request.state.user = user

        return user


# Global auth service instance
auth_service = AuthService()


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """FastAPI dependency for getting current user"""
    return auth_service.get_current_user(request, credentials, db)


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Require admin role"""
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user


def require_doctor(current_user: User = Depends(get_current_user)) -> User:
    """Require doctor role"""
    if current_user.role != UserRole.DOCTOR:
        raise HTTPException(status_code=403, detail="Only doctors can perform this action")
    return current_user


class AuditService:
    """Audit logging service"""

    @staticmethod
    def log(
        db: Session,
        action: str,
        resource_type: str,
        resource_id: str = None,
        description: str = None,
        new_values: dict = None,
        user: User = None,
        request: Request = None,
        success: bool = True,
        error_message: str = None
    ):
        """Create an audit log entry"""
        if not settings.ENABLE_AUDIT_LOGGING:
            return None

        client_host = request.client.host if request and request.client else None
        log_entry = AuditLog(
            user_id=user.id if user else None,
            email=user.email if user else "system",
            user_role=user.role.value if user else "system",
            ip_address=client_host,
            user_agent=request.headers.get("user-agent", "")[:500] if request else None,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            description=description,
            new_values=new_values,
            success=success,
            error_message=error_message
        )
        db.add(log_entry)
        db.commit()
        return log_entry


audit_service = AuditService()
