from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from app.db.database import get_db
from app.models.audit_log import AuditAction
from app.models.token_blacklist import TokenBlacklist
from app.models.user import User, UserRole
from app.schemas.user import (
    UserCreate, UserResponse, Token, RefreshRequest, ForgotPasswordRequest, ResetPasswordRequest,
)
from app.core.security import (
    verify_password, get_password_hash, create_access_token, create_refresh_token,
    decode_access_token, decode_refresh_token, validate_password_strength,
    create_password_reset_token, decode_password_reset_token,
)
from app.api.deps import get_current_user, oauth2_scheme
from app.services.audit_service import client_ip, log_action
from app.services.email_service import render_email, send_email_sync
from app.core.config import settings
from app.core.rate_limit import limiter

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("3/minute")
def register(user_data: UserCreate, request: Request, db: Session = Depends(get_db)):
    pw_error = validate_password_strength(user_data.password)
    if pw_error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=pw_error)

    email = user_data.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    # Self-registration always yields a student; admins are promoted out of band
    user = User(
        email=email,
        hashed_password=get_password_hash(user_data.password),
        full_name=user_data.full_name,
        role=UserRole.STUDENT,
    )
    db.add(user)
    db.flush()

    log_action(db, user_id=user.id, action=AuditAction.CREATE.value, resource_type="user",
               resource_id=user.id, details={"email": email}, ip_address=client_ip(request))
    db.commit()
    db.refresh(user)
    return user


@router.post("/login", response_model=Token)
@limiter.limit("5/minute")
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    ip = client_ip(request)
    email = form_data.username.strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(form_data.password, user.hashed_password):
        log_action(db, user_id=None, action=AuditAction.LOGIN_FAILED.value, resource_type="user",
                   details={"email": email}, ip_address=ip)
        db.commit()
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    log_action(db, user_id=user.id, action=AuditAction.LOGIN.value, resource_type="user",
               resource_id=user.id, ip_address=ip)
    db.commit()
    access_token = create_access_token(data={"sub": str(user.id)})
    refresh_token = create_refresh_token(data={"sub": str(user.id)})
    return Token(access_token=access_token, refresh_token=refresh_token)


@router.post("/logout")
def logout(
    request: Request,
    token: str = Depends(oauth2_scheme),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Revoke the current access token so it can no longer be used."""
    payload = decode_access_token(token) or {}
    jti = payload.get("jti")
    exp = payload.get("exp")
    if jti and exp:
        db.add(TokenBlacklist(
            jti=jti,
            user_id=current_user.id,
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
            reason="logout",
        ))
        log_action(db, user_id=current_user.id, action=AuditAction.LOGOUT.value, resource_type="user",
                   resource_id=current_user.id, ip_address=client_ip(request))
        db.commit()

    return {"message": "Logged out successfully"}


@router.post("/refresh", response_model=Token)
@limiter.limit("10/minute")
def refresh_access_token(request: Request, body: RefreshRequest, db: Session = Depends(get_db)):
    """Exchange a valid refresh token for a new access token."""
    payload = decode_refresh_token(body.refresh_token)
    if not payload or "sub" not in payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired refresh token")

    user = db.query(User).filter(User.id == int(payload["sub"]), User.is_active == True).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")

    return Token(access_token=create_access_token(data={"sub": str(user.id)}))


@router.post("/forgot-password")
@limiter.limit("3/minute")
def forgot_password(body: ForgotPasswordRequest, request: Request, db: Session = Depends(get_db)):
    """Send a password reset email. Always returns 200 to avoid user enumeration."""
    user = db.query(User).filter(User.email == body.email.lower()).first()

    if user and user.is_active:
        token = create_password_reset_token(user.email)
        reset_url = f"{settings.frontend_url}/reset-password?token={token}"
        html = render_email(
            "Reset your password",
            "Use the link below to choose a new password. This link expires in 1 hour.",
            user.full_name,
            reset_url,
        )
        send_email_sync(to_email=user.email, subject=f"{settings.app_name}: Reset Your Password", html_content=html)
        log_action(db, user_id=user.id, action="pwd_reset_req", resource_type="user",
                   resource_id=user.id, ip_address=client_ip(request))
        db.commit()

    return {"message": "If an account with that email exists, a reset link has been sent."}


@router.post("/reset-password")
@limiter.limit("5/minute")
def reset_password(body: ResetPasswordRequest, request: Request, db: Session = Depends(get_db)):
    """Reset a user's password using a valid reset token."""
    email = decode_password_reset_token(body.token)
    user = db.query(User).filter(User.email == email).first() if email else None
    if not user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")

    pw_error = validate_password_strength(body.new_password)
    if pw_error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=pw_error)

    user.hashed_password = get_password_hash(body.new_password)
    log_action(db, user_id=user.id, action="password_reset", resource_type="user",
               resource_id=user.id, ip_address=client_ip(request))
    db.commit()

    return {"message": "Password reset successfully. You can now sign in."}
