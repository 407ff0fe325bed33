from fastapi import APIRouter, Depends, HTTPException, status, Request, Response
from sqlalchemy.orm import Session
import logging
from status_tracker.db import get_db
from status_tracker.models import User
from status_tracker.schemas import LoginRequest, Token, UserCreate, UserResponse, MessageResponse
from status_tracker.auth import verify_password, get_password_hash
from status_tracker.deps import get_current_active_user, get_services
from status_tracker.services.container import Services
from status_tracker.rate_limit import limiter, AUTH_RATE_LIMIT
from status_tracker.utils.cookie_auth import set_auth_cookie, clear_auth_cookie

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(AUTH_RATE_LIMIT)
def register(user_data: UserCreate, request: Request, db: Session = Depends(get_db)):
    """Register a project manager or contractor account"""
    existing_user = db.query(User).filter(User.email == user_data.email).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    user = User(
        name=user_data.name,
        email=user_data.email,
        password_hash=get_password_hash(user_data.password),
        role=user_data.role,
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"User registered: {user.email} ({user.role.value})", extra={"user_id": str(user.id)})
    return user


@router.post("/login", response_model=Token)
@limiter.limit(AUTH_RATE_LIMIT)
def login(
    login_data: LoginRequest,
    response: Response,
    request: Request,
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    """Login with email and password"""
    user = db.query(User).filter(User.email == login_data.email).first()

    if not user or not verify_password(login_data.password, user.password_hash):
        logger.info(f"Failed login attempt for: {login_data.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is inactive"
        )

    access_token = set_auth_cookie(response, user.email)
    services.chat_sessions.sign_in(user)

    logger.info(f"User logged in successfully: {user.email}", extra={"user_id": str(user.id)})
    return Token(access_token=access_token)


@router.post("/logout", response_model=MessageResponse)
def logout(
    response: Response,
    current_user: User = Depends(get_current_active_user),
    services: Services = Depends(get_services),
):
    """Logout user by clearing auth cookie and signing out open chat sessions"""
    clear_auth_cookie(response)
    services.chat_sessions.sign_out(str(current_user.id))
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_active_user)):
    return current_user
