from datetime import timedelta
from typing import Any
import traceback

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from civic_reporter.api.deps import auth_rate_limit, get_current_active_user
from civic_reporter.core.config import settings
from civic_reporter.core.errors import AppError, AuthenticationError
from civic_reporter.core.logging import get_logger
from civic_reporter.core.security import create_access_token
from civic_reporter.crud.user import authenticate_user
from civic_reporter.db.session import get_db
from civic_reporter.models import User
from civic_reporter.schemas import Envelope, ResendOtpRequest, Token, UserCreate, UserLogin, VerifyOtpRequest
from civic_reporter.schemas import User as UserSchema
from civic_reporter.services import otp
from civic_reporter.services.otp import OtpSender, get_otp_sender
from civic_reporter.services.users import register_user as register_account

logger = get_logger("civic_reporter.auth")

router = APIRouter(prefix="/auth")


def _start_session(response: Response, user: User) -> str:
    """Issue a token for ``user`` and set it as an HttpOnly cookie."""
    access_token_expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = create_access_token(
        subject=user.id, role=user.role.value, expires_delta=access_token_expires
    )
    response.set_cookie(
        key=settings.AUTH_COOKIE_NAME,
        value=token,
        max_age=int(access_token_expires.total_seconds()),
        httponly=True,
        secure=not settings.is_development,
        samesite="lax",
    )
    return token


@router.post("/login", response_model=Envelope[Token], dependencies=[Depends(auth_rate_limit)])
async def login_access_token(
    credentials: UserLogin,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Get access token for user from login credentials. The token is also set as an HttpOnly cookie.
    """
    try:
        logger.info(f"Login attempt: email={credentials.email}")
        user = await authenticate_user(db, email=credentials.email, password=credentials.password)

        if not user:
            logger.warning(f"Login failed - incorrect credentials: email={credentials.email}")
            raise AuthenticationError("Incorrect email or password")
        elif not user.is_active:
            logger.warning(f"Login failed - inactive account: email={credentials.email}, user_id={user.id}")
            raise AuthenticationError("Account is deactivated")

        token = _start_session(response, user)

        logger.info(f"Login successful: email={credentials.email}, user_id={user.id}")
        return Envelope(
            message="Login successful",
            data=Token(access_token=token, user=UserSchema.model_validate(user)),
        )
    except (HTTPException, AppError):
        raise
    except Exception as e:
        error_details = traceback.format_exc()
        logger.error(f"Login error: email={credentials.email}, error={str(e)}\n{error_details}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred during login",
        )


@router.post(
    "/register",
    response_model=Envelope[UserSchema],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_rate_limit)],
)
async def register_user(
    user_in: UserCreate,
    db: AsyncSession = Depends(get_db),
    sender: OtpSender = Depends(get_otp_sender),
) -> Any:
    """
    Register a new user and send them a verification code.
    """
    try:
        logger.info(f"Registration attempt: email={user_in.email}")
        user = await register_account(db, user_in)
        logger.info(f"Registration successful: email={user_in.email}, user_id={user.id}, role={user.role.value}")
        try:
            await otp.issue_code(user.email, sender)
        except AppError as e:
            # Registration stands; resend-otp issues a new code.
            logger.warning(f"Verification code not issued: user_id={user.id}, reason={e.message}")
        return Envelope(message="Registration successful", data=UserSchema.model_validate(user))
    except AppError as e:
        logger.warning(f"Registration failed: email={user_in.email}, reason={e.message}")
        raise
    except HTTPException:
        raise
    except Exception as e:
        error_details = traceback.format_exc()
        logger.error(f"Registration error: email={user_in.email}, error={str(e)}\n{error_details}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred during registration",
        )


@router.post("/verify-otp", response_model=Envelope[Token], dependencies=[Depends(auth_rate_limit)])
async def verify_otp(
    verify_in: VerifyOtpRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Verify the emailed code. On success the account is marked verified and logged in.
    """
    user = await otp.verify_code(db, verify_in.email, verify_in.otp)
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")
    token = _start_session(response, user)
    return Envelope(
        message="Email verified successfully",
        data=Token(access_token=token, user=UserSchema.model_validate(user)),
    )


@router.post("/resend-otp", response_model=Envelope[None], dependencies=[Depends(auth_rate_limit)])
async def resend_otp(
    resend_in: ResendOtpRequest,
    db: AsyncSession = Depends(get_db),
    sender: OtpSender = Depends(get_otp_sender),
) -> Any:
    await otp.resend_code(db, resend_in.email, sender)
    return Envelope(message="If the account needs verification, a new code has been sent")


@router.get("/me", response_model=Envelope[UserSchema])
async def read_user_me(
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Get current user.
    """
    return Envelope(data=UserSchema.model_validate(current_user))


@router.post("/logout", response_model=Envelope[None])
async def logout(response: Response) -> Any:
    response.delete_cookie(settings.AUTH_COOKIE_NAME)
    return Envelope(message="Logged out successfully")
