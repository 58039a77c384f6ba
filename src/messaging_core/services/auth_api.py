from fastapi import status, HTTPException, Depends, APIRouter
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from datetime import datetime, timedelta, timezone

from dishka import FromDishka
from dishka.integrations.fastapi import inject

import logging

from messaging_core.core.dto import SessionContext, UserDTO
from messaging_core.core.errors import MessagingError
from messaging_core.core.gateways import UserGateway
from .api_models import RegisterRequest, RegisterResponse, UserResponse, RenameRequest
from .http_errors import to_http_exception


class AuthAPI:
    """
    Session tokens and the user directory.

    Registration issues a bearer token carrying the identity key and display
    name; every other router turns that token back into a SessionContext.
    Credentials are not verified here, the identity is taken as resolved.

    Attributes:
        SECRET_KEY (str): Secret key for JWT token signing
        ALGORITHM (str): JWT signing algorithm (HS256)
        ACCESS_TOKEN_EXPIRE_MINUTES (int): JWT token expiration time in minutes
        logger (logging.Logger): Logger instance
        oauth2_scheme (OAuth2PasswordBearer): bearer token scheme
    """
    def __init__(
            self,
            secret_key: str,
            logger: logging.Logger,
            access_token_minutes: int = 480
    ):
        self.SECRET_KEY = secret_key
        self.ALGORITHM = "HS256"
        self.ACCESS_TOKEN_EXPIRE_MINUTES: int = access_token_minutes
        self.logger = logger
        self.oauth2_scheme = OAuth2PasswordBearer(tokenUrl="users")
        self._auth_router = APIRouter(tags=["Users"])
        self._register_endpoints()

    @property
    def auth_router(self) -> APIRouter:
        return self._auth_router

    def get_router(self) -> APIRouter:
        return self._auth_router

    def create_access_token(self, user: UserDTO) -> str:
        expire = datetime.now(timezone.utc) + timedelta(minutes=self.ACCESS_TOKEN_EXPIRE_MINUTES)
        payload = {
            "sub": user.identity_key,
            "name": user.display_name,
            "exp": expire,
            "type": "access",
            "iat": datetime.now(timezone.utc)
        }
        return jwt.encode(payload, self.SECRET_KEY, algorithm=self.ALGORITHM)

    async def get_session(self, token: str) -> SessionContext:
        """
        Validate JWT token and build the caller's session.
        Raises:
            HTTPException: If token is invalid, expired, or has wrong type
        """
        try:
            payload = jwt.decode(token, self.SECRET_KEY, algorithms=[self.ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token expired"
            )
        except JWTError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token",
            ) from e

        if payload.get("type") != "access" or not payload.get("sub"):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials"
            )
        return SessionContext(identity_key=payload["sub"], display_name=payload.get("name", ""))

    def _register_endpoints(self):
        @self.auth_router.get("/health")
        async def health_check():
            return {"status": "ok"}

        @self.auth_router.post("/users", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
        @inject
        async def register(request_data: RegisterRequest, user_gateway: FromDishka[UserGateway]):
            """
            Register a user and issue a session token.

            Raises:
                HTTPException: 409 if the email is already registered
            """
            try:
                user = await user_gateway.register_user(request_data.email, request_data.display_name)
            except MessagingError as e:
                raise to_http_exception(e) from e

            self.logger.info("User %s registered", user.identity_key)
            return RegisterResponse(
                identity_key=user.identity_key,
                display_name=user.display_name,
                access_token=self.create_access_token(user)
            )

        @self.auth_router.get("/users", response_model=list[UserResponse])
        @inject
        async def get_users(
                user_gateway: FromDishka[UserGateway],
                token: str = Depends(self.oauth2_scheme)
        ):
            await self.get_session(token)
            try:
                users = await user_gateway.get_all_users()
            except MessagingError as e:
                raise to_http_exception(e) from e
            return [UserResponse(**user.model_dump()) for user in users]

        @self.auth_router.get("/users/me", response_model=UserResponse)
        @inject
        async def get_current_user_info(
                user_gateway: FromDishka[UserGateway],
                token: str = Depends(self.oauth2_scheme)
        ):
            session = await self.get_session(token)
            try:
                user = await user_gateway.get_user(session.identity_key)
            except MessagingError as e:
                raise to_http_exception(e) from e
            if user is None:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="User not found"
                )
            return UserResponse(**user.model_dump())

        @self.auth_router.patch("/users/me", response_model=RegisterResponse)
        @inject
        async def rename(
                request_data: RenameRequest,
                user_gateway: FromDishka[UserGateway],
                token: str = Depends(self.oauth2_scheme)
        ):
            """
            Change the display name. A fresh token carrying the new name is returned;
            summaries already held by other users keep the old name.
            """
            session = await self.get_session(token)
            try:
                user = await user_gateway.update_display_name(session.identity_key, request_data.display_name)
            except MessagingError as e:
                raise to_http_exception(e) from e
            return RegisterResponse(
                identity_key=user.identity_key,
                display_name=user.display_name,
                access_token=self.create_access_token(user)
            )
