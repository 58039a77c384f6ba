from fastapi import APIRouter, HTTPException, status, Depends
from dishka.integrations.fastapi import inject
from dishka import FromDishka
import logging

from messaging_core.core.dto import MessageDTO, ConversationSummaryDTO
from messaging_core.core.errors import MessagingError, ConversationNotFoundError
from messaging_core.core.orchestrator import SyncOrchestrator, new_message
from .api_models import (
    SendMessageRequest, StartConversationResponse, SendMessageResponse, FindConversationResponse
)
from .auth_api import AuthAPI
from .http_errors import to_http_exception


class ConversationAPI:
    """
    Conversation list, message history and the send path.

    Attributes:
        logger: Logger instance for tracking operations
        auth_api: Authentication API instance turning tokens into sessions
        conversation_router: FastAPI router containing conversation endpoints
    """

    def __init__(
            self,
            logger: logging.Logger,
            auth_api: AuthAPI
    ):
        self.logger = logger
        self.auth_api = auth_api
        self._conversation_router = APIRouter(prefix="/conversations", tags=["Conversations"])
        self._register_endpoints()

    @property
    def conversation_router(self) -> APIRouter:
        return self._conversation_router

    def get_router(self) -> APIRouter:
        return self._conversation_router

    def _register_endpoints(self):
        @self.conversation_router.get("", response_model=list[ConversationSummaryDTO])
        @inject
        async def list_conversations(
                orchestrator: FromDishka[SyncOrchestrator],
                token: str = Depends(self.auth_api.oauth2_scheme)
        ):
            """
            Summaries of the caller's conversations in storage order.
            Sort by latest_message.date for recency.
            """
            session = await self.auth_api.get_session(token)
            try:
                return await orchestrator.list_conversations(session)
            except MessagingError as e:
                raise to_http_exception(e) from e

        @self.conversation_router.post("", response_model=StartConversationResponse,
                                       status_code=status.HTTP_201_CREATED)
        @inject
        async def start_conversation(
                message_data: SendMessageRequest,
                orchestrator: FromDishka[SyncOrchestrator],
                token: str = Depends(self.auth_api.oauth2_scheme)
        ):
            """
            Send a message to a user, reusing the conversation between the two
            users when one exists and creating it otherwise.
            """
            session = await self.auth_api.get_session(token)
            message = new_message(
                session,
                message_data.counterparty_email,
                message_data.content,
                sent_at=message_data.sent_at,
                message_id=message_data.message_id
            )

            try:
                try:
                    conversation_id = await orchestrator.find_existing_conversation(
                        session, message_data.counterparty_email
                    )
                except ConversationNotFoundError:
                    conversation_id = await orchestrator.create_conversation(
                        session,
                        message_data.counterparty_email,
                        message_data.counterparty_name,
                        message
                    )
                    return StartConversationResponse(
                        conversation_id=conversation_id,
                        message_id=message.id,
                        created=True
                    )

                await orchestrator.send_message(
                    session,
                    conversation_id,
                    message_data.counterparty_email,
                    message_data.counterparty_name,
                    message
                )
            except MessagingError as e:
                self.logger.warning("Failed to start conversation with %s: %s", message_data.counterparty_email, e)
                raise to_http_exception(e) from e

            return StartConversationResponse(
                conversation_id=conversation_id,
                message_id=message.id,
                created=False
            )

        @self.conversation_router.get("/find", response_model=FindConversationResponse)
        @inject
        async def find_conversation(
                email: str,
                orchestrator: FromDishka[SyncOrchestrator],
                token: str = Depends(self.auth_api.oauth2_scheme)
        ):
            session = await self.auth_api.get_session(token)
            try:
                conversation_id = await orchestrator.find_existing_conversation(session, email)
            except MessagingError as e:
                raise to_http_exception(e) from e
            return FindConversationResponse(conversation_id=conversation_id)

        @self.conversation_router.get("/{conversation_id}/messages", response_model=list[MessageDTO])
        @inject
        async def list_messages(
                conversation_id: str,
                orchestrator: FromDishka[SyncOrchestrator],
                after_seq: int = 0,
                token: str = Depends(self.auth_api.oauth2_scheme)
        ):
            """
            Message history in sequence order. Pass the last seen seq as
            after_seq to fetch only newer messages.
            """
            session = await self.auth_api.get_session(token)
            try:
                await orchestrator.ensure_participant(session, conversation_id)
                return await orchestrator.list_messages(conversation_id, after_seq)
            except MessagingError as e:
                raise to_http_exception(e) from e

        @self.conversation_router.post("/{conversation_id}/messages", response_model=SendMessageResponse,
                                       status_code=status.HTTP_201_CREATED)
        @inject
        async def send_message(
                conversation_id: str,
                message_data: SendMessageRequest,
                orchestrator: FromDishka[SyncOrchestrator],
                token: str = Depends(self.auth_api.oauth2_scheme)
        ):
            session = await self.auth_api.get_session(token)
            message = new_message(
                session,
                message_data.counterparty_email,
                message_data.content,
                sent_at=message_data.sent_at,
                message_id=message_data.message_id
            )

            try:
                await orchestrator.ensure_participant(session, conversation_id, message_data.counterparty_email)
                seq = await orchestrator.send_message(
                    session,
                    conversation_id,
                    message_data.counterparty_email,
                    message_data.counterparty_name,
                    message
                )
            except MessagingError as e:
                self.logger.warning("Failed to send message to %s: %s", conversation_id, e)
                raise to_http_exception(e) from e

            return SendMessageResponse(message_id=message.id, seq=seq)

        @self.conversation_router.post("/{conversation_id}/read", status_code=status.HTTP_204_NO_CONTENT)
        @inject
        async def mark_read(
                conversation_id: str,
                orchestrator: FromDishka[SyncOrchestrator],
                token: str = Depends(self.auth_api.oauth2_scheme)
        ):
            session = await self.auth_api.get_session(token)
            try:
                await orchestrator.mark_conversation_read(session, conversation_id)
            except MessagingError as e:
                raise to_http_exception(e) from e

        @self.conversation_router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
        @inject
        async def delete_conversation(
                conversation_id: str,
                orchestrator: FromDishka[SyncOrchestrator],
                token: str = Depends(self.auth_api.oauth2_scheme)
        ):
            """
            Hide the conversation for the caller. The other participant keeps it.
            """
            session = await self.auth_api.get_session(token)
            try:
                await orchestrator.delete_conversation(session, conversation_id)
            except MessagingError as e:
                raise to_http_exception(e) from e
