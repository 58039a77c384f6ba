from .auth_api import AuthAPI
from .conversation_api import ConversationAPI
from .media_api import MediaAPI
