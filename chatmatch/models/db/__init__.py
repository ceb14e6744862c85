# SQLAlchemy database models
from .conversation_model import ConversationModel
from .participant_model import ParticipantModel
from .queue_entry_model import QueueEntryModel
from .user_model import UserModel

__all__ = ["ConversationModel", "ParticipantModel", "QueueEntryModel", "UserModel"]
