from wtw.db.base_class import Base

# Import ALL models so SQLAlchemy registers them
from wtw.models.swipe_session import SwipeSession  # noqa: F401
from wtw.models.participant import SessionParticipant  # noqa: F401
from wtw.models.vote import Vote  # noqa: F401
from wtw.models.final_vote import FinalVote  # noqa: F401
from wtw.models.media_cache import MediaItemsCache  # noqa: F401
from wtw.models.session_history import SessionHistory  # noqa: F401
