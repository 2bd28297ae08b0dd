from wtw.models.final_vote import FinalVote
from wtw.models.media_cache import MediaItemsCache
from wtw.models.participant import SessionParticipant
from wtw.models.session_history import SessionHistory
from wtw.models.swipe_session import SwipeSession
from wtw.models.vote import Vote

__all__ = [
    "FinalVote",
    "MediaItemsCache",
    "SessionHistory",
    "SessionParticipant",
    "SwipeSession",
    "Vote",
]
