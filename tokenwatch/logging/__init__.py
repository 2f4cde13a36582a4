"""Session logging for tokenwatch."""
from .session_logger import SessionLogger
from .log_replay import iter_session_events, replay_session, summarize_session

__all__ = ["SessionLogger", "iter_session_events", "replay_session", "summarize_session"]
