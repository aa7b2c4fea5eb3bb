from .base import Base, async_engine, async_session_factory, get_db, get_session_factory
from .profile import Profile
from .submission import CourseSubmission
from .exam_generation import ExamGeneration, GenerationStatus
from .download_event import DownloadEvent

__all__ = [
    "Base",
    "async_engine",
    "async_session_factory",
    "get_db",
    "get_session_factory",
    "Profile",
    "CourseSubmission",
    "ExamGeneration",
    "GenerationStatus",
    "DownloadEvent",
]
