from datetime import datetime
from typing import Callable

from database import get_database
from delivery import Dispatcher, LoggingDispatcher
from repository import SurveyRepository

Clock = Callable[[], datetime]

_dispatcher = LoggingDispatcher()

async def get_repository() -> SurveyRepository:
    """Repository bound to the connected MongoDB database"""
    return SurveyRepository(await get_database())

def get_dispatcher() -> Dispatcher:
    return _dispatcher

def get_clock() -> Clock:
    """Clock used for "now"; overridden in tests for determinism"""
    return datetime.utcnow
