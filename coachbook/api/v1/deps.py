from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coachbook.core.database import get_db
from coachbook.services.availability_service import AvailabilityService
from coachbook.services.booking_service import BookingService
from coachbook.services.db_service import DBService
from coachbook.services.transitions import TransitionService


async def get_db_service(db: AsyncSession = Depends(get_db)) -> DBService:
    return DBService(db)


async def get_availability_service(db: DBService = Depends(get_db_service)) -> AvailabilityService:
    return AvailabilityService(db)


async def get_booking_service(db: DBService = Depends(get_db_service)) -> BookingService:
    return BookingService(db)


async def get_transition_service(db: DBService = Depends(get_db_service)) -> TransitionService:
    return TransitionService(db)
