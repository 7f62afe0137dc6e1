import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from clinic_scheduler.core import config
from clinic_scheduler.database import Base, engine, ensure_appointment_schema, ensure_availability_schema
from clinic_scheduler.models import appointment, availability, doctor, schedule_lock  # noqa: F401
from clinic_scheduler.routes import appointment_routes, availability_routes, doctor_routes
from clinic_scheduler.scheduling.errors import (
    AppointmentNotFound,
    DoctorNotFound,
    InvalidInput,
    InvalidTransition,
    OutOfAvailability,
    SchedulingError,
    SlotConflict,
)

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

config.validate_runtime_config()

ERROR_STATUS_CODES = {
    InvalidInput: status.HTTP_400_BAD_REQUEST,
    OutOfAvailability: status.HTTP_400_BAD_REQUEST,
    SlotConflict: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    DoctorNotFound: status.HTTP_404_NOT_FOUND,
    AppointmentNotFound: status.HTTP_404_NOT_FOUND,
}

app = FastAPI(title='Clinic Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    status_code = ERROR_STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(
        status_code=status_code,
        content={'detail': exc.message, 'error': type(exc).__name__},
    )


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Clinic Scheduling API Running'}


app.include_router(doctor_routes.router, prefix='/doctors')
app.include_router(availability_routes.router, prefix='/availability')
app.include_router(appointment_routes.router, prefix='/appointments')


if __name__ == '__main__':
    import uvicorn

    uvicorn.run('clinic_scheduler.main:app', host='0.0.0.0', port=8000, log_level=config.LOG_LEVEL.lower())
