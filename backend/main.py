import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.database import Base, engine, ensure_booking_schema
from backend.models import appointment, notification, user  # noqa: F401
from backend.routes import appointment_routes, auth_routes, notification_routes, profile_routes
from backend.services.errors import BookingError
from backend.services.uploads import upload_dir

config.validate_runtime_config()

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_booking_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    logger.info('%s %s rejected: %s (%s)', request.method, request.url.path, exc.detail, exc.code)
    return JSONResponse(status_code=exc.status_code, content={'detail': exc.detail, 'code': exc.code})


@app.get('/')
def root():
    return {'status': 'Appointment Booking API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(profile_routes.doctor_router, prefix='/doctor')
app.include_router(profile_routes.patient_router, prefix='/patient')
app.include_router(appointment_routes.router)
app.include_router(notification_routes.router)
app.mount('/uploads', StaticFiles(directory=str(upload_dir())), name='uploads')
