import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from hospital.core import config
from hospital.core.errors import ErrorKind, PortalError, TransientError, http_status_for, public_message_for
from hospital.database import Base, engine, ensure_booking_schema, get_executor
from hospital.models import appointment, availability, doctor, patient, payment  # noqa: F401
from hospital.routes import appointment_routes, doctor_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
)

app = FastAPI(title='Hospital Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        get_executor().wait_until_available()
        Base.metadata.create_all(bind=engine)
        ensure_booking_schema(engine)
    except (SQLAlchemyError, TransientError):
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.exception_handler(PortalError)
async def handle_portal_error(request: Request, exc: PortalError) -> JSONResponse:
    if exc.kind is ErrorKind.FATAL:
        logger.error('Invariant violation on %s %s: %s', request.method, request.url.path, exc.message)
    elif exc.kind is ErrorKind.TRANSIENT:
        logger.warning('Transient failure on %s %s: %s', request.method, request.url.path, exc.__cause__)
    return JSONResponse(status_code=http_status_for(exc), content={'error': public_message_for(exc)})


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={'error': str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = '.'.join(str(part) for part in first.get('loc', ()) if part not in ('body', 'query', 'path'))
        message = first.get('msg', 'Invalid request.').removeprefix('Value error, ')
        detail = f'{location}: {message}' if location else message
    else:
        detail = 'Invalid request.'
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={'error': detail})


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error on %s %s', request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={'error': 'Internal server error'},
    )


@app.get('/')
def root():
    return {'status': 'Hospital Booking API Running'}


app.include_router(appointment_routes.router, prefix='/api/appointments')
app.include_router(doctor_routes.router, prefix='/api/doctors')
