import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from civic_portal.core import config
from civic_portal.core.errors import ConnectivityError, PortalError
from civic_portal.database import Base, engine
from civic_portal.models import complaint, profile, revoked_token, user  # noqa: F401
from civic_portal.routes import auth_routes, complaint_routes, user_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

logger = logging.getLogger(__name__)

config.validate_runtime_config()

app = FastAPI(title='Civic Complaint Portal API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.exception_handler(PortalError)
def handle_portal_error(request: Request, exc: PortalError) -> JSONResponse:
    headers = {'WWW-Authenticate': 'Bearer'} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(SQLAlchemyError)
def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database error while handling %s %s', request.method, request.url.path)
    error = ConnectivityError('Database unavailable. Verify DATABASE_URL and database credentials.')
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Civic Complaint Portal API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(complaint_routes.router, prefix='/complaints')
app.include_router(user_routes.router, prefix='/users')
