import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from quotedesk.config import settings
from quotedesk.errors import PersistenceError, QuoteDeskError
from quotedesk.routers import auth, customers, employees, quotes
from quotedesk.security.headers import install_security_headers
from quotedesk.security.sessions import install_auth_session_middleware


logger = logging.getLogger('quotedesk')


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


configure_logging()

app = FastAPI(title='Quote Desk')

install_security_headers(app)
install_auth_session_middleware(app)

app.include_router(auth.router)
app.include_router(quotes.router)
app.include_router(employees.router)
app.include_router(customers.router)


@app.exception_handler(QuoteDeskError)
async def quote_desk_error_handler(request: Request, exc: QuoteDeskError):
    if exc.status_code >= 500:
        logger.error('%s on %s %s: %s', exc.kind, request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception('Storage failure on %s %s', request.method, request.url.path)
    error = PersistenceError('Storage failure; the operation was not applied')
    return JSONResponse(error.to_dict(), status_code=error.status_code)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}
