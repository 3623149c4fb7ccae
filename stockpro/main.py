from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stockpro.config import settings
from stockpro.errors import install_error_handlers
from stockpro.logging_config import configure_logging
from stockpro.routers import (
    approvals,
    auth,
    inventories,
    needs,
    products,
    receipts,
    stats,
    stockouts,
    users,
    vehicles,
)
from stockpro.security.headers import install_security_headers
from stockpro.security.tokens import install_auth_token_middleware

configure_logging(settings.log_level)

app = FastAPI(title=settings.app_name)

install_error_handlers(app)
install_security_headers(app)
install_auth_token_middleware(app)
# Added last so it wraps the auth middleware and answers preflights first.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(auth.router)
app.include_router(products.router)
app.include_router(receipts.router)
app.include_router(stockouts.router)
app.include_router(inventories.router)
app.include_router(vehicles.router)
app.include_router(needs.router)
app.include_router(users.router)
app.include_router(approvals.router)
app.include_router(stats.router)


@app.get('/api/health')
def health() -> dict:
    return {'status': 'ok'}
