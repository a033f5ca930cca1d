import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware

# --- Configuration and database ---
from bodyshop.config import settings
from bodyshop.errors import register_exception_handlers
from bodyshop.provisioning import provision
# ----------------------------------

# --- Routers ---
from bodyshop.routers import appointments, auth, customer, repair_orders, sms, staff
# ---------------

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tables and seed data are created once, before the first request
    if settings.AUTO_PROVISION:
        provision()
        logger.info("Database provisioned")
    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SECRET_KEY,
    https_only=settings.SESSION_HTTPS_ONLY,
)

# Appointment attachments are served straight from the upload directory
upload_dir = Path(settings.UPLOAD_DIR)
upload_dir.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=upload_dir), name="uploads")

register_exception_handlers(app)

# Archive routes are declared inside repair_orders before the /{ro_id} routes
app.include_router(auth.router)
app.include_router(appointments.router)
app.include_router(staff.router)
app.include_router(repair_orders.router)
app.include_router(sms.router)
app.include_router(customer.router)


@app.get("/status")
def status(request: Request):
    return {
        "status": "ok",
        "host": request.client.host if request.client else None,
        "port": request.url.port or 80,
        "scheme": request.url.scheme,
        "path": request.url.path,
    }


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000)
