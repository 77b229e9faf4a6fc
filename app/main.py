from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status

from app.routes.provisioning import router as provisioning_router
from app.services.provisioning_service import ProvisioningError


def _ensure_logging() -> None:
    formatter = logging.Formatter("%(levelname)s: %(message)s")
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    else:
        root.setLevel(logging.INFO)
        for handler in root.handlers:
            handler.setFormatter(formatter)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _ensure_logging()
    yield


app = FastAPI(lifespan=lifespan)

app.include_router(provisioning_router)


@app.exception_handler(ProvisioningError)
async def provisioning_error_handler(request: Request, exc: ProvisioningError) -> JSONResponse:
    """Map a failed or partially torn down provisioning run to an HTTP response.

    The run report is included so callers can see which steps ran and which
    resources (if any) were left behind.

    Returns:
        502 Bad Gateway with a JSON body: {"detail": "...", "report": {...}}
    """
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": str(exc), "report": exc.report.model_dump(mode="json")},
    )


@app.get("/")
async def root():
    return {"message": "IAM provisioner is running."}
