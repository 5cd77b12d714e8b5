"""FastAPI application for the AppGraph compile service."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.routers import apps
from appgraph.errors import ConfigurationError, ValidationError

app = FastAPI(
    title="AppGraph API",
    description="Compiles application specs into ordered Kubernetes resource graphs",
    version="1.0.0",
)

app.include_router(apps.router)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "app": exc.app_name, "violations": exc.violations},
    )


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    # The AppSpec is well-formed; the cluster lacks a capability it needs
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "app": exc.app_name, "violations": exc.violations},
    )


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
