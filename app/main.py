import time
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from botocore.exceptions import ClientError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from routers.router import router
from core.lifespan import lifespan
from core.config import settings
from core.logger import logger
from core.rate_limiter import limiter
from services.errors import BrokerError

# Initialize FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    Open Service Broker API (v2) for AWS SQS queues, driven by CloudFormation.

    Each service instance is a CloudFormation stack holding a primary queue
    and a secondary (dead-letter) queue. Each binding is a stack holding an
    IAM user scoped to those two queues, with credentials in Secrets Manager.

    ### Headers:
    - **Request**: `Authorization: Basic <broker credentials>`, `X-Broker-API-Version`
    - **Async operations**: pass `accepts_incomplete=true` and poll `last_operation`
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(BrokerError)
async def broker_error_handler(request: Request, exc: BrokerError) -> JSONResponse:
    body = {"description": exc.description}
    if exc.error_code:
        body["error"] = exc.error_code
    if exc.status_code >= 500:
        logger.error(f"Broker error on {request.method} {request.url.path}: {exc.description}")
    else:
        logger.info(f"Rejected {request.method} {request.url.path}: {exc.description}")
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(ClientError)
async def aws_error_handler(request: Request, exc: ClientError) -> JSONResponse:
    error = exc.response.get("Error", {})
    logger.error(
        f"AWS error on {request.method} {request.url.path}: {error.get('Code')}",
        extra={"aws_error_code": error.get("Code")}
    )
    return JSONResponse(
        status_code=500,
        content={"description": error.get("Message") or str(exc)}
    )


# Request/Response logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    log_data = {
        "method": request.method,
        "path": request.url.path,
        "status_code": response.status_code,
        "duration_ms": int(duration * 1000),
        "client": request.client.host if request.client else "unknown"
    }

    # Only log non-health-check requests
    if request.url.path != "/health":
        logger.info(f"Request: {log_data}")

    return response

# Include routers
app.include_router(router)

# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    return {
        "service": settings.PROJECT_NAME,
        "version": "1.0.0",
        "status": "running",
        "documentation": "/docs"
    }
