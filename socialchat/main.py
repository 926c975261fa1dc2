import os
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .routes import router
from .core import redis_startup, init_metrics, shutdown_connections
from .errors import AppError
from .gateway import RealtimeGateway
from .messaging import MessagingService
from .presence import PresenceRegistry
from .ws_manager import ConnectionManager
import logging
from pythonjsonlogger import jsonlogger

# setup structured logging
logger = logging.getLogger('socialchat')
handler = logging.StreamHandler()
formatter = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s')
handler.setFormatter(formatter)
logger.addHandler(handler)
logger.setLevel(os.getenv('LOG_LEVEL', 'INFO').upper())

app = FastAPI(title="SocialChat API", version="0.3.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv('CORS_ORIGINS', '*').split(','),
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(router, prefix="/api")

# one presence registry per process, owned by the gateway
app.state.gateway = RealtimeGateway(ConnectionManager(PresenceRegistry()), MessagingService())

@app.get('/healthz')
async def healthz():
    return {'status': 'ok'}

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={'success': False, 'message': exc.message})

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = ', '.join('.'.join(str(p) for p in err['loc'][1:]) for err in exc.errors())
    return JSONResponse(status_code=400, content={'success': False, 'message': f'Invalid request: {fields}'})

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception({'msg': 'unhandled_error', 'path': request.url.path})
    return JSONResponse(status_code=500, content={'success': False, 'message': 'Internal server error'})

@app.middleware('http')
async def log_requests(request: Request, call_next):
    logger.info({'msg':'request_start','method':request.method,'path':request.url.path})
    response = await call_next(request)
    logger.info({'msg':'request_end','status': response.status_code})
    return response

@app.on_event("startup")
async def startup():
    # Best-effort init, don't block app from starting if a dependency fails
    try:
        await redis_startup()
    except Exception as e:
        logger.warning({'msg': 'redis_start_failed', 'error': str(e)})
    try:
        init_metrics()
    except Exception as e:
        logger.warning({'msg': 'metrics_init_failed', 'error': str(e)})

@app.on_event("shutdown")
async def shutdown():
    app.state.gateway.manager.clear()
    await shutdown_connections()
