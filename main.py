"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import user
from api.routes import lists as list_routes
from api.routes import items as item_routes
from api.routes import recipes as recipe_routes
from api.routes import updates as update_routes
from api.routes import ws as ws_routes
from api.routes import internal as internal_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from infrastructure.database import create_tables
from infrastructure.external.cache import (
    init_redis_client,
    shutdown_redis_client,
)
from application.ports.realtime import RealtimeBrokerPort
from application.services.realtime_service import RealtimeService
from infrastructure.realtime.broadcaster import EventBroadcaster
from infrastructure.realtime.connection_manager import ConnectionManager
from infrastructure.realtime.registry import SubscriptionRegistry
from infrastructure.realtime.brokers import (
    InMemoryRealtimeBroker,
    RedisRealtimeBroker,
)


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


def select_broker(redis_ready: bool) -> RealtimeBrokerPort:
    """根据 REALTIME_BROKER 选择跨进程广播：auto -> redis(已连接) 否则内存版"""
    provider = (settings.REALTIME_BROKER or "auto").lower()
    if provider in ("redis", "auto") and redis_ready:
        logger.info("realtime_broker_selected", provider="redis")
        return RedisRealtimeBroker()
    if provider == "redis":
        logger.warning(
            "realtime_broker_redis_unavailable",
            message="REDIS__URL not set or unreachable, falling back to in-memory broker",
        )
    elif provider not in ("auto", "inmemory"):
        logger.warning("realtime_broker_unknown", provider=provider)
    logger.info("realtime_broker_selected", provider="inmemory")
    return InMemoryRealtimeBroker()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 开发环境或 SQLite 时自动建表；生产环境由运维侧管理表结构
    if settings.DEBUG or settings.database.url.startswith("sqlite"):
        await create_tables()
        logger.info("database_initialized", message="Database tables created")

    redis_ready = False
    if settings.redis.url:
        try:
            await init_redis_client()
            redis_ready = True
            logger.info("redis_initialized", message="Redis client initialized")
        except Exception as exc:
            logger.error("redis_init_failed", error=str(exc))

    # 初始化实时推送：注册表/广播器/连接管理器为进程内显式持有的服务对象
    registry = SubscriptionRegistry()
    broadcaster = EventBroadcaster(registry)
    connections = ConnectionManager(registry)
    broker = select_broker(redis_ready)
    realtime = RealtimeService(broker=broker, broadcaster=broadcaster, connections=connections)
    await realtime.start()
    app.state.realtime_registry = registry
    app.state.realtime_broker = broker
    app.state.realtime_connections = connections
    app.state.realtime_service = realtime
    logger.info("realtime_initialized", broker=type(broker).__name__)

    yield

    # 关闭时的清理工作
    try:
        await realtime.aclose()
    except Exception as exc:
        logger.warning("realtime_shutdown_failed", error=str(exc))
    if redis_ready:
        await shutdown_redis_client()
        logger.info("redis_shutdown", message="Redis client shutdown")
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="协作购物清单服务：REST + SSE/WebSocket 实时推送",
    swagger_ui_init_oauth={
        "usePkceWithAuthorizationCodeGrant": True,
        "clientId": settings.PROJECT_NAME,
    }
)

# 添加中间件（注意顺序：从下往上执行）
# 1. Request ID中间件（最先执行，为后续中间件提供request_id）
app.add_middleware(RequestIDMiddleware)

# 2. 日志中间件（依赖request_id）
app.add_middleware(LoggingMiddleware)

# 3. CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册全局异常处理器
register_exception_handlers(app)


# 注册路由
app.include_router(user.router, prefix="/api/v1")
app.include_router(list_routes.router, prefix="/api/v1")
app.include_router(item_routes.router, prefix="/api/v1")
app.include_router(recipe_routes.router, prefix="/api/v1")
app.include_router(update_routes.router, prefix="/api/v1")
app.include_router(ws_routes.router, prefix="/api/v1")
app.include_router(internal_routes.router, prefix="/api/v1")


# 根路径
@app.get("/", tags=["Root"])
async def root():
    """API根路径"""
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc"
        },
        message="Welcome"
    )


# 健康检查
@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    realtime = getattr(app.state, "realtime_service", None)
    data = {"status": "healthy"}
    if realtime is not None:
        data["realtime"] = {
            "lists": len(realtime.registry),
            "sockets": len(realtime.connections),
        }
    return success_response(data=data, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
