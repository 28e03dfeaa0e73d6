"""
数据库配置和连接管理
"""
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.engine import make_url
from sqlalchemy.pool import NullPool, StaticPool

from core.config import settings
from infrastructure.models import Base


def _build_async_url(database_url: str) -> str:
    """确保数据库URL使用异步驱动"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"不支持的数据库驱动: {drivername}. 请使用 async 驱动或更新 DATABASE__URL")

    async_driver = driver_map[drivername]
    return url.set(drivername=async_driver).render_as_string(hide_password=False)


def _engine_kwargs(database_url: str) -> dict:
    """SQLite 不适合连接池：内存库需共享单连接，文件库每次新建连接"""
    url = make_url(database_url)
    if not url.drivername.startswith("sqlite"):
        return {"pool_pre_ping": True}
    if url.database in (None, "", ":memory:"):
        return {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}}
    return {"poolclass": NullPool}


_database_url = _build_async_url(settings.database.url)

engine = create_async_engine(
    _database_url,
    echo=False,
    future=True,
    **_engine_kwargs(_database_url),
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def create_tables():
    """
    创建所有表

    根据models中定义的所有模型创建对应的数据库表
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
