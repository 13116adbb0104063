"""
酒店模块主应用入口
房间、预订、清洁任务、库存与经营报表
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from hotel_module import __version__
from hotel_module.config import settings
from hotel_module.database import init_db
from hotel_module.exception_handlers import register_exception_handlers
from hotel_module.security.tenant import runtime_mode
from hotel_module.routers import (
    rooms, bookings, housekeeping, inventory, reports,
    customers, agents, services, settings as settings_router, events
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    init_db()
    mode = runtime_mode()
    logger.info(f"{settings.APP_NAME} started in {mode} mode")
    yield


app = FastAPI(
    title=settings.APP_NAME,
    description="酒店模块：房间、组预订、附加服务、清洁任务、库存与经营报表",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应限制具体域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(rooms.router)
app.include_router(bookings.router)
app.include_router(housekeeping.router)
app.include_router(inventory.router)
app.include_router(reports.router)
app.include_router(customers.router)
app.include_router(agents.router)
app.include_router(services.router)
app.include_router(settings_router.router)
app.include_router(events.router)


@app.get("/")
def root():
    return {"name": settings.APP_NAME, "version": __version__}


@app.get("/health")
def health_check():
    return {"status": "healthy"}
