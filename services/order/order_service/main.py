"""
Order Service / FastAPI エントリーポイント

注文の作成・参照 API と、決済サービスからのステータス更新コールバックを公開する。
業務ロジックはすべて OrderOrchestrator に委譲し、ここでは
認証・リクエストの解釈・エラーの HTTP ステータスへの変換だけを行う。

  ┌──────────┐  /order-service/orders           ┌───────────────┐   reserve / set_status  ┌───────────────────┐
  │  Client  │ ───────────────────────────────▶ │               │ ──────────────────────▶ │ Warehouse Service │
  └──────────┘                                  │ Order Service │                         └───────────────────┘
  ┌──────────┐  /callback/order-service/orders  │               │   order_events          ┌───────────────────┐
  │ Payment  │ ───────────────────────────────▶ │               │ ──────────────────────▶ │ Redis Pub/Sub     │
  └──────────┘                                  └───────────────┘                         └───────────────────┘
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import create_async_engine

from .auth import get_current_user_id, verify_payment_callback
from .config import Settings
from .domain import Order
from .errors import OrderServiceError
from .gateway import ReservationGateway
from .logging_config import configure_logging
from .orchestrator import OrderOrchestrator
from .publisher import EventPublisher
from .schemas import CreateOrderRequest, UpdateStatusRequest, UpdateStatusResponse
from .store import OrderStore
from .sweeper import run_expiry_sweeper

logger = logging.getLogger(__name__)


def get_orchestrator(request: Request) -> OrderOrchestrator:
    return request.app.state.orchestrator


def create_app(
    settings: Settings | None = None,
    orchestrator: OrderOrchestrator | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """起動時に DB・Redis・在庫サービスのクライアントを組み立て、終了時に閉じる。"""
        engine = redis_conn = gateway = None
        if orchestrator is None:
            engine = create_async_engine(settings.database_url, echo=False)
            redis_conn = aioredis.from_url(settings.redis_url, decode_responses=True)
            gateway = ReservationGateway(
                settings.warehouse_service_url,
                settings.internal_auth_header,
                timeout=settings.gateway_timeout_seconds,
            )
            app.state.orchestrator = OrderOrchestrator(
                OrderStore(engine),
                gateway,
                publisher=EventPublisher(redis_conn),
                reservation_ttl=timedelta(minutes=settings.reservation_ttl_minutes),
            )
        else:
            app.state.orchestrator = orchestrator

        shutdown_event = asyncio.Event()
        sweeper_task = None
        if settings.expiry_sweep_interval_seconds > 0:
            sweeper_task = asyncio.create_task(
                run_expiry_sweeper(
                    app.state.orchestrator,
                    settings.expiry_sweep_interval_seconds,
                    shutdown_event,
                )
            )
        app.state.sweeper_task = sweeper_task
        yield
        shutdown_event.set()
        if sweeper_task is not None:
            await sweeper_task
        if gateway is not None:
            await gateway.aclose()
        if redis_conn is not None:
            await redis_conn.aclose()
        if engine is not None:
            await engine.dispose()

    app = FastAPI(title="Order Service", lifespan=lifespan)
    app.state.settings = settings

    @app.exception_handler(OrderServiceError)
    async def handle_order_service_error(request: Request, exc: OrderServiceError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        # 不正なボディ・パラメータは InvalidRequest と同じ 400 で返す
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    # ── ユーザー向け API (JWT) ───────────────────────

    @app.get("/order-service/orders/{order_id}", response_model=Order)
    async def get_order(
        order_id: int,
        user_id: int = Depends(get_current_user_id),
        orch: OrderOrchestrator = Depends(get_orchestrator),
    ):
        """自分の注文を 1 件取得する"""
        return await orch.get_order_by_id(user_id, order_id)

    @app.get("/order-service/orders", response_model=list[Order])
    async def list_orders(
        user_id: int = Depends(get_current_user_id),
        orch: OrderOrchestrator = Depends(get_orchestrator),
    ):
        """自分の注文一覧"""
        return await orch.list_by_user(user_id)

    @app.post(
        "/order-service/orders",
        response_model=Order,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_order(
        req: CreateOrderRequest,
        user_id: int = Depends(get_current_user_id),
        orch: OrderOrchestrator = Depends(get_orchestrator),
    ):
        """注文を作成し、在庫を引き当てる"""
        return await orch.create_order(user_id, req.product_id, req.quantity)

    # ── 決済コールバック (共有シークレット) ──────────

    @app.post(
        "/callback/order-service/orders",
        response_model=UpdateStatusResponse,
        dependencies=[Depends(verify_payment_callback)],
    )
    async def update_order_status(
        req: UpdateStatusRequest,
        orch: OrderOrchestrator = Depends(get_orchestrator),
    ):
        """決済完了 / キャンセルを受けて注文ステータスを更新する"""
        await orch.update_status(req.order_id, req.status)
        return UpdateStatusResponse(order_id=req.order_id, status=req.status)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "order-service"}

    return app
