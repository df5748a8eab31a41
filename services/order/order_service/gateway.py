"""
Order Service / 在庫引き当てゲートウェイ

在庫サービス (warehouse-service) が所有する引き当て (reserved stock) を
作成・更新する HTTP クライアント。

各呼び出しは 1 回のネットワークリクエストで、トランザクションではない。
重複排除キーは送らないため、タイムアウト後の再試行は在庫サービス側に
重複した引き当てを作る可能性がある。

  ┌───────────────┐  POST  /internal/warehouse-service/reserved-stocks
  │ Order Service │ ─────────────────────────────────────────────▶ ┌───────────────────┐
  │               │  PATCH /internal/warehouse-service/orders/     │ Warehouse Service │
  │               │ ─────  {order_id}/reserved-stocks/status ────▶ └───────────────────┘
  └───────────────┘
"""

import logging
from typing import Any

import httpx

from .domain import ReservationStatus
from .errors import GatewayError

logger = logging.getLogger(__name__)

INTERNAL_AUTH_HEADER_KEY = "X-Internal-Auth"
DEFAULT_TIMEOUT_SECONDS = 30.0


class ReservationGateway:
    def __init__(
        self,
        base_url: str,
        internal_auth_header: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={INTERNAL_AUTH_HEADER_KEY: internal_auth_header},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def reserve(self, product_id: int, quantity: int, order_id: int) -> Any:
        """注文に紐づく在庫引き当てを作成する。"""
        return await self._send(
            "POST",
            "/internal/warehouse-service/reserved-stocks",
            {"product_id": product_id, "quantity": quantity, "order_id": order_id},
        )

    async def set_status(self, order_id: int, status: ReservationStatus) -> Any:
        """引き当てのステータスを completed / cancelled に更新する。"""
        status = ReservationStatus(status)
        if status is ReservationStatus.RESERVED:
            raise ValueError("reservation status can only be set to completed or cancelled")
        return await self._send(
            "PATCH",
            f"/internal/warehouse-service/orders/{order_id}/reserved-stocks/status",
            {"status": status.value},
        )

    async def _send(self, method: str, path: str, payload: dict) -> Any:
        try:
            resp = await self.client.request(method, path, json=payload)
            logger.debug("%s %s -> %s", method, path, resp.status_code)
            resp.raise_for_status()
            body = resp.json()
        except httpx.TimeoutException as e:
            logger.error("%s %s timed out", method, path)
            raise GatewayError(f"{method} {path} timed out") from e
        except httpx.HTTPStatusError as e:
            logger.error("%s %s failed: %s %s", method, path, e.response.status_code, e.response.text)
            raise GatewayError(
                f"{method} {path} returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise GatewayError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            logger.error("%s %s returned a malformed body", method, path)
            raise GatewayError(f"{method} {path} returned a malformed body") from e
        return body
