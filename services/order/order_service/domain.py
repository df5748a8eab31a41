"""
Order Service / ドメインモデル

注文 (Order) と、在庫サービス側の引き当て (Reservation) のステータス、
およびステータス遷移の規則を定義する。

状態遷移:
    waiting_payment → paid       (決済完了)
    waiting_payment → cancelled  (キャンセル / 期限切れ)

paid と cancelled は終端状態。遷移の判定は transition() に集約し、
呼び出し側で文字列比較をしない。
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from .errors import InvalidRequest, TransitionConflict


class OrderStatus(str, Enum):
    WAITING_PAYMENT = "waiting_payment"
    PAID = "paid"
    CANCELLED = "cancelled"


class ReservationStatus(str, Enum):
    RESERVED = "reserved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.CANCELLED})

# 注文ステータス → 引き当てステータス
_RESERVATION_STATUS = {
    OrderStatus.PAID: ReservationStatus.COMPLETED,
    OrderStatus.CANCELLED: ReservationStatus.CANCELLED,
}


def parse_status(value: str | OrderStatus) -> OrderStatus:
    """文字列を OrderStatus に変換する。未知の値は InvalidRequest。"""
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidRequest(f"unknown order status: {value!r}") from None


def reservation_status_for(requested: str | OrderStatus) -> ReservationStatus:
    """
    遷移先の注文ステータスに対応する引き当てステータスを返す。

    paid / cancelled 以外は、リモート呼び出しの前に InvalidRequest で弾く。
    """
    status = parse_status(requested)
    try:
        return _RESERVATION_STATUS[status]
    except KeyError:
        raise InvalidRequest(f"cannot transition an order to {status.value!r}") from None


def transition(current: OrderStatus, requested: str | OrderStatus) -> OrderStatus:
    """(現在の状態, 要求された状態) から次の状態を返す。遷移できなければ例外。"""
    target = parse_status(requested)
    if target not in _RESERVATION_STATUS:
        raise InvalidRequest(f"cannot transition an order to {target.value!r}")
    if current in TERMINAL_STATUSES:
        raise TransitionConflict(
            f"order is already {current.value}; cannot move to {target.value}"
        )
    return target


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """tzinfo を落とすストア (SQLite など) から読んだ値を UTC に揃える。"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Order(BaseModel):
    """注文。ID はストアが採番する。物理削除はしない。"""

    id: int | None = None
    product_id: int
    quantity: int = Field(gt=0)
    user_id: int
    status: OrderStatus = OrderStatus.WAITING_PAYMENT
    created_at: datetime
    updated_at: datetime
    expires_at: datetime

    @model_validator(mode="after")
    def _check_timestamps(self) -> "Order":
        if self.updated_at < self.created_at:
            raise ValueError("updated_at must not be earlier than created_at")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
