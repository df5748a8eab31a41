"""
Order Service / イベント定義

注文のコミット後に order_events チャネルへ発行するイベント。
イベントは過去形で命名し、不変として扱う。
"""

from datetime import datetime

from pydantic import BaseModel


class OrderCreated(BaseModel):
    """注文が作成された（在庫引き当て済み）"""
    order_id: int
    user_id: int
    product_id: int
    quantity: int
    expires_at: datetime
    timestamp: datetime


class OrderStatusChanged(BaseModel):
    """注文ステータスが変わった（決済完了 / キャンセル / 期限切れ）"""
    order_id: int
    previous_status: str
    status: str
    timestamp: datetime
