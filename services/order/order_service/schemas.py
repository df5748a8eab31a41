from pydantic import BaseModel, Field


class CreateOrderRequest(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)


class UpdateStatusRequest(BaseModel):
    order_id: int = Field(..., gt=0)
    # paid / cancelled 以外はオーケストレーターが InvalidRequest にする
    status: str


class UpdateStatusResponse(BaseModel):
    order_id: int
    status: str
