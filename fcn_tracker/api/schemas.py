from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Optional, Literal

from ..models import Underlying

class SyncRun(BaseModel):
    run_id: str

class StatusResponse(BaseModel):
    run_id: str
    kind: str
    status: Literal['running','succeeded','failed']
    started_at_utc: str
    finished_at_utc: Optional[str] = None
    error_message: Optional[str] = None
    result: Optional[dict] = None

class ClientCreate(BaseModel):
    name: str

class PositionCreate(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
    product_name: str = ""
    issuer: str = ""
    nominal: float = 10000
    currency: str = "USD"
    coupon_rate: float = 10
    strike_date: str = ""
    ko_observation_start_date: str = ""
    maturity_date: str = ""
    tenor: str = "6 個月"
    ko_level: float = 103
    ki_level: float = 70
    strike_level: float = 100
    underlyings: list[Underlying] = Field(min_length=1)

class PricesUpdate(BaseModel):
    prices: dict[str, float]

class TextBody(BaseModel):
    text: str

class SheetRequest(BaseModel):
    source: Optional[str] = None

class ShareResponse(BaseModel):
    fragment: str
    url: Optional[str] = None

class ShareDecodeRequest(BaseModel):
    share: str

class PositionPatch(BaseModel):
    fields: dict[str, Any]
