from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True)

DEFAULT_NOMINAL = 0.0
DEFAULT_COUPON_RATE = 0.0
DEFAULT_KI_LEVEL = 60.0
DEFAULT_KO_LEVEL = 100.0
DEFAULT_STRIKE_LEVEL = 100.0
DEFAULT_ENTRY_PRICE = 100.0
DEFAULT_CURRENCY = "USD"
PLACEHOLDER_TICKER = "UNKNOWN"


class RiskStatus(str, Enum):
    KI_HIT = "KI HIT"
    NEAR_KI = "Near KI"
    KO_READY = "KO Ready"
    NORMAL = "Normal"


class Underlying(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)
    ticker: str
    entry_price: float


class Client(BaseModel):
    model_config = _WIRE
    id: str
    name: str


class Position(BaseModel):
    model_config = _WIRE
    id: Union[int, str]
    client_id: str
    product_name: str
    issuer: str = ""
    nominal: float = DEFAULT_NOMINAL
    currency: str = DEFAULT_CURRENCY
    coupon_rate: float = DEFAULT_COUPON_RATE
    strike_date: str = ""
    ko_observation_start_date: str = ""
    maturity_date: str = ""
    tenor: str = ""
    ko_level: float = DEFAULT_KO_LEVEL
    ki_level: float = DEFAULT_KI_LEVEL
    strike_level: float = DEFAULT_STRIKE_LEVEL
    underlyings: list[Underlying] = Field(min_length=1)
    status: str = "Active"


class UnderlyingRisk(BaseModel):
    model_config = _WIRE
    ticker: str
    entry_price: float
    current_price: float
    performance: float
    ki_price: float
    ko_price: float
    strike_price: float


class RiskView(BaseModel):
    model_config = _WIRE
    position: Position
    underlyings: list[UnderlyingRisk]
    laggard: UnderlyingRisk
    risk_status: RiskStatus
    monthly_coupon: int


class ImportResult(BaseModel):
    model_config = _WIRE
    clients: list[Client]
    positions: list[Position]
    skipped_rows: int = 0
    header_row: Optional[int] = None
