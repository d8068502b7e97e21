from __future__ import annotations

from pydantic import BaseModel


class StatusResponse(BaseModel):
    status: str


class ErrorResponse(BaseModel):
    status: str = "Error"
    message: str


class HealthResponse(BaseModel):
    status: str = "ok"
    relay: dict[str, int]


class SystemStats(BaseModel):
    cpuUsage: str
    memoryUsage: str
    workers: int


OK = StatusResponse(status="OK")
NO_DATA = StatusResponse(status="no data")
