"""
Janitor result schemas (cron endpoint payloads)
"""
from pydantic import BaseModel


class CountResult(BaseModel):
    count: int


class TrackingResultResponse(BaseModel):
    checked: int
    updated: int
    failed: int


class DispatchResultResponse(BaseModel):
    sent: int
    failed: int
