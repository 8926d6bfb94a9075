"""
Wire format of the hit counter service.
"""

from pydantic import BaseModel


class EndpointHit(BaseModel):
    app: str
    uri: str
    ip: str
    timestamp: str


class ViewStats(BaseModel):
    app: str = ""
    uri: str
    hits: int = 0
