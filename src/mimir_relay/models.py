# src/mimir_relay/models.py
from __future__ import annotations
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant"]

class Message(BaseModel):
    role: Role
    content: str

class RelayRequest(BaseModel):
    # wire shape sent by ChatSession; the relay itself validates raw JSON
    # so it can answer with its own in-character 400s
    message: str
    history: List[Message] = Field(default_factory=list)

class RelayResponse(BaseModel):
    reply: str
    timestamp: Optional[int] = None  # epoch milliseconds
    error: Optional[bool] = None
    mock: Optional[bool] = None
    detail: Optional[str] = None  # short label for validation/config failures

    def to_body(self) -> dict:
        return self.model_dump(exclude_none=True)
