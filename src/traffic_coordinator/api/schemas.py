from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ChatActionRequest(BaseModel):
    user_id: int
    display_name: str = ""
    model_config = ConfigDict(extra="ignore")

    def name_or_id(self) -> str:
        name = self.display_name.strip()
        return name or str(self.user_id)


class ChatActionResponse(BaseModel):
    action: str
    reply: str


class OutboxItem(BaseModel):
    message_id: str
    text: str


class OutboxResponse(BaseModel):
    recipient_id: int
    messages: list[OutboxItem] = Field(default_factory=list)
