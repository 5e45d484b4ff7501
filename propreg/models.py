from pydantic import BaseModel, Field
from typing import List


class RecordPayload(BaseModel):
    name: str
    volume: int
    summary: str
    categories: List[str] = Field(default_factory=list)


class HolderRequest(BaseModel):
    new_holder: str


class GrantRequest(BaseModel):
    accessor: str


class AttestRequest(BaseModel):
    notes: str = ""
