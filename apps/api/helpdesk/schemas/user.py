from pydantic import BaseModel

class MeOut(BaseModel):
    id: str
    name: str
    email: str | None = None
    role: str
    company_id: str
    capabilities: list[str]

class CapabilityTableOut(BaseModel):
    roles: dict[str, list[str]]
