from pydantic import BaseModel, Field

class BaseSchema(BaseModel):
    class Config:
        from_attributes = True

class CoordinateIn(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

class CoordinateOut(BaseSchema):
    lat: float
    lng: float
