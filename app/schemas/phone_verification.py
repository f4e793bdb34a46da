from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class VerifyCodeRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    phone_number: str = Field(min_length=1)
    code: str = Field(min_length=1)
    loan_id: UUID


class VerifyCodeResponse(BaseModel):
    success: bool
    status: str
    message: str
