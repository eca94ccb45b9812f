"""
Shared pydantic shapes: the acting user and ledger counterparties
"""
from pydantic import AliasChoices, BaseModel, Field
from typing import Annotated, Literal, Optional, Union


class Actor(BaseModel):
    """User performing an operation (supplied by the auth collaborator)"""
    id: str = Field(..., min_length=1, max_length=64, validation_alias=AliasChoices("id", "_id"))
    username: str = Field(..., min_length=1, max_length=100)
    role: str = Field(default="cashier")


class CustomerParty(BaseModel):
    type: Literal["customer"] = "customer"
    id: Optional[str] = Field(None, max_length=64)
    name: str = Field(..., min_length=1, max_length=150)


class SupplierParty(BaseModel):
    type: Literal["supplier"] = "supplier"
    id: Optional[str] = Field(None, max_length=64)
    name: str = Field(..., min_length=1, max_length=150)


class SystemParty(BaseModel):
    type: Literal["system"] = "system"
    id: Optional[str] = Field(None, max_length=64)
    name: str = Field(default="system", max_length=150)


Counterparty = Annotated[
    Union[CustomerParty, SupplierParty, SystemParty],
    Field(discriminator="type")
]
