"""User-related Pydantic schemas."""

from pydantic import BaseModel, ConfigDict, Field


class PublicKeyUpdate(BaseModel):
    """Client public key used by peers to wrap message keys."""

    public_key: str = Field(..., alias="publicKey", description="Opaque encoded public key")

    model_config = ConfigDict(populate_by_name=True)
