"""
Pydantic schemas for payment proofs
"""
from pydantic import BaseModel, Field
from typing import Literal
from app.common.schemas import CamelModel

ProofKind = Literal["pdf", "image"]


class StoredProof(BaseModel):
    """Result of persisting a proof in the object store"""
    key: str = Field(..., description="Object key, stored in invoice.proof_file_url")
    content_type: str
    size: int


class ProofDescription(CamelModel):
    """Renderable proof reference for the review dialog"""
    url: str
    kind: ProofKind
