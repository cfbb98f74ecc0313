"""Document payload models for the document-creation endpoint."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    # Wire names are camelCase; Python attributes stay snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Description(_WireModel):
    participant_inn: str | None = Field(None, description="Participant taxpayer number")


class Product(_WireModel):
    """Single product line of a document."""

    certificate_document: str | None = None
    certificate_document_date: str | None = None
    certificate_document_number: str | None = None
    owner_inn: str | None = None
    producer_inn: str | None = None
    production_date: str | None = None
    tnved_code: str | None = Field(None, description="Commodity nomenclature code")
    uit_code: str | None = Field(None, description="Unit identification code")
    uitu_code: str | None = Field(None, description="Transport package identification code")


class Document(_WireModel):
    """Document submitted for registration."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "description": {"participantInn": "1234567890"},
                    "docId": "doc123",
                    "docStatus": "active",
                    "docType": "type1",
                    "importRequest": False,
                    "ownerInn": "0987654321",
                    "participantInn": "1234567890",
                    "producerInn": "1122334455",
                    "productionDate": "2023-10-01",
                    "productionType": "type",
                    "products": [],
                    "regDate": "2023-10-01",
                    "regNumber": "reg123",
                }
            ]
        },
    )
    description: Description | None = None
    doc_id: str | None = None
    doc_status: str | None = None
    doc_type: str | None = None
    import_request: bool = False
    owner_inn: str | None = None
    participant_inn: str | None = None
    producer_inn: str | None = None
    production_date: str | None = None
    production_type: str | None = None
    products: list[Product] | None = None
    reg_date: str | None = None
    reg_number: str | None = None


def sample_document() -> Document:
    """Return a filled-in document useful for smoke runs."""
    return Document(
        description=Description(participant_inn="1234567890"),
        doc_id="doc123",
        doc_status="active",
        doc_type="type1",
        import_request=False,
        owner_inn="0987654321",
        participant_inn="1234567890",
        producer_inn="1122334455",
        production_date="2023-10-01",
        production_type="type",
        products=[],
        reg_date="2023-10-01",
        reg_number="reg123",
    )
