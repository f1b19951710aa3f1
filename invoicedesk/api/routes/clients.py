"""
Client API routes.
"""
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from invoicedesk.database import get_db
from invoicedesk.models.client import Client
from invoicedesk.schemas.clients import ClientCreate, ClientResponse
from invoicedesk.schemas.common import ErrorResponse

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/clients", response_model=List[ClientResponse], summary="List clients")
async def list_clients(
    search: Optional[str] = Query(None, description="Name substring"),
    db: Session = Depends(get_db),
) -> List[ClientResponse]:
    query = db.query(Client)
    if search and search.strip():
        query = query.filter(func.lower(Client.name).contains(search.strip().lower(), autoescape=True))
    return [ClientResponse.model_validate(c) for c in query.order_by(Client.name, Client.id).all()]


@router.post(
    "/clients",
    response_model=ClientResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse, "description": "Invalid client"}},
    summary="Create client",
)
async def create_client(
    body: ClientCreate,
    db: Session = Depends(get_db),
) -> ClientResponse:
    client = Client(name=body.name.strip(), email=body.email)
    db.add(client)
    db.commit()
    db.refresh(client)
    logger.info("client_created", client_id=str(client.id))
    return ClientResponse.model_validate(client)
