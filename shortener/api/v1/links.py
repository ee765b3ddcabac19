import uuid
from fastapi import APIRouter, Depends, Header, Query, Request, Response, status
from typing import Optional

from ...errors import NotFoundError
from ...models import ShortURL
from ...schemas import LinkCreate, LinkPage, LinkResponse, LinkUpdate
from ...services.resolution import URLResolutionService

router = APIRouter()

def get_service(request: Request) -> URLResolutionService:
    return request.app.state.service

def get_base_url(request: Request) -> str:
    return request.app.state.base_url

def to_response(link: ShortURL, base_url: str) -> LinkResponse:
    return LinkResponse(
        id=link.id,
        code=link.code,
        short_url=f"{base_url.rstrip('/')}/{link.code}",
        destination=link.destination,
        owner=link.owner,
        custom_alias=link.custom_alias,
        protected=link.secret_hash is not None,
        active=link.active,
        expires_at=link.expires_at,
        click_count=link.click_count,
        created_at=link.created_at,
        updated_at=link.updated_at,
    )

@router.post("/links", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
async def shorten_link(
    link_in: LinkCreate,
    x_owner_id: Optional[str] = Header(None, alias="X-Owner-Id"),
    service: URLResolutionService = Depends(get_service),
    base_url: str = Depends(get_base_url),
):
    link = await service.shorten(
        destination=link_in.destination,
        owner=x_owner_id,
        custom_alias=link_in.custom_alias,
        secret=link_in.secret,
        expires_at=link_in.expires_at,
    )
    return to_response(link, base_url)

@router.get("/links", response_model=LinkPage)
async def list_links(
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    x_owner_id: Optional[str] = Header(None, alias="X-Owner-Id"),
    service: URLResolutionService = Depends(get_service),
    base_url: str = Depends(get_base_url),
):
    links, total = await service.list_owned(x_owner_id, offset=offset, limit=limit)
    return LinkPage(
        items=[to_response(link, base_url) for link in links],
        total=total,
        offset=offset,
        limit=limit,
    )

@router.get("/links/{short_code}", response_model=LinkResponse)
async def get_link_metadata(
    short_code: str,
    service: URLResolutionService = Depends(get_service),
    base_url: str = Depends(get_base_url),
):
    link = await service.urls.get_by_code(short_code)
    if not link:
        raise NotFoundError()
    return to_response(link, base_url)

@router.patch("/links/{link_id}", response_model=LinkResponse)
async def update_link(
    link_id: uuid.UUID,
    patch: LinkUpdate,
    x_owner_id: Optional[str] = Header(None, alias="X-Owner-Id"),
    service: URLResolutionService = Depends(get_service),
    base_url: str = Depends(get_base_url),
):
    link = await service.update(link_id, x_owner_id, patch)
    return to_response(link, base_url)

@router.delete("/links/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_link(
    link_id: uuid.UUID,
    x_owner_id: Optional[str] = Header(None, alias="X-Owner-Id"),
    service: URLResolutionService = Depends(get_service),
):
    await service.delete(link_id, x_owner_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
