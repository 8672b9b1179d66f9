from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ficai_signals import signals
from ficai_signals.database import get_db
from ficai_signals.dependencies import get_fichub
from ficai_signals.errors import NotFound
from ficai_signals.fichub import FichubClient
from ficai_signals.schemas import MetaResponse, TagsResponse, UrlsResponse

router = APIRouter(prefix="/v1", tags=["tags"])


@router.get("/tags", response_model=TagsResponse)
def search_tags(
    q: Optional[str] = None,
    limit: int = Query(signals.DEFAULT_SEARCH_LIMIT, ge=0),
    db: Session = Depends(get_db),
):
    """
    Tags ranked by similarity to q, then by how often they are used.
    """
    return TagsResponse(tags=signals.search_tags(db, q, limit))


@router.get("/urls", response_model=UrlsResponse)
def get_urls(db: Session = Depends(get_db)):
    """
    Every document url that has signals.
    """
    return UrlsResponse(urls=signals.known_urls(db))


@router.get("/meta", response_model=MetaResponse)
def get_meta(
    url: str = Query(..., min_length=1),
    fichub: FichubClient = Depends(get_fichub),
):
    meta = fichub.meta(url)
    if meta is None:
        raise NotFound("unknown url")
    return MetaResponse.model_validate(meta)
