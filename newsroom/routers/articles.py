from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession
from newsroom.database import get_db
from newsroom.dependencies import FilterParams, PageParams, SortParams, get_article_lifecycle, get_principal
from newsroom.identity import Principal
from newsroom.schemas import ArticleCreate, ArticlePage, ArticleUpdate
from newsroom.services import article_query
from newsroom.services.article_service import ArticleLifecycle

router = APIRouter(prefix="/api/v1/articles", tags=["articles"])

@router.get("", response_model=ArticlePage)
async def list_articles(
    filters: FilterParams = Depends(),
    sort: SortParams = Depends(),
    page: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await article_query.list_articles(
        db, filters.to_filter(), sort.sort_by, sort.sort_order, page.limit, page.offset
    )

@router.get("/search", response_model=ArticlePage)
async def search_articles(
    q: str = Query(..., min_length=1, max_length=200, description="Free-text query."),
    filters: FilterParams = Depends(),
    page: PageParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await article_query.search_articles(db, q, filters.to_filter(), page.limit, page.offset)

@router.get("/slug/{slug}")
async def get_article_by_slug(slug: str, db: AsyncSession = Depends(get_db)):
    return await article_query.get_article_by_slug(db, slug)

@router.get("/{article_id}")
async def get_article(article_id: int, db: AsyncSession = Depends(get_db)):
    return await article_query.get_article(db, article_id)

@router.post("", status_code=201)
async def create_article(
    data: ArticleCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    lifecycle: ArticleLifecycle = Depends(get_article_lifecycle),
):
    return await lifecycle.create(db, data, principal)

@router.patch("/{article_id}")
async def update_article(
    article_id: int,
    data: ArticleUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    lifecycle: ArticleLifecycle = Depends(get_article_lifecycle),
):
    return await lifecycle.update(db, article_id, data, principal)

@router.delete("/{article_id}", status_code=204)
async def delete_article(
    article_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal | None = Depends(get_principal),
    lifecycle: ArticleLifecycle = Depends(get_article_lifecycle),
):
    await lifecycle.delete(db, article_id, principal)
    return Response(status_code=204)
