"""
Search Routes

Direct retrieval endpoint. Runs the same retriever the chat turn uses and
returns the ranked chunks without generating an answer.
"""

from fastapi import APIRouter, Depends, status
from typing import Annotated

from .models import SearchRequest, SearchResponse
from .dependencies import get_retriever
from ..auth.security import verify_access_token
from ..auth.models import UserContext
from ..retrieval.retriever import Retriever

router = APIRouter(prefix="/search", tags=["search"])


@router.post(
    "",
    response_model=SearchResponse,
    summary="Semantic search over visible legal documents",
    status_code=status.HTTP_200_OK,
)
async def search(
    req: SearchRequest,
    user: Annotated[UserContext, Depends(verify_access_token)],
    retriever: Annotated[Retriever, Depends(get_retriever)],
) -> SearchResponse:
    """
    Parameters
    ----------
    req : SearchRequest
        Contains:
        - query: Search query string
        - filters: Optional document type / year filters
        - web_search: Prefer web results when the plan allows it

    user : UserContext
        Authenticated user context derived from JWT.
    """
    result = await retriever.retrieve(
        req.query,
        user,
        filters=req.filters,
        allow_web_search=req.web_search,
    )
    return SearchResponse(results=result.chunks, source=result.source)
