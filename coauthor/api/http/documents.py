from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from coauthor.core.auth import RequestContext, get_request_context
from coauthor.core.db import get_db
from coauthor.core.errors import CoauthorError, InvalidIdentifier
from coauthor.api.http.errors import to_http_exception
from coauthor.domains.documents.schemas import (
    DocumentDeleteResponse, DocumentPageResponse, DocumentPublishRequest, DocumentRenameResponse,
    DocumentSearchResponse, DocumentSearchResult, DocumentSummaryResponse, DocumentUpdateResponse,
    DocumentVersionResponse, DocumentWriteRequest
)
from coauthor.domains.documents.services import DocumentService

router = APIRouter(prefix="/documents", tags=["documents"])


@router.put("/", response_model=DocumentVersionResponse, status_code=status.HTTP_201_CREATED)
async def create_document(
    document_data: DocumentWriteRequest,
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Создание документа; id генерируется, если не передан"""
    document_service = DocumentService(db)
    try:
        document = await document_service.create_document(context.user_id, document_data)
    except CoauthorError as e:
        raise to_http_exception(e)

    return DocumentVersionResponse.from_entity(document)


@router.post("/", response_model=Union[DocumentUpdateResponse, DocumentRenameResponse])
async def update_document(
    document_data: DocumentWriteRequest,
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Правка содержимого (слияние или новая версия) либо переименование"""
    document_service = DocumentService(db)
    try:
        if not document_data.id:
            raise InvalidIdentifier("Invalid document ID")

        if document_data.is_rename():
            document = await document_service.rename_document(
                context.user_id, document_data.id, document_data.title
            )
            return DocumentRenameResponse(id=document.document_id, title=document.title)

        result = await document_service.update_content(
            context.user_id,
            document_data.id,
            document_data.content or "",
            kind=document_data.kind,
            chat_id=document_data.chat_id,
        )
    except CoauthorError as e:
        raise to_http_exception(e)

    return DocumentUpdateResponse.from_result(result)


@router.get("/", response_model=DocumentPageResponse)
async def list_documents(
    limit: int = Query(10, ge=1, le=100),
    ending_before: Optional[str] = Query(None),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Страница текущих документов, курсор ending_before"""
    document_service = DocumentService(db)
    try:
        documents, has_more = await document_service.list_documents(context.user_id, limit, ending_before)
    except CoauthorError as e:
        raise to_http_exception(e)

    return DocumentPageResponse(
        documents=[DocumentSummaryResponse.from_entity(doc) for doc in documents],
        has_more=has_more,
    )


@router.get("/search", response_model=DocumentSearchResponse)
async def search_documents(
    query: str = Query(..., min_length=1),
    limit: int = Query(5, ge=1, le=50),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Поиск по заголовку и содержимому текущих версий"""
    document_service = DocumentService(db)
    documents = await document_service.search_documents(context.user_id, query, limit)

    return DocumentSearchResponse(
        results=[DocumentSearchResult(id=doc.document_id, title=doc.title) for doc in documents],
        query=query,
    )


@router.get("/by-path", response_model=DocumentVersionResponse)
async def get_document_by_path(
    path: str = Query(..., min_length=1),
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Документ по id или по заголовку"""
    document_service = DocumentService(db)
    document = await document_service.get_file_by_path(context.user_id, path)

    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document not found or unauthorized"
        )

    return DocumentVersionResponse.from_entity(document)


@router.post("/publish", response_model=DocumentVersionResponse)
async def publish_document(
    publish_data: DocumentPublishRequest,
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Настройки публикации текущей версии"""
    document_service = DocumentService(db)
    try:
        document = await document_service.publish_document(context.user_id, publish_data)
    except CoauthorError as e:
        raise to_http_exception(e)

    return DocumentVersionResponse.from_entity(document)


@router.get("/{document_id}", response_model=DocumentVersionResponse)
async def get_document(
    document_id: str,
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Текущая версия документа"""
    document_service = DocumentService(db)
    try:
        document = await document_service.get_current_document(context.user_id, document_id)
    except CoauthorError as e:
        raise to_http_exception(e)

    return DocumentVersionResponse.from_entity(document)


@router.get("/{document_id}/versions", response_model=List[DocumentVersionResponse])
async def get_document_versions(
    document_id: str,
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Все версии документа в порядке создания"""
    document_service = DocumentService(db)
    try:
        versions = await document_service.get_document_versions(context.user_id, document_id)
    except CoauthorError as e:
        raise to_http_exception(e)

    return [DocumentVersionResponse.from_entity(version) for version in versions]


@router.delete("/{document_id}", response_model=DocumentDeleteResponse)
async def delete_document(
    document_id: str,
    context: RequestContext = Depends(get_request_context),
    db: AsyncSession = Depends(get_db),
):
    """Удаление документа со всеми версиями"""
    document_service = DocumentService(db)
    try:
        deleted = await document_service.delete_document(context.user_id, document_id)
    except CoauthorError as e:
        raise to_http_exception(e)

    return DocumentDeleteResponse(id=document_id, deleted=deleted)
