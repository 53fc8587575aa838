"""Generic repository with common Elasticsearch document operations."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping
from typing import Any, Generic, TypeVar

from elastic_transport import TransportError
from elasticsearch import ApiError, AsyncElasticsearch, ConflictError, NotFoundError
from elasticsearch.helpers import async_bulk

from docstore.client import StoreClient
from docstore.documents import BulkOutcome, Document, Refresh
from docstore.errors import (
    ARGUMENT_EMPTY_LIST_MESSAGE,
    InvalidArgumentError,
    is_blank,
    require_items,
    require_not_none,
    require_text,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Document)

RefreshArg = Refresh | bool | str

# 전송/API 오류. throw_exceptions=False면 sentinel로 변환
_STORE_FAILURES = (ApiError, TransportError)

# 훅으로 넘기지 않을 대용량 파라미터
_PAYLOAD_PARAMS = frozenset({"document", "doc", "script", "query"})

DEFAULT_CONFLICT_RETRIES = 3


class DocumentRepository(Generic[T]):
    """Elasticsearch 컬렉션 하나에 대한 문서 CRUD 리포지토리.

    StoreClient 하나와 문서 타입으로 생성합니다. 핸들 참조와 재시도 예산 외에는
    상태가 없으므로 여러 코루틴에서 공유해도 안전합니다.

    결과 규칙:
        - 잘못된 인자 → InvalidArgumentError (네트워크 호출 전)
        - 문서 없음/이미 존재/매칭 없음 → None, 0, False 같은 sentinel
        - 전송/API 오류 → settings.throw_exceptions가 True면 raise,
          아니면 warning 로그 후 sentinel

    Example:
        >>> repo = DocumentRepository(registry.get_instance("orders"), Order)
        >>> order_id = await repo.create(Order(name="a"))
        >>> order = await repo.get(order_id)
    """

    def __init__(self, client: StoreClient, document_type: type[T]):
        self.client = require_not_none(client, "client")
        self.document_type = require_not_none(document_type, "document_type")

        # update 계열의 retry_on_conflict 예산
        retries = client.profile.max_retries if client.profile is not None else None
        if retries is None or retries <= 0:
            retries = DEFAULT_CONFLICT_RETRIES
        self.max_retries = retries

    @property
    def es(self) -> AsyncElasticsearch:
        return self.client.es

    @property
    def index_name(self) -> str:
        """대상 인덱스 이름."""
        return self.client.collection

    # =========================================================================
    # 변환 / 공용 헬퍼
    # =========================================================================

    def _get_doc_id(self, doc: T) -> str | None:
        return doc.id

    def _to_es_dict(self, doc: T) -> dict[str, Any]:
        # None 필드도 저장해야 읽을 때 기본값으로 바뀌지 않음
        return doc.to_source(include_none=True)

    def _from_es_dict(self, doc_id: str, source: dict[str, Any] | None) -> T:
        return self.document_type.from_source(doc_id, source)

    async def _call(self, operation: str, api: Callable[..., Awaitable[Any]], **params: Any) -> Any:
        """요청 라이프사이클 훅을 거쳐 ES API 호출."""
        described = {k: v for k, v in params.items() if k not in _PAYLOAD_PARAMS}
        async with self.client.track(operation, **described):
            return await api(**params)

    def _tolerate(self, operation: str, error: Exception) -> None:
        """throw_exceptions 설정에 따라 오류를 다시 raise 하거나 로그만 남김."""
        if self.client.settings.throw_exceptions:
            raise error
        logger.warning(f"[{self.index_name}] {operation} 실패: {error}")

    async def _refresh(self, operation: str) -> None:
        try:
            await self.client.refresh()
        except _STORE_FAILURES as e:
            self._tolerate(f"{operation} refresh", e)

    def _validate_patch(self, fields: Mapping[str, Any] | None) -> dict[str, Any]:
        """부분 업데이트 field mask 검증. 명시된 필드만 변경됩니다."""
        require_not_none(fields, "fields")
        if not isinstance(fields, Mapping):
            raise InvalidArgumentError(
                "The argument 'fields' must be a mapping of field name to value."
            )
        if not fields:
            raise InvalidArgumentError(ARGUMENT_EMPTY_LIST_MESSAGE.format("fields"))
        if "id" in fields:
            raise InvalidArgumentError("The document identifier cannot be updated.")

        unknown = set(fields) - self.document_type.field_names()
        if unknown:
            raise InvalidArgumentError(
                f"Unknown fields for {self.document_type.__name__}: {sorted(unknown)}"
            )
        return dict(fields)

    def _write_action(self, item: T) -> dict[str, Any]:
        """id 유무에 따라 index(서버 할당) 또는 create(없을 때만 생성) 액션 생성."""
        doc_id = self._get_doc_id(item)
        if is_blank(doc_id):
            return {
                "_op_type": "index",
                "_index": self.index_name,
                "_source": self._to_es_dict(item),
            }
        return {
            "_op_type": "create",
            "_index": self.index_name,
            "_id": doc_id,
            "_source": self._to_es_dict(item),
        }

    # =========================================================================
    # Read
    # =========================================================================

    async def get(self, doc_id: str) -> T | None:
        """ID로 단일 문서 조회. 없으면 None."""
        require_text(doc_id, "doc_id")
        try:
            resp = await self._call("get", self.es.get, index=self.index_name, id=doc_id)
        except NotFoundError:
            return None
        except _STORE_FAILURES as e:
            self._tolerate("get", e)
            return None

        if not resp["found"]:
            return None
        return self._from_es_dict(doc_id, resp.get("_source"))

    async def get_many(self, doc_ids: Iterable[str]) -> dict[str, T]:
        """여러 ID로 문서 조회. 찾은 문서만 {id: doc} 형태로 반환."""
        ids = [i for i in require_items(doc_ids, "doc_ids") if not is_blank(i)]
        if not ids:
            return {}
        try:
            resp = await self._call("mget", self.es.mget, index=self.index_name, ids=ids)
        except _STORE_FAILURES as e:
            self._tolerate("mget", e)
            return {}

        out: dict[str, T] = {}
        for d in resp["docs"]:
            if d.get("found"):
                out[d["_id"]] = self._from_es_dict(d["_id"], d.get("_source"))
        return out

    async def search(self, request: Mapping[str, Any]) -> list[T]:
        """검색 요청(query, sort, size 등 search API 인자)으로 문서 조회.

        Returns:
            hit 순서대로 정렬된 문서 목록. 매칭이 없으면 빈 리스트.
        """
        require_not_none(request, "request")
        params = {k: v for k, v in request.items() if k != "index"}
        try:
            resp = await self._call("search", self.es.search, index=self.index_name, **params)
        except _STORE_FAILURES as e:
            self._tolerate("search", e)
            return []

        return [self._from_es_dict(h["_id"], h.get("_source")) for h in resp["hits"]["hits"]]

    async def count(self, request: Mapping[str, Any] | None = None) -> int:
        """인덱스 내 문서 수 (request에 query를 주면 매칭 문서 수)."""
        params = {k: v for k, v in (request or {}).items() if k != "index"}
        try:
            resp = await self._call("count", self.es.count, index=self.index_name, **params)
        except _STORE_FAILURES as e:
            self._tolerate("count", e)
            return 0
        return int(resp["count"])

    async def scroll_all(self, batch_size: int = 1000, keep_alive: str = "2m") -> AsyncIterator[T]:
        """인덱스 내 모든 문서를 scroll API로 순회.

        첫 페이지나 이후 페이지 요청이 실패하면 throw_exceptions 설정에 따라
        raise 하거나 그 지점에서 순회를 끝냅니다. scroll 컨텍스트는 항상 정리됩니다.
        """
        try:
            page = await self._call(
                "search",
                self.es.search,
                index=self.index_name,
                query={"match_all": {}},
                size=batch_size,
                scroll=keep_alive,
            )
        except _STORE_FAILURES as e:
            self._tolerate("scroll", e)
            return

        scroll_id = page.get("_scroll_id")
        try:
            while page["hits"]["hits"]:
                for hit in page["hits"]["hits"]:
                    yield self._from_es_dict(hit["_id"], hit.get("_source"))
                try:
                    page = await self._call(
                        "scroll", self.es.scroll, scroll_id=scroll_id, scroll=keep_alive
                    )
                except _STORE_FAILURES as e:
                    self._tolerate("scroll", e)
                    return
                scroll_id = page.get("_scroll_id", scroll_id)
        finally:
            if scroll_id:
                await self._clear_scroll(scroll_id)

    async def _clear_scroll(self, scroll_id: str) -> None:
        try:
            await self._call("clear_scroll", self.es.clear_scroll, scroll_id=scroll_id)
        except _STORE_FAILURES as e:
            self._tolerate("clear_scroll", e)

    # =========================================================================
    # Create
    # =========================================================================

    async def create(self, item: T, refresh: RefreshArg = Refresh.WAIT_FOR) -> str | None:
        """단일 문서 생성.

        id가 없으면 서버가 id를 할당하고, id가 있으면 해당 id로 "없을 때만" 생성합니다.

        Returns:
            생성된 문서 id. 이미 존재하거나 저장소가 거부하면 None.
        """
        require_not_none(item, "item")
        policy = Refresh.coerce(refresh).to_param()
        doc_id = self._get_doc_id(item)

        try:
            if is_blank(doc_id):
                resp = await self._call(
                    "index",
                    self.es.index,
                    index=self.index_name,
                    document=self._to_es_dict(item),
                    refresh=policy,
                )
            else:
                resp = await self._call(
                    "create",
                    self.es.create,
                    index=self.index_name,
                    id=doc_id,
                    document=self._to_es_dict(item),
                    refresh=policy,
                )
        except ConflictError:
            logger.info(f"[{self.index_name}] 이미 존재하는 문서: {doc_id}")
            return None
        except _STORE_FAILURES as e:
            self._tolerate("create", e)
            return None

        created_id = resp["_id"]
        return None if is_blank(created_id) else created_id

    async def bulk_create(self, items: Iterable[T], refresh: RefreshArg = Refresh.WAIT_FOR) -> int:
        """대량 문서 생성. 저장소가 수락한 건수 반환.

        항목별 실패 사유가 필요하면 bulk()를 직접 사용하세요.
        """
        items = require_items(items, "items")
        actions = [self._write_action(require_not_none(item, "items[]")) for item in items]
        outcome = await self.bulk(actions, refresh=refresh)
        return outcome.accepted

    # =========================================================================
    # Update
    # =========================================================================

    async def _update_doc(
        self, doc_id: str, doc: dict[str, Any], refresh: RefreshArg
    ) -> str | None:
        policy = Refresh.coerce(refresh).to_param()
        try:
            resp = await self._call(
                "update",
                self.es.update,
                index=self.index_name,
                id=doc_id,
                doc=doc,
                retry_on_conflict=self.max_retries,
                refresh=policy,
            )
        except NotFoundError:
            return None
        except _STORE_FAILURES as e:
            self._tolerate("update", e)
            return None

        updated_id = resp["_id"]
        return None if is_blank(updated_id) else updated_id

    async def update(
        self, doc_id: str, item: T, refresh: RefreshArg = Refresh.WAIT_FOR
    ) -> str | None:
        """문서 전체 교체 (None 필드 포함 모든 필드를 덮어씀).

        버전 충돌 시 ES가 max_retries 만큼 재시도합니다. 문서가 없으면 쓰지 않고 None.
        """
        require_text(doc_id, "doc_id")
        require_not_none(item, "item")
        item_id = self._get_doc_id(item)
        if not is_blank(item_id) and item_id != doc_id:
            raise InvalidArgumentError(
                f"The document identifier cannot be changed ({item_id!r} != {doc_id!r})."
            )
        return await self._update_doc(doc_id, self._to_es_dict(item), refresh)

    async def patch(
        self,
        doc_id: str,
        fields: Mapping[str, Any],
        refresh: RefreshArg = Refresh.WAIT_FOR,
    ) -> str | None:
        """부분 업데이트. fields에 명시된 필드만 변경됩니다."""
        require_text(doc_id, "doc_id")
        doc = self._validate_patch(fields)
        return await self._update_doc(doc_id, doc, refresh)

    async def bulk_patch(
        self,
        doc_ids: Iterable[str],
        fields: Mapping[str, Any],
        refresh: RefreshArg = Refresh.WAIT_FOR,
    ) -> int:
        """여러 문서에 같은 부분 업데이트 적용. 실제 업데이트된 건수 반환."""
        ids = require_items(doc_ids, "doc_ids")
        doc = self._validate_patch(fields)

        actions = [
            {
                "_op_type": "update",
                "_index": self.index_name,
                "_id": doc_id,
                "retry_on_conflict": self.max_retries,
                "doc": dict(doc),
            }
            for doc_id in ids
            if not is_blank(doc_id)
        ]
        if not actions:
            return 0
        outcome = await self.bulk(actions, refresh=refresh)
        return outcome.accepted

    async def update_by_query(
        self,
        request: Mapping[str, Any],
        refresh: RefreshArg = Refresh.WAIT_FOR,
    ) -> int:
        """조건(query + script)에 맞는 문서 업데이트. 업데이트 건수 반환.

        refresh가 FALSE가 아니면 호출 완료 후 컬렉션을 명시적으로 refresh 합니다.
        """
        require_not_none(request, "request")
        policy = Refresh.coerce(refresh)
        params = {k: v for k, v in request.items() if k != "index"}
        try:
            resp = await self._call(
                "update_by_query", self.es.update_by_query, index=self.index_name, **params
            )
        except _STORE_FAILURES as e:
            self._tolerate("update_by_query", e)
            return 0

        if policy is not Refresh.FALSE:
            await self._refresh("update_by_query")
        return int(resp["updated"])

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete(self, doc_id: str, refresh: RefreshArg = Refresh.WAIT_FOR) -> bool:
        """문서 삭제. 삭제되면 True, 문서가 없으면 False."""
        require_text(doc_id, "doc_id")
        policy = Refresh.coerce(refresh).to_param()
        try:
            resp = await self._call(
                "delete", self.es.delete, index=self.index_name, id=doc_id, refresh=policy
            )
        except NotFoundError:
            return False
        except _STORE_FAILURES as e:
            self._tolerate("delete", e)
            return False
        return resp["result"] == "deleted"

    async def bulk_delete(
        self, doc_ids: Iterable[str], refresh: RefreshArg = Refresh.WAIT_FOR
    ) -> int:
        """여러 문서 삭제. 빈 id는 건너뜀. 저장소가 수락한 건수 반환."""
        ids = require_items(doc_ids, "doc_ids")
        actions = [
            {"_op_type": "delete", "_index": self.index_name, "_id": doc_id}
            for doc_id in ids
            if not is_blank(doc_id)
        ]
        if not actions:
            return 0
        outcome = await self.bulk(actions, refresh=refresh)
        return outcome.accepted

    async def delete_by_query(
        self,
        request: Mapping[str, Any],
        refresh: RefreshArg = Refresh.WAIT_FOR,
    ) -> int:
        """조건에 맞는 문서 삭제. 삭제 건수 반환.

        refresh 인자와 관계없이 호출 완료 후 컬렉션을 refresh 합니다.
        """
        require_not_none(request, "request")
        params = {k: v for k, v in request.items() if k != "index"}
        try:
            resp = await self._call(
                "delete_by_query", self.es.delete_by_query, index=self.index_name, **params
            )
        except _STORE_FAILURES as e:
            self._tolerate("delete_by_query", e)
            return 0

        await self._refresh("delete_by_query")
        return int(resp["deleted"])

    # =========================================================================
    # Bulk
    # =========================================================================

    async def bulk(
        self,
        actions: Iterable[Mapping[str, Any]],
        refresh: RefreshArg = Refresh.WAIT_FOR,
    ) -> BulkOutcome:
        """bulk 요청 실행. 항목별 실패 정보를 포함한 BulkOutcome 반환.

        _index가 없는 액션에는 이 리포지토리의 인덱스가 채워집니다.
        """
        prepared = [{"_index": self.index_name, **a} for a in require_items(actions, "actions")]
        policy = Refresh.coerce(refresh).to_param()
        try:
            async with self.client.track("bulk", size=len(prepared)):
                success, errors = await async_bulk(
                    self.es, prepared, refresh=policy, raise_on_error=False
                )
        except _STORE_FAILURES as e:
            self._tolerate("bulk", e)
            return BulkOutcome(accepted=0)

        outcome = BulkOutcome.from_bulk_result(success, errors)
        if outcome.failures:
            sample = ", ".join(f"{f.id}({f.status})" for f in outcome.failures[:5])
            logger.warning(
                f"[{self.index_name}] bulk 부분 실패: {outcome.failed}/{len(prepared)}건 ({sample})"
            )
        return outcome
