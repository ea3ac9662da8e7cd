"""Elasticsearch catalog gateway over the REST API."""

import json
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import requests

from ..errors import StoreError, TransientStoreError
from ..logger import get_logger
from ..retry import should_retry_http_status
from .common import INSERT, CatalogGateway, WriteOp

# Record types are a field of the document, not an Elasticsearch mapping type
TYPE_FIELD = "doc_type"


class ElasticCatalogGateway(CatalogGateway):
    """
    Catalog held in one Elasticsearch index.

    Reads use the scroll API, writes the _bulk API and the visibility
    barrier is an index _refresh.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        scroll: str = "10m",
        logger=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.scroll = scroll
        self.logger = logger or get_logger()

    def close(self) -> None:
        self.session.close()

    def _call(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: Optional[Dict[str, str]] = None,
        data: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        allow: Tuple[int, ...] = (),
    ) -> Tuple[int, Dict[str, Any]]:
        """Issue a request and return (status, parsed body).

        Raises TransientStoreError on timeouts, connection failures and
        retryable statuses; StoreError on any other failure not in allow.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            resp = self.session.request(
                method,
                url,
                json=body,
                data=data,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            raise TransientStoreError(f"{method} {path} unreachable: {e}")
        except requests.exceptions.RequestException as e:
            raise StoreError(f"{method} {path} request error: {e}")

        status = resp.status_code
        if status >= 400 and status not in allow:
            message = f"{method} {path} failed ({status}): {resp.text[:300]}"
            if should_retry_http_status(status):
                raise TransientStoreError(message)
            raise StoreError(message)
        try:
            payload = resp.json() if resp.content else {}
        except ValueError:
            raise StoreError(f"{method} {path} returned a non-JSON body")
        return status, payload

    # Reads

    def _scroll(self, index: str, query: Dict[str, Any], page_size: int) -> Iterator[Dict[str, Any]]:
        _, page = self._call(
            "POST",
            f"{index}/_search",
            body={"size": page_size, "query": query, "sort": ["_doc"]},
            params={"scroll": self.scroll},
        )
        scroll_id = page.get("_scroll_id")
        try:
            while True:
                hits = page.get("hits", {}).get("hits", [])
                if not hits:
                    return
                for hit in hits:
                    yield hit
                _, page = self._call(
                    "POST",
                    "_search/scroll",
                    body={"scroll": self.scroll, "scroll_id": scroll_id},
                )
                scroll_id = page.get("_scroll_id", scroll_id)
        finally:
            if scroll_id:
                try:
                    self._call("DELETE", "_search/scroll", body={"scroll_id": [scroll_id]}, allow=(404,))
                except StoreError as e:
                    self.logger.warning("Failed to clear scroll context", error=str(e))

    @staticmethod
    def _filter(doc_type: str, **terms: Optional[str]) -> Dict[str, Any]:
        clauses = [{"term": {TYPE_FIELD: doc_type}}]
        clauses.extend({"term": {field: value}} for field, value in terms.items() if value is not None)
        return {"bool": {"filter": clauses}}

    def read_all(self, relation: str, record_type: str, page_size: int = 100) -> Iterator[Dict[str, Any]]:
        for hit in self._scroll(relation, self._filter(record_type), page_size):
            source = dict(hit.get("_source", {}))
            source.pop(TYPE_FIELD, None)
            yield source

    def read_pairs(
        self,
        relation: str,
        doc_type: str,
        page_size: int = 100,
        concept_a: Optional[str] = None,
    ) -> Iterator[Tuple[str, Dict[str, Any]]]:
        query = self._filter(doc_type, concept_A=concept_a)
        for hit in self._scroll(relation, query, page_size):
            source = dict(hit.get("_source", {}))
            source.pop(TYPE_FIELD, None)
            yield hit["_id"], source

    # Schema

    def declare_schema(self, relation: str, doc_type: str, field_specs: Mapping[str, str]) -> None:
        properties = {name: {"type": ftype} for name, ftype in field_specs.items()}
        properties[TYPE_FIELD] = {"type": "keyword"}
        status, _ = self._call("PUT", f"{relation}/_mapping", body={"properties": properties}, allow=(404,))
        if status == 404:
            self._call("PUT", relation, body={"mappings": {"properties": properties}})
            self.logger.info("Created index", index=relation)
        self.logger.debug("Schema declared", relation=relation, doc_type=doc_type)

    def delete_relation(self, relation: str, doc_type: str) -> None:
        status, body = self._call(
            "POST",
            f"{relation}/_delete_by_query",
            body={"query": self._filter(doc_type)},
            params={"conflicts": "proceed", "refresh": "true"},
            allow=(404,),
        )
        self.logger.info(
            "Deleted prior output",
            relation=relation,
            doc_type=doc_type,
            rows=0 if status == 404 else body.get("deleted", 0),
        )

    def make_visible(self, relation: str) -> None:
        self._call("POST", f"{relation}/_refresh")

    # Writes

    def write_batch(self, ops: List[WriteOp]) -> None:
        lines = []
        for op in ops:
            if op.action == INSERT:
                action: Dict[str, Any] = {"_index": op.relation}
                if op.doc_id is not None:
                    action["_id"] = op.doc_id
                lines.append(json.dumps({"index": action}))
                lines.append(json.dumps({**op.doc, TYPE_FIELD: op.doc_type}))
            else:
                lines.append(json.dumps({"update": {"_index": op.relation, "_id": op.doc_id}}))
                lines.append(json.dumps({"doc": op.doc}))
        payload = "\n".join(lines) + "\n"

        _, body = self._call(
            "POST",
            "_bulk",
            data=payload,
            headers={"Content-Type": "application/x-ndjson"},
        )
        if body.get("errors"):
            failed = [
                item
                for entry in body.get("items", [])
                for item in entry.values()
                if item.get("status", 200) >= 300
            ]
            first = failed[0].get("error") if failed else None
            # Item failures are not retried: the acknowledged part of the batch would be written twice
            raise StoreError(f"{len(failed)} of {len(ops)} bulk items failed; first error: {first}")
