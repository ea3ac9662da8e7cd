"""SQLite catalog gateway backed by SQLAlchemy."""

from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..database import CatalogRecord, DeclaredSchema, SimilarityDocument, init_database
from ..documents import CONCEPT_A, CONCEPT_B, SIM_SUFFIX, WEIGHT, pair_document
from ..errors import StoreError, TransientStoreError
from ..logger import get_logger
from ..retry import is_transient_error
from .common import INSERT, CatalogGateway, WriteOp


def _store_error(action: str, e: SQLAlchemyError) -> StoreError:
    message = f"SQLite {action} failed: {e}"
    if isinstance(e, OperationalError) and is_transient_error(e):
        return TransientStoreError(message)
    return StoreError(message)


def _row_to_document(row: SimilarityDocument) -> Dict[str, Any]:
    return pair_document(row.concept_a, row.concept_b, row.similarities or {}, row.weight)


def _row_values(doc: Mapping[str, Any]) -> Dict[str, Any]:
    """Map a pair document onto SimilarityDocument columns."""
    values: Dict[str, Any] = {}
    similarities = {}
    for key, value in doc.items():
        if key == CONCEPT_A:
            values["concept_a"] = value
        elif key == CONCEPT_B:
            values["concept_b"] = value
        elif key == WEIGHT:
            values["weight"] = value
        elif key.endswith(SIM_SUFFIX):
            similarities[key[: -len(SIM_SUFFIX)]] = value
        else:
            raise StoreError(f"Unsupported similarity document field: {key}")
    if similarities:
        values["similarities"] = similarities
    return values


class SqlCatalogGateway(CatalogGateway):
    """
    Catalog stored in a local SQLite file.

    Every acknowledged batch is a committed transaction, so make_visible()
    has nothing left to do beyond marking the barrier in the log.
    """

    def __init__(self, db_path: Path, logger=None):
        self.db_path = Path(db_path)
        self.logger = logger or get_logger()
        try:
            self.engine = init_database(self.db_path)
        except SQLAlchemyError as e:
            raise _store_error("open", e)
        self._Session = sessionmaker(bind=self.engine)

    def close(self) -> None:
        self.engine.dispose()

    # Reads

    def read_all(self, relation: str, record_type: str, page_size: int = 100) -> Iterator[Dict[str, Any]]:
        last_id = 0
        while True:
            stmt = (
                select(CatalogRecord.id, CatalogRecord.payload)
                .where(CatalogRecord.relation == relation)
                .where(CatalogRecord.record_type == record_type)
                .where(CatalogRecord.id > last_id)
                .order_by(CatalogRecord.id)
                .limit(page_size)
            )
            try:
                with self._Session() as session:
                    rows = session.execute(stmt).all()
            except SQLAlchemyError as e:
                raise _store_error("read", e)
            if not rows:
                return
            for row in rows:
                yield dict(row.payload)
            last_id = rows[-1].id

    def read_pairs(
        self,
        relation: str,
        doc_type: str,
        page_size: int = 100,
        concept_a: Optional[str] = None,
    ) -> Iterator[Tuple[str, Dict[str, Any]]]:
        last_id = 0
        while True:
            stmt = (
                select(SimilarityDocument)
                .where(SimilarityDocument.relation == relation)
                .where(SimilarityDocument.doc_type == doc_type)
                .where(SimilarityDocument.id > last_id)
                .order_by(SimilarityDocument.id)
                .limit(page_size)
            )
            if concept_a is not None:
                stmt = stmt.where(SimilarityDocument.concept_a == concept_a)
            try:
                with self._Session() as session:
                    page = [(row.id, _row_to_document(row)) for row in session.scalars(stmt)]
            except SQLAlchemyError as e:
                raise _store_error("read", e)
            if not page:
                return
            for row_id, doc in page:
                yield str(row_id), doc
            last_id = page[-1][0]

    # Schema

    def declare_schema(self, relation: str, doc_type: str, field_specs: Mapping[str, str]) -> None:
        try:
            with self._Session.begin() as session:
                session.merge(DeclaredSchema(relation=relation, doc_type=doc_type, fields=dict(field_specs)))
        except SQLAlchemyError as e:
            raise _store_error("schema declaration", e)
        self.logger.debug("Schema declared", relation=relation, doc_type=doc_type)

    def declared_schema(self, relation: str, doc_type: str) -> Optional[Dict[str, str]]:
        with self._Session() as session:
            schema = session.get(DeclaredSchema, (relation, doc_type))
            return dict(schema.fields) if schema is not None else None

    def delete_relation(self, relation: str, doc_type: str) -> None:
        try:
            with self._Session.begin() as session:
                result = session.execute(
                    delete(SimilarityDocument)
                    .where(SimilarityDocument.relation == relation)
                    .where(SimilarityDocument.doc_type == doc_type)
                )
                session.execute(
                    delete(DeclaredSchema)
                    .where(DeclaredSchema.relation == relation)
                    .where(DeclaredSchema.doc_type == doc_type)
                )
        except SQLAlchemyError as e:
            raise _store_error("delete", e)
        self.logger.info("Deleted prior output", relation=relation, doc_type=doc_type, rows=result.rowcount)

    def make_visible(self, relation: str) -> None:
        self.logger.debug("Visibility barrier reached", relation=relation)

    # Writes

    def write_batch(self, ops: List[WriteOp]) -> None:
        inserts = []
        updates = []
        for op in ops:
            values = _row_values(op.doc)
            if op.action == INSERT:
                values.setdefault("similarities", {})
                inserts.append({"relation": op.relation, "doc_type": op.doc_type, **values})
            else:
                try:
                    row_id = int(op.doc_id)
                except ValueError:
                    raise StoreError(f"Invalid document id: {op.doc_id}")
                updates.append((row_id, op.relation, op.doc_type, values))

        try:
            with self._Session.begin() as session:
                if inserts:
                    session.execute(insert(SimilarityDocument), inserts)
                for row_id, relation, doc_type, values in updates:
                    session.execute(
                        update(SimilarityDocument)
                        .where(SimilarityDocument.id == row_id)
                        .where(SimilarityDocument.relation == relation)
                        .where(SimilarityDocument.doc_type == doc_type)
                        .values(**values)
                    )
        except SQLAlchemyError as e:
            raise _store_error("bulk write", e)

    def load_records(self, relation: str, record_type: str, docs: Iterable[Mapping[str, Any]]) -> int:
        """Insert raw metadata records into the catalog. Returns the count."""
        rows = [{"relation": relation, "record_type": record_type, "payload": dict(doc)} for doc in docs]
        if not rows:
            return 0
        try:
            with self._Session.begin() as session:
                session.execute(insert(CatalogRecord), rows)
        except SQLAlchemyError as e:
            raise _store_error("load", e)
        return len(rows)

    def clear_records(self, relation: str, record_type: str) -> int:
        try:
            with self._Session.begin() as session:
                result = session.execute(
                    delete(CatalogRecord)
                    .where(CatalogRecord.relation == relation)
                    .where(CatalogRecord.record_type == record_type)
                )
        except SQLAlchemyError as e:
            raise _store_error("delete", e)
        return result.rowcount
