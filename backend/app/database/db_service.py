"""
Database Service Layer - collection-style interface over the SQLAlchemy session
"""
from typing import List, Optional, Dict, Any, Union, Tuple
from contextlib import contextmanager
from datetime import datetime
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy import and_, func
import uuid
import logging

from app.database.models import (
    User as UserModel, Expense as ExpenseModel,
    RoleEnum, CurrencyEnum, ExpenseStatusEnum
)
from app.exceptions import IntegrityConflictError, PersistenceError

logger = logging.getLogger(__name__)

# Collection to model mapping
COLLECTION_MODEL_MAP = {
    "users": UserModel,
    "expenses": ExpenseModel,
}

# Enum-typed columns per collection, so callers can pass plain strings
COLLECTION_ENUM_FIELDS = {
    "users": {"role": RoleEnum},
    "expenses": {"currency": CurrencyEnum, "status": ExpenseStatusEnum},
}

AGGREGATE_FUNCTIONS = {
    "sum": func.sum,
    "avg": func.avg,
    "count": func.count,
}

# (field, start, end); either bound may be None
DateRange = Tuple[str, Optional[datetime], Optional[datetime]]


class DatabaseService:
    """Database service for PostgreSQL operations."""

    def __init__(self, session: Session):
        """
        Initialize database service.

        Args:
            session: SQLAlchemy session (required)
        """
        if session is None:
            raise ValueError("Session is required")
        self.session = session

    def _get_model(self, collection: str):
        model_class = COLLECTION_MODEL_MAP.get(collection)
        if not model_class:
            raise ValueError(f"Unknown collection: {collection}")
        return model_class

    @contextmanager
    def _persistence_errors(self, action: str, collection: str):
        try:
            yield
        except IntegrityError as exc:
            logger.warning("Database %s on %s hit a constraint: %s", action, collection, exc.orig)
            self.session.rollback()
            raise IntegrityConflictError(f"Database {action} conflicts with an existing {collection} row") from exc
        except SQLAlchemyError as exc:
            logger.error("Database %s on %s failed: %s", action, collection, exc)
            self.session.rollback()
            raise PersistenceError(f"Database {action} failed for {collection}") from exc

    def _model_to_dict(self, model_instance) -> Dict[str, Any]:
        """Convert SQLAlchemy model instance to dictionary."""
        if model_instance is None:
            return None

        result = {}
        for column in model_instance.__table__.columns:
            value = getattr(model_instance, column.name)
            # Convert datetime to ISO format string
            if isinstance(value, datetime):
                value = value.isoformat()
            # Convert enums to string
            elif hasattr(value, 'value'):
                value = value.value
            result[column.name] = value
        return result

    def _coerce_enums(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Convert enum strings to enum types for enum-typed columns."""
        enum_fields = COLLECTION_ENUM_FIELDS.get(collection, {})
        coerced = dict(data)
        for field, enum_class in enum_fields.items():
            value = coerced.get(field)
            if value is not None and not isinstance(value, enum_class):
                coerced[field] = enum_class(value)
        return coerced

    def _build_query_filters(self, model_class, query: Dict[str, Any]):
        """Build SQLAlchemy filter conditions from query dict."""
        filters = []
        for key, value in query.items():
            if hasattr(model_class, key):
                filters.append(getattr(model_class, key) == value)
        return filters

    def _build_date_filters(self, model_class, date_range: Optional[DateRange]):
        if not date_range:
            return []
        field, start, end = date_range
        column = getattr(model_class, field)
        filters = []
        if start is not None:
            filters.append(column >= start)
        if end is not None:
            filters.append(column <= end)
        return filters

    def _filtered_query(self, collection: str, query: Optional[Dict[str, Any]],
                        date_range: Optional[DateRange] = None, *columns):
        model_class = self._get_model(collection)
        q = self.session.query(*columns) if columns else self.session.query(model_class)

        filters = []
        if query:
            filters.extend(self._build_query_filters(model_class, self._coerce_enums(collection, query)))
        filters.extend(self._build_date_filters(model_class, date_range))
        if filters:
            q = q.filter(and_(*filters))
        return q

    def insert(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a document into the collection."""
        model_class = self._get_model(collection)

        # Add ID if not present
        if 'id' not in document:
            document['id'] = str(uuid.uuid4())

        # Add created_at timestamp only if the model has this field
        if 'created_at' not in document and hasattr(model_class, 'created_at'):
            document['created_at'] = datetime.utcnow()

        with self._persistence_errors("insert", collection):
            instance = model_class(**self._coerce_enums(collection, document))
            self.session.add(instance)
            self.session.flush()

        return self._model_to_dict(instance)

    def find(self, collection: str, query: Optional[Dict[str, Any]] = None,
             date_range: Optional[DateRange] = None,
             order_by: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """Find documents matching the query, optionally within a date range."""
        model_class = self._get_model(collection)

        with self._persistence_errors("read", collection):
            q = self._filtered_query(collection, query, date_range)
            for field in order_by or []:
                q = q.order_by(getattr(model_class, field))
            results = q.all()
        return [self._model_to_dict(r) for r in results]

    def find_one(self, collection: str, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Find the first document matching the query."""
        with self._persistence_errors("read", collection):
            result = self._filtered_query(collection, query).first()
        return self._model_to_dict(result) if result else None

    def update(self, collection: str, document_id_or_query: Union[str, Dict[str, Any]],
               update_data: Dict[str, Any] = None) -> int:
        """Update documents matching the query."""
        if update_data is None:
            raise ValueError("update_data is required")

        model_class = self._get_model(collection)

        # Build query
        if isinstance(document_id_or_query, str):
            query = {"id": document_id_or_query}
        else:
            query = document_id_or_query

        # Add updated_at timestamp
        update_data = self._coerce_enums(collection, update_data)
        if 'updated_at' not in update_data and hasattr(model_class, 'updated_at'):
            update_data['updated_at'] = datetime.utcnow()

        with self._persistence_errors("update", collection):
            q = self._filtered_query(collection, query)
            count = q.update(update_data, synchronize_session=False)
            self.session.flush()
            # Bulk updates bypass the identity map, so reload on next access
            self.session.expire_all()

        return count

    def upsert(self, collection: str, query: Dict[str, Any], update_data: Dict[str, Any]) -> Dict[str, Any]:
        """Update the first document matching the query, or insert query + update_data."""
        existing = self.find_one(collection, query)
        if existing:
            self.update(collection, {"id": existing["id"]}, update_data)
            return self.find_one(collection, {"id": existing["id"]})
        return self.insert(collection, {**query, **update_data})

    def count(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        """Count documents matching the query."""
        return len(self.find(collection, query))

    def aggregate(
        self,
        collection: str,
        aggregates: Dict[str, Tuple[str, Optional[str]]],
        group_by: Optional[str] = None,
        query: Optional[Dict[str, Any]] = None,
        date_range: Optional[DateRange] = None,
        order_by: Optional[str] = None,
        descending: bool = True,
    ) -> List[Dict[str, Any]]:
        """
        Run a grouped aggregation in the database.

        Args:
            collection: Collection name
            aggregates: Output name -> (function, field), e.g. {"total": ("sum", "amount")}.
                        "count" ignores the field and counts rows.
            group_by: Field to group on; None aggregates the whole match into one row
            query: Equality filters
            date_range: (field, start, end) inclusive bounds
            order_by: Output name to sort on; ties fall back to the group key ascending

        Returns:
            One dict per group with "_id" holding the group key
        """
        model_class = self._get_model(collection)

        labelled = {}
        for name, (function, field) in aggregates.items():
            aggregate_func = AGGREGATE_FUNCTIONS.get(function)
            if aggregate_func is None:
                raise ValueError(f"Unknown aggregate function: {function}")
            target = model_class.id if function == "count" else getattr(model_class, field)
            labelled[name] = aggregate_func(target).label(name)

        group_column = getattr(model_class, group_by) if group_by else None
        columns = list(labelled.values())
        if group_column is not None:
            columns.insert(0, group_column.label("_id"))

        with self._persistence_errors("aggregate", collection):
            q = self._filtered_query(collection, query, date_range, *columns)
            if group_column is not None:
                q = q.group_by(group_column)
            if order_by:
                expression = labelled[order_by]
                q = q.order_by(expression.desc() if descending else expression.asc())
            if group_column is not None:
                q = q.order_by(group_column.asc())
            rows = q.all()

        results = []
        for row in rows:
            data = dict(row._mapping)
            if hasattr(data.get("_id"), "value"):
                data["_id"] = data["_id"].value
            results.append(data)
        return results

    def commit(self):
        """Commit the current unit of work, rolling back on failure."""
        with self._persistence_errors("commit", "session"):
            self.session.commit()


def get_db_service(session: Session) -> DatabaseService:
    """
    Get database service instance.

    Args:
        session: SQLAlchemy session (required)

    Returns:
        DatabaseService instance
    """
    return DatabaseService(session)
