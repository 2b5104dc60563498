"""
Search, filter, date range, sorting and pagination for list endpoints.

``ApiFeatures`` collects predicates, a sort spec and a page window without
touching the database; ``find()`` runs the paginated fetch and ``count()``
runs the same predicates without pagination, so totals are never affected by
the page being served.
"""
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional

from fastapi import Query
from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection

RESERVED_PARAMS = ("page", "rowsPerPage", "sort", "sortBy", "search", "startDate", "endDate")
DEFAULT_PAGE = 1
DEFAULT_ROWS_PER_PAGE = 10


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _to_int(value: Any, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed or default


class ApiFeatures:
    def __init__(
        self,
        collection: Collection,
        base_filter: Optional[Dict[str, Any]],
        query_params: Dict[str, Any],
        projection: Optional[Dict[str, int]] = None,
    ):
        self.collection = collection
        self.query_params = dict(query_params)
        self.projection = projection
        self.predicates: List[Dict[str, Any]] = [base_filter] if base_filter else []
        self.sort_spec: List[tuple] = []
        self.skip = 0
        self.limit = 0

    def search(self, fields: Iterable[str] = ()) -> "ApiFeatures":
        term = self.query_params.get("search")
        fields = list(fields)
        if term and fields:
            pattern = re.escape(str(term))
            self.predicates.append(
                {"$or": [{field: {"$regex": pattern, "$options": "i"}} for field in fields]}
            )
        return self

    def filter(self, exclude: Iterable[str] = ()) -> "ApiFeatures":
        """Equality constraint for every non-reserved parameter with a truthy value.

        Unknown field names simply match nothing.
        """
        skipped = set(RESERVED_PARAMS) | set(exclude)
        for key, value in self.query_params.items():
            if key in skipped or not value:
                continue
            self.predicates.append({key: value})
        return self

    def date_range(self, field: str = "createdAt") -> "ApiFeatures":
        start = self.query_params.get("startDate")
        end = self.query_params.get("endDate")
        if start or end:
            bounds = {}
            if start:
                bounds["$gte"] = _to_datetime(start)
            if end:
                bounds["$lte"] = _to_datetime(end)
            self.predicates.append({field: bounds})
        return self

    def sort(self) -> "ApiFeatures":
        sort_by = self.query_params.get("sortBy")
        if sort_by:
            direction = ASCENDING if self.query_params.get("sort") == "asc" else DESCENDING
            self.sort_spec = [(sort_by, direction)]
        else:
            self.sort_spec = [("createdAt", DESCENDING)]
        return self

    def paginate(self) -> Dict[str, int]:
        page = _to_int(self.query_params.get("page"), DEFAULT_PAGE)
        rows_per_page = _to_int(self.query_params.get("rowsPerPage"), DEFAULT_ROWS_PER_PAGE)
        self.skip = (page - 1) * rows_per_page
        self.limit = rows_per_page
        return {"page": page, "rowsPerPage": rows_per_page}

    @property
    def filter_doc(self) -> Dict[str, Any]:
        if not self.predicates:
            return {}
        if len(self.predicates) == 1:
            return self.predicates[0]
        return {"$and": list(self.predicates)}

    def find(self) -> List[Dict[str, Any]]:
        cursor = self.collection.find(self.filter_doc, self.projection)
        if self.sort_spec:
            cursor = cursor.sort(self.sort_spec)
        if self.skip:
            cursor = cursor.skip(self.skip)
        if self.limit:
            cursor = cursor.limit(self.limit)
        return list(cursor)

    def count(self) -> int:
        return self.collection.count_documents(self.filter_doc)

    @staticmethod
    def get_pagination_meta(page: int, rows_per_page: int, total: int) -> Dict[str, int]:
        return {
            "page": int(page),
            "rowsPerPage": int(rows_per_page),
            "total": total,
            "totalPages": math.ceil(total / rows_per_page),
        }


def list_params(
    page: int = Query(DEFAULT_PAGE, ge=1),
    rowsPerPage: int = Query(DEFAULT_ROWS_PER_PAGE, ge=1, le=100),
    search: Optional[str] = None,
    status: Optional[str] = None,
    sort: Literal["asc", "desc"] = "desc",
    sortBy: str = "createdAt",
    category: Optional[str] = None,
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    customer: Optional[str] = None,
    user: Optional[str] = None,
    name: Optional[str] = None,
) -> Dict[str, Any]:
    """Validated list query; keys not declared here never reach the composer."""
    params = {
        "page": page,
        "rowsPerPage": rowsPerPage,
        "search": search,
        "status": status,
        "sort": sort,
        "sortBy": sortBy,
        "category": category,
        "startDate": startDate,
        "endDate": endDate,
        "customer": customer,
        "user": user,
        "name": name,
    }
    return {k: v for k, v in params.items() if v is not None}
