"""Shared test fixtures.

``InMemoryEs`` understands the small slice of the Elasticsearch query DSL the
service emits (bool/term/terms/range, sorting, terms aggregations,
create/update/update_by_query) so store and engine tests can exercise real
round trips without a cluster.
"""

import copy
import itertools
from datetime import datetime, timedelta, timezone

import pytest
from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import ConflictError


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_conflict() -> ConflictError:
    meta = ApiResponseMeta(
        status=409,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    return ConflictError("version_conflict_engine_exception", meta, {})


def _values(doc: dict, path: str) -> list:
    current = [doc]
    for part in path.split("."):
        nxt = []
        for value in current:
            if isinstance(value, dict) and part in value:
                child = value[part]
                nxt.extend(child if isinstance(child, list) else [child])
        current = nxt
    return current


def _comparable(value):
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return value


def _matches(doc: dict, query: dict | None) -> bool:
    if not query:
        return True
    (kind, body), = query.items()
    if kind == "match_all":
        return True
    if kind == "bool":
        filters = body.get("filter", []) + _as_list(body.get("must"))
        if not all(_matches(doc, q) for q in filters):
            return False
        if any(_matches(doc, q) for q in body.get("must_not", [])):
            return False
        should = body.get("should", [])
        if should:
            needed = body.get("minimum_should_match", 1)
            if sum(1 for q in should if _matches(doc, q)) < needed:
                return False
        return True
    if kind == "term":
        (field, expected), = body.items()
        return expected in _values(doc, field)
    if kind == "terms":
        (field, expected), = body.items()
        return any(v in expected for v in _values(doc, field))
    if kind == "range":
        (field, bounds), = body.items()
        values = [_comparable(v) for v in _values(doc, field)]
        for value in values:
            ok = True
            if "gte" in bounds and not value >= _comparable(bounds["gte"]):
                ok = False
            if "gt" in bounds and not value > _comparable(bounds["gt"]):
                ok = False
            if "lte" in bounds and not value <= _comparable(bounds["lte"]):
                ok = False
            if "lt" in bounds and not value < _comparable(bounds["lt"]):
                ok = False
            if ok:
                return True
        return False
    raise NotImplementedError(f"query clause {kind!r}")


def _as_list(value) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _sort(docs: list[tuple[str, dict]], sort) -> list[tuple[str, dict]]:
    for clause in reversed(_as_list(sort)):
        (field, order), = clause.items()
        if isinstance(order, dict):
            order = order.get("order", "asc")
        docs = sorted(
            docs,
            key=lambda item: _comparable((_values(item[1], field) or [None])[0]) or 0,
            reverse=order == "desc",
        )
    return docs


class _Indices:
    def __init__(self, es: "InMemoryEs"):
        self._es = es

    async def refresh(self, index=None, **kwargs):
        self._es.calls.append(("refresh", index))
        return {}

    async def exists(self, index=None, **kwargs):
        return index in self._es.docs

    async def create(self, index=None, mappings=None, **kwargs):
        self._es.docs.setdefault(index, {})
        self._es.mappings[index] = mappings
        return {"acknowledged": True}


class InMemoryEs:
    """A dict-backed stand-in for ``AsyncElasticsearch``."""

    def __init__(self):
        self.docs: dict[str, dict[str, dict]] = {}
        self.mappings: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.failing_indices: set[str] = set()
        self.failing_ids: set[str] = set()
        self.indices = _Indices(self)
        self._ids = itertools.count(1)

    def _check(self, index):
        if index in self.failing_indices:
            raise RuntimeError(f"index {index} unavailable")

    def add(self, index: str, document: dict, id: str | None = None) -> str:
        doc_id = id or str(next(self._ids))
        self.docs.setdefault(index, {})[doc_id] = copy.deepcopy(document)
        return doc_id

    def all(self, index: str) -> list[dict]:
        return [copy.deepcopy(d) for d in self.docs.get(index, {}).values()]

    async def ping(self):
        return True

    async def search(self, *, index=None, query=None, size=10, sort=None, aggs=None, _source=None, **kwargs):
        self.calls.append(("search", index, query))
        self._check(index)
        matched = [
            (doc_id, doc)
            for doc_id, doc in self.docs.get(index, {}).items()
            if _matches(doc, query)
        ]
        matched = _sort(matched, sort)
        body = {
            "hits": {
                "hits": [
                    {"_id": doc_id, "_source": copy.deepcopy(doc)}
                    for doc_id, doc in matched[:size]
                ]
            }
        }
        if aggs:
            body["aggregations"] = {
                name: self._terms_agg(matched, agg["terms"]) for name, agg in aggs.items()
            }
        return body

    @staticmethod
    def _terms_agg(matched, terms) -> dict:
        counts: dict = {}
        for _, doc in matched:
            for value in set(_values(doc, terms["field"])):
                counts[value] = counts.get(value, 0) + 1
        for excluded in terms.get("exclude", []):
            counts.pop(excluded, None)
        ordered = sorted(counts.items(), key=lambda kv: (-kv[1], str(kv[0])))
        return {
            "buckets": [
                {"key": key, "doc_count": count}
                for key, count in ordered[: terms.get("size", 10)]
            ]
        }

    async def index(self, *, index=None, document=None, id=None, **kwargs):
        self.calls.append(("index", index, id))
        self._check(index)
        doc_id = self.add(index, document, id=id)
        return {"_id": doc_id, "result": "created"}

    async def create(self, *, index=None, id=None, document=None, **kwargs):
        self.calls.append(("create", index, id))
        self._check(index)
        if id in self.failing_ids:
            raise RuntimeError(f"write of {id} rejected")
        if id in self.docs.get(index, {}):
            raise make_conflict()
        self.add(index, document, id=id)
        return {"_id": id, "result": "created"}

    async def update(self, *, index=None, id=None, doc=None, **kwargs):
        self.calls.append(("update", index, id))
        self._check(index)
        self.docs[index][id].update(copy.deepcopy(doc))
        return {"_id": id, "result": "updated"}

    async def update_by_query(self, *, index=None, query=None, script=None, **kwargs):
        self.calls.append(("update_by_query", index, query))
        self._check(index)
        params = script.get("params", {})
        assignments = []
        for statement in script["source"].split(";"):
            if not statement.strip():
                continue
            target, value = (part.strip() for part in statement.split("="))
            field = target.removeprefix("ctx._source.")
            if value in ("true", "false"):
                resolved = value == "true"
            else:
                resolved = params[value.removeprefix("params.")]
            assignments.append((field, resolved))

        updated = 0
        for doc in self.docs.get(index, {}).values():
            if _matches(doc, query):
                for field, resolved in assignments:
                    doc[field] = resolved
                updated += 1
        return {"updated": updated}


def content_doc(
    content_id: str,
    *,
    creator_id: str = "creator-x",
    creator_name: str | None = None,
    topics: list[tuple[str, str]] = (),
    likes: int = 0,
    views: int = 0,
    comments: int = 0,
    shares: int = 0,
    age: timedelta = timedelta(days=1),
    now: datetime = NOW,
    published: bool = True,
) -> dict:
    return {
        "content_id": content_id,
        "creator_id": creator_id,
        "creator_name": creator_name,
        "topics": [{"id": tid, "name": name} for tid, name in topics],
        "like_count": likes,
        "view_count": views,
        "comment_count": comments,
        "share_count": shares,
        "created_at": (now - age).isoformat(),
        "is_published": published,
    }


@pytest.fixture
def memory_es():
    return InMemoryEs()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_content():
    return content_doc
