"""
View Pipelines: read-only, multi-stage query composition.

A `ViewPipeline` describes a denormalized view as an ordered list of stages
over one source table, in the spirit of a document-store aggregation
pipeline, and compiles it to a single SQLAlchemy Core `SELECT`:

- `match(*criteria)`          -> WHERE
- `join(model, onclause)`     -> INNER JOIN (rows without a partner drop out)
- `lookup_count(name, ...)`   -> correlated `SELECT count(*)` scalar subquery
- `lookup_flag(name, ...)`    -> correlated `EXISTS (...)`, returned as bool
- `lookup_one(name, ...)`     -> LEFT OUTER JOIN on an alias; the selected
                                 fields are nested under `name`, and a lookup
                                 that matched nothing collapses to None
- `add_field(name, expr)`     -> arbitrary computed column
- `sort(*columns)`            -> ORDER BY
- `project(*fields)`          -> whitelist of output fields

Pipelines never mutate data. Because they compile to portable Core
expressions, the same view definition runs on SQLite and PostgreSQL.

Example::

    profile = await (
        ViewPipeline(User)
        .match(User.username == "alice")
        .lookup_count("subscribers_count", Subscription,
                      Subscription.channel_id == User.id)
        .project("username", "subscribers_count")
        .first(session)
    )
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import exists, false, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from sqlalchemy.sql import Select

from core.logging_config import get_logger

logger = get_logger(__name__)

NESTED_SEPARATOR = "__"


class ViewPipeline:
    """Ordered join/filter/project stages compiled to one SELECT"""

    def __init__(self, source):
        self.source = source
        self.stages: List[Tuple[str, str]] = []
        self._criteria: List[Any] = []
        self._joins: List[Tuple[Any, Any, bool]] = []
        self._fields: Dict[str, Any] = {}
        self._nested: Dict[str, List[str]] = {}
        self._flags: set = set()
        self._order: List[Any] = []
        self._projection: Optional[List[Any]] = None

    # Stages -----------------------------------------------------------------

    def match(self, *criteria) -> "ViewPipeline":
        self._criteria.extend(criteria)
        self.stages.append(("match", str(len(criteria))))
        return self

    def join(self, model, onclause) -> "ViewPipeline":
        self._joins.append((model, onclause, False))
        self.stages.append(("join", getattr(model, "__name__", str(model))))
        return self

    def lookup_count(
        self, name: str, model, *criteria, through: Optional[Tuple[Any, Any]] = None
    ) -> "ViewPipeline":
        """Count rows of `model` related to the current row.

        `through=(target, onclause)` inner-joins a second table inside the
        count, so only references whose target exists are counted.
        """
        query = select(func.count()).select_from(model)
        if through is not None:
            target, onclause = through
            query = query.join(target, onclause)
        self._fields[name] = query.where(*criteria).scalar_subquery()
        self.stages.append(("lookup_count", name))
        return self

    def lookup_flag(self, name: str, model, *criteria, when: bool = True) -> "ViewPipeline":
        """True when at least one row of `model` satisfies `criteria`.

        With `when=False` the flag is the constant false and no subquery is
        emitted (e.g. membership of an anonymous viewer).
        """
        if when:
            self._fields[name] = exists().select_from(model).where(*criteria)
        else:
            self._fields[name] = false()
        self._flags.add(name)
        self.stages.append(("lookup_flag", name))
        return self

    def lookup_one(
        self, name: str, model, local_key, fields: Sequence[str], foreign_key: str = "id"
    ) -> "ViewPipeline":
        """Inline at most one related record as a nested object"""
        target = aliased(model, name=name)
        self._joins.append((target, local_key == getattr(target, foreign_key), True))
        self._nested[name] = list(fields)
        for field in fields:
            self._fields[f"{name}{NESTED_SEPARATOR}{field}"] = getattr(target, field)
        self.stages.append(("lookup_one", name))
        return self

    def add_field(self, name: str, expression) -> "ViewPipeline":
        self._fields[name] = expression
        self.stages.append(("add_field", name))
        return self

    def sort(self, *columns) -> "ViewPipeline":
        self._order.extend(columns)
        self.stages.append(("sort", str(len(columns))))
        return self

    def project(self, *fields) -> "ViewPipeline":
        """Restrict the output to `fields`.

        Entries are either column attributes (output under the attribute
        name) or names of source columns, computed fields or lookups.
        """
        self._projection = list(fields)
        self.stages.append(("project", str(len(fields))))
        return self

    # Compilation --------------------------------------------------------------

    def _resolve(self, field) -> List[Any]:
        if not isinstance(field, str):
            return [field.label(field.key)]

        if field in self._nested:
            return [
                self._fields[f"{field}{NESTED_SEPARATOR}{sub}"].label(
                    f"{field}{NESTED_SEPARATOR}{sub}"
                )
                for sub in self._nested[field]
            ]
        if field in self._fields:
            return [self._fields[field].label(field)]
        return [getattr(self.source, field).label(field)]

    def _default_projection(self) -> List[Any]:
        fields: List[Any] = [column.name for column in self.source.__table__.columns]
        for name in self._fields:
            parent = name.split(NESTED_SEPARATOR, 1)[0]
            if parent not in fields:
                fields.append(parent)
        return fields

    def build(self) -> Select:
        columns: List[Any] = []
        for field in self._projection or self._default_projection():
            columns.extend(self._resolve(field))

        statement = select(*columns).select_from(self.source)
        for target, onclause, outer in self._joins:
            statement = statement.join(target, onclause, isouter=outer)
        if self._criteria:
            statement = statement.where(*self._criteria)
        if self._order:
            statement = statement.order_by(*self._order)
        return statement

    def _reshape(self, row) -> Dict[str, Any]:
        document: Dict[str, Any] = {}
        for key, value in row.items():
            if NESTED_SEPARATOR in key:
                parent, child = key.split(NESTED_SEPARATOR, 1)
                document.setdefault(parent, {})[child] = value
            elif key in self._flags:
                document[key] = bool(value)
            else:
                document[key] = value

        for name in self._nested:
            nested = document.get(name)
            if nested is not None and all(value is None for value in nested.values()):
                document[name] = None
        return document

    # Execution ----------------------------------------------------------------

    async def all(self, session: AsyncSession) -> List[Dict[str, Any]]:
        logger.debug(
            f"Running view pipeline on {self.source.__name__}",
            extra={"stages": [kind for kind, _ in self.stages]},
        )
        result = await session.execute(self.build())
        return [self._reshape(row) for row in result.mappings().all()]

    async def first(self, session: AsyncSession) -> Optional[Dict[str, Any]]:
        documents = await self.all(session)
        return documents[0] if documents else None
