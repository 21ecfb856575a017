from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterator, Sequence, Tuple, TypeVar

from playwright.async_api import Page

from mirtargetlink import page_selectors
from mirtargetlink.json_logger import JsonLogger, log_event
from mirtargetlink.models import InteractionRecord, NodeAnnotationRecord

DEFAULT_LIMIT = 10

# Raw cell text only; normalisation happens in Python. The "no data" notice
# row is not a data row.
ROWS_SCRIPT = """
({ selector, emptyCell, limit }) => {
  const rows = Array.from(document.querySelectorAll(selector)).filter(
    (tr) => !tr.querySelector(emptyCell)
  );
  return {
    total: rows.length,
    rows: rows.slice(0, limit).map((tr) =>
      Array.from(tr.querySelectorAll('td')).map((td) => td.textContent || '')
    ),
  };
}
"""

R = TypeVar("R")


@dataclass(frozen=True)
class RowShape(Generic[R]):
    name: str
    headers: Tuple[str, ...]
    factory: Callable[..., R]

    @property
    def width(self) -> int:
        return len(self.headers)


INTERACTION_SHAPE: RowShape[InteractionRecord] = RowShape(
    name="interactions",
    headers=("miRNA", "Target", "Support", "Source", "Experiments", "Reference"),
    factory=InteractionRecord,
)
NODE_SHAPE: RowShape[NodeAnnotationRecord] = RowShape(
    name="nodes",
    headers=("Source", "CategorySet", "Category", "NodeType", "CoveredEntities"),
    factory=NodeAnnotationRecord,
)


@dataclass(frozen=True)
class TableExtract(Generic[R]):
    """Records read from one table, capped at the sampling limit."""

    table: str
    records: Tuple[R, ...]
    total_rows: int

    @property
    def empty(self) -> bool:
        return self.total_rows == 0

    def __iter__(self) -> Iterator[R]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


def clean_cell(text: Any) -> str:
    if not text:
        return ""
    return " ".join(str(text).split())


def build_record(cells: Sequence[Any], shape: RowShape[R]) -> R:
    values = [clean_cell(cells[idx]) if idx < len(cells) else "" for idx in range(shape.width)]
    return shape.factory(*values)


async def extract_rows(
    page: Page,
    table_selector: str,
    shape: RowShape[R],
    limit: int = DEFAULT_LIMIT,
    *,
    logger: JsonLogger,
) -> TableExtract[R]:
    if limit < 1:
        raise ValueError("limit must be positive")
    raw = await page.evaluate(
        ROWS_SCRIPT,
        {
            "selector": page_selectors.table_rows(table_selector),
            "emptyCell": page_selectors.EMPTY_TABLE_CELL,
            "limit": limit,
        },
    )
    raw = raw or {}
    total = int(raw.get("total") or 0)
    rows = list(raw.get("rows") or [])[:limit]
    extract = TableExtract(
        table=table_selector,
        records=tuple(build_record(cells or [], shape) for cells in rows),
        total_rows=total,
    )

    if extract.empty:
        log_event(
            logger=logger,
            phase="extract",
            status="warn",
            message="ExtractionEmpty: table has no rows (no data available for this mode)",
            table=table_selector,
            shape=shape.name,
        )
    else:
        log_event(
            logger=logger,
            phase="extract",
            message="Table rows extracted",
            table=table_selector,
            shape=shape.name,
            total_rows=total,
            extracted=len(extract),
        )
    return extract
