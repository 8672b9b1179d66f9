import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import and_, case, func, null
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ficai_signals.errors import BatchFailed, InternalError
from ficai_signals.models import Signal

log = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 1000

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


@dataclass
class TagSignals:
    """Aggregated signals for one tag on one url."""
    tag: str
    signals_for: int
    signals_against: int
    my_signal: Optional[bool] = None


def set_signal(db: Session, account_id: int, url: str, tag: str, value: bool) -> None:
    """
    Record an account's vote for a tag on a url, replacing any previous one.
    """
    dialect = db.get_bind().dialect.name
    try:
        insert = _UPSERTS[dialect]
    except KeyError:
        raise InternalError(f"no upsert support for {dialect}")

    stmt = insert(Signal).values(account_id=account_id, url=url, tag=tag, signal=value)
    stmt = stmt.on_conflict_do_update(
        index_elements=[Signal.account_id, Signal.url, Signal.tag],
        set_={"signal": stmt.excluded.signal},
    )
    db.execute(stmt)
    db.commit()


def erase_signal(db: Session, account_id: int, url: str, tag: str) -> None:
    """
    Remove an account's vote. Erasing a vote that does not exist is fine.
    """
    db.query(Signal).filter(
        Signal.account_id == account_id,
        Signal.url == url,
        Signal.tag == tag,
    ).delete()
    db.commit()


def aggregate_signals(db: Session, url: str, account_id: Optional[int] = None) -> List[TagSignals]:
    """
    Summarise every tag ever used on url.

    signals_for and signals_against count accounts voting each way. When
    account_id is given, my_signal carries that account's own vote, or
    None if it never voted on the tag. Anonymous callers always get None.
    """
    if account_id is None:
        mine = null()
    else:
        mine = case(
            (and_(Signal.account_id == account_id, Signal.signal.is_(True)), 1),
            (Signal.account_id == account_id, 0),
        )

    rows = db.query(
        Signal.tag,
        func.sum(case((Signal.signal.is_(True), 1), else_=0)).label("signals_for"),
        func.sum(case((Signal.signal.is_(True), 0), else_=1)).label("signals_against"),
        func.max(mine).label("my_signal"),
    ).filter(
        Signal.url == url
    ).group_by(
        Signal.tag
    ).order_by(
        Signal.tag
    ).all()

    return [
        TagSignals(
            tag=row.tag,
            signals_for=int(row.signals_for),
            signals_against=int(row.signals_against),
            my_signal=None if row.my_signal is None else bool(row.my_signal),
        )
        for row in rows
    ]


def patch_signals(
    db: Session,
    account_id: int,
    url: str,
    add: Sequence[str] = (),
    rm: Sequence[str] = (),
    erase: Sequence[str] = (),
) -> None:
    """
    Apply a batch of changes for one account on one url.

    Tags in add get a vote for, tags in rm a vote against, tags in erase
    lose any vote. Lists run in that order, each in the order given, and
    each change is committed on its own. The first failure stops the
    batch; earlier changes stay applied.
    """
    ops = (
        [("add", tag) for tag in add]
        + [("rm", tag) for tag in rm]
        + [("erase", tag) for tag in erase]
    )
    for op, tag in ops:
        log.debug("account %s: %s %r on %s", account_id, op, tag, url)
        try:
            if op == "erase":
                erase_signal(db, account_id, url, tag)
            else:
                set_signal(db, account_id, url, tag, op == "add")
        except SQLAlchemyError as e:
            db.rollback()
            raise BatchFailed(op, tag) from e


def known_urls(db: Session) -> List[str]:
    """Every url that has at least one signal."""
    rows = db.query(Signal.url).distinct().order_by(Signal.url).all()
    return [row.url for row in rows]


def edit_distance(a: bytes, b: bytes) -> int:
    """Levenshtein distance between two byte strings."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def tag_distance(tag: str, query: Optional[str]) -> float:
    """
    Edit distance scaled by the longer string's length in bytes, so 0.0 is
    an exact match and 1.0 shares nothing. With no query every tag is 1.0.

    This is a weak similarity measure; keep callers depending only on
    "smaller is closer" so it can be swapped out.
    """
    if not query:
        return 1.0
    a, b = tag.encode("utf-8"), query.encode("utf-8")
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return edit_distance(a, b) / longest


def search_tags(db: Session, query: Optional[str] = None, limit: int = DEFAULT_SEARCH_LIMIT) -> List[str]:
    """
    Rank every tag ever used, closest to query first.

    Ties on distance go to the most used tag, then alphabetical order.
    """
    rows = db.query(
        Signal.tag,
        func.count().label("uses"),
    ).group_by(
        Signal.tag
    ).all()

    ranked = sorted(rows, key=lambda row: (tag_distance(row.tag, query), -row.uses, row.tag))
    return [row.tag for row in ranked[:limit]]
