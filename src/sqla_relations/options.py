from __future__ import annotations

import sys
from collections.abc import Sequence
from typing import TYPE_CHECKING, Literal, Union


if sys.version_info >= (3, 11):
    from typing import TypedDict
else:
    from typing_extensions import TypedDict

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection


Column = Union[str, tuple[str, str]]


class FetchOptions(TypedDict, total=False):
    """Keyword options accepted by fetch, save, destroy, load and pivot calls.

    Keys:
        transacting: Connection of an open transaction. Every statement issued
            by the call (including nested eager loads and pivot rows) runs on it.
        with_related: Relation path, or paths, to eager load after a fetch.
        require: Raise ``EmptyResponse`` when a fetch returns no rows.
        columns: Columns to select instead of ``*``.
        partial: On update, send only the attributes passed to ``save``.
        method: Force ``"insert"`` or ``"update"`` on save.
        parse: Run ``Entity.parse`` on constructor input.
    """

    transacting: AsyncConnection
    with_related: str | Sequence[str]
    require: bool
    columns: Sequence[Column]
    partial: bool
    method: Literal["insert", "update"]
    parse: bool
