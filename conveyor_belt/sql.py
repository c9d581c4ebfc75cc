from collections.abc import Iterable, Mapping, Sequence
import re
from typing import Any, NamedTuple

from sqlalchemy import literal
from sqlalchemy.engine import Dialect
from sqlalchemy.exc import CompileError
from sqlalchemy.sql import ClauseElement


_PLACEHOLDERS = {
    "qmark": re.compile(r"\?"),
    "format": re.compile(r"%s"),
    "numeric": re.compile(r":\d+"),
    "named": re.compile(r"(?<!:):(\w+)"),
    "pyformat": re.compile(r"%\((\w+)\)s"),
    "numeric_dollar": re.compile(r"\$\d+"),
}


class QueryText(NamedTuple):
    sql: str
    parameters: list[Any]
    paramstyle: str = "qmark"


def compile_query(statement: ClauseElement, dialect: Dialect) -> QueryText:
    compiled = statement.compile(dialect=dialect, compile_kwargs={"render_postcompile": True})
    params = compiled.params
    if compiled.positiontup is not None:
        ordered = [params[name] for name in compiled.positiontup]
    else:
        pattern = _PLACEHOLDERS.get(dialect.paramstyle, _PLACEHOLDERS["named"])
        ordered = [params[match.group(1)] for match in pattern.finditer(compiled.string)]
    return QueryText(compiled.string, ordered, dialect.paramstyle)


def flatten(values: Iterable[Any]) -> list[Any]:
    flat: list[Any] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            flat.extend(flatten(value))
        else:
            flat.append(value)
    return flat


def quote_literal(value: Any, dialect: Dialect) -> str:
    if value is None:
        return "NULL"
    try:
        return str(literal(value).compile(dialect=dialect, compile_kwargs={"literal_binds": True}))
    except (CompileError, NotImplementedError):
        text = str(value).replace("'", "''")
        return f"'{text}'"


def render_query(
    sql: str,
    parameters: Sequence[Any] | Mapping[str, Any] | None,
    dialect: Dialect,
    paramstyle: str | None = None,
) -> str:
    """Substitute bound parameters into a statement for display."""
    if not parameters:
        return sql

    style = paramstyle or dialect.paramstyle
    pattern = _PLACEHOLDERS.get(style, _PLACEHOLDERS["qmark"])

    if isinstance(parameters, Mapping):
        def named(match: re.Match) -> str:
            key = match.group(1) if match.groups() else match.group(0)
            if key not in parameters:
                return match.group(0)
            return quote_literal(parameters[key], dialect)

        return pattern.sub(named, sql)

    remaining = flatten(parameters)

    def positional(match: re.Match) -> str:
        if not remaining:
            return match.group(0)
        return quote_literal(remaining.pop(0), dialect)

    return pattern.sub(positional, sql)
