"""Builders for Airtable ``filterByFormula`` expressions."""
from typing import Iterable


def quote(value: str) -> str:
    """Quote a string literal for a formula."""
    escaped = str(value).replace('\\', '\\\\').replace("'", "\\'")
    return f"'{escaped}'"


def field(name: str) -> str:
    return f"{{{name}}}"


def equals(name: str, value: str) -> str:
    return f"{field(name)}={quote(value)}"


def is_blank(name: str) -> str:
    return f"{field(name)}=BLANK()"


def and_(*clauses: str) -> str:
    return _combine('AND', clauses)


def or_(*clauses: str) -> str:
    return _combine('OR', clauses)


def any_equals(name: str, values: Iterable[str]) -> str:
    """``OR`` of equality clauses, one per distinct value."""
    distinct = list(dict.fromkeys(values))
    return or_(*(equals(name, value) for value in distinct))


def _combine(operator: str, clauses: Iterable[str]) -> str:
    clauses = [clause for clause in clauses if clause]
    if len(clauses) == 1:
        return clauses[0]
    return f"{operator}({', '.join(clauses)})"
