"""Cell value sanitization against formula (CSV) injection.

Spreadsheet applications evaluate a cell whose text starts with ``=``, ``+``,
``-`` or ``@`` as a formula. Every string written to a sheet goes through
``sanitize_cell`` first, which neutralizes such values by prefixing a literal
apostrophe. Text that already starts with apostrophes followed by a trigger
gets one more, so ``unsanitize_cell`` can strip exactly one on read and every
value round-trips.
"""

from typing import Any, Iterable, List, Optional

FORMULA_PREFIXES = ("=", "+", "-", "@")
ESCAPE_PREFIX = "'"


def _escaped_form(text: str) -> bool:
    """True if ``text`` is a trigger character after zero or more apostrophes."""
    return text.lstrip(ESCAPE_PREFIX).startswith(FORMULA_PREFIXES)


def sanitize_cell(value: Optional[Any]) -> str:
    """Return a string that is safe to write into a spreadsheet cell.

    Args:
        value: Cell value; non-strings are converted with ``str()``

    Returns:
        ``""`` for None or empty input, the value prefixed with an apostrophe
        if it starts with a formula trigger character (after any leading
        apostrophes), otherwise the value.
    """
    if value is None:
        return ""
    text = value if isinstance(value, str) else str(value)
    if _escaped_form(text):
        return ESCAPE_PREFIX + text
    return text


def sanitize_list(values: Iterable[Optional[Any]], separator: str = ",") -> str:
    """Sanitize each element, then join. Each tag is escaped on its own.

    Elements are split on ``separator`` and stripped when read back, so an
    element containing the separator could not round-trip and is rejected.

    Raises:
        ValueError: If an element contains ``separator``
    """
    cells = []
    for value in values:
        cell = sanitize_cell(value)
        if separator in cell:
            raise ValueError(f"List element {cell!r} must not contain {separator!r}")
        cells.append(cell)
    return separator.join(cells)


def unsanitize_cell(value: Optional[str]) -> str:
    """Undo ``sanitize_cell`` for a value read back from a sheet.

    One leading apostrophe is dropped when only apostrophes and then a
    formula trigger follow it. Other text is returned unchanged.
    """
    if not value:
        return ""
    if value.startswith(ESCAPE_PREFIX) and _escaped_form(value[1:]):
        return value[1:]
    return value


def split_list(value: Optional[str], separator: str = ",") -> List[str]:
    """Split a joined cell into trimmed, non-empty, unsanitized parts.

    Surrounding spaces of each part are not preserved.
    """
    if not value:
        return []
    parts = (unsanitize_cell(part.strip()) for part in value.split(separator))
    return [part for part in parts if part]
