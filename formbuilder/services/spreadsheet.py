"""Export form responses to XLSX/CSV and read exported workbooks back.

Layout: one row per response; the first column holds the response date and
each following column one root question (header = question text). Select
answers are written as option text, multiselect answers as option texts
joined with ``", "``.
"""

import csv
import io
import zipfile
from collections.abc import Sequence
from datetime import date, datetime
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from pydantic import ValidationError

from formbuilder.core.config import settings
from formbuilder.models.form import Form
from formbuilder.models.form_response import FormResponse
from formbuilder.schemas.forms import Question, to_epoch_ms
from formbuilder.schemas.responses import QuestionResponse, ResponseImportEntry
from formbuilder.services.forms import load_questions

MULTISELECT_SEPARATOR = ", "
TRUE_VALUES = {"1", "true", "yes", "y", "si", "sí"}
FALSE_VALUES = {"0", "false", "no", "n"}


class SpreadsheetError(Exception):
    """Raised when a workbook cannot be read or does not match the form."""


def root_questions(form: Form) -> list[Question]:
    return [q for q in load_questions(form) if q.is_root]


def header_row(form: Form) -> list[str]:
    return [settings.EXPORT_DATE_HEADER] + [q.text for q in root_questions(form)]


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


def _scalar(value: Any) -> Any:
    """Flatten a stored value that does not fit a single cell."""
    if isinstance(value, list):
        return MULTISELECT_SEPARATOR.join(str(v) for v in value) or None
    if isinstance(value, dict):
        return str(value)
    return value


def display_value(question: Question, value: Any) -> Any:
    """Render one stored answer as a spreadsheet cell value (None = empty).

    Answers stored against an older form version may not match the current
    question type; they are written as plain scalars.
    """
    if value is None or value == "" or value == []:
        return None
    if question.type == "select" and isinstance(value, str):
        return question.option_text(value) or value
    if question.type == "multiselect" and isinstance(value, list):
        texts = [o.text for o in question.options or [] if o.id in value]
        return MULTISELECT_SEPARATOR.join(texts) or None
    return _scalar(value)


def export_rows(form: Form, responses: Sequence[FormResponse]) -> list[list[Any]]:
    roots = root_questions(form)
    rows: list[list[Any]] = []
    for response in responses:
        answers = {r.get("questionId"): r.get("value") for r in response.responses or []}
        row: list[Any] = [response.created_at]
        row.extend(display_value(q, answers.get(q.id)) for q in roots)
        rows.append(row)
    return rows


def to_xlsx(form: Form, responses: Sequence[FormResponse]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = settings.EXPORT_SHEET_TITLE
    ws.append(header_row(form))
    for row in export_rows(form, responses):
        ws.append(row)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def to_csv(form: Form, responses: Sequence[FormResponse]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(header_row(form))
    for row in export_rows(form, responses):
        writer.writerow(
            [cell.isoformat() if isinstance(cell, datetime) else ("" if cell is None else cell) for cell in row]
        )
    return output.getvalue()


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


def _is_empty(cell: Any) -> bool:
    return cell is None or (isinstance(cell, str) and not cell.strip())


def _option_id(question: Question, text: str, row_index: int) -> str:
    for option in question.options or []:
        if option.text.strip() == text:
            return option.id
    raise SpreadsheetError(f"Row {row_index}: '{text}' is not an option of '{question.text}'")


def _option_ids(question: Question, text: str, row_index: int) -> list[str]:
    """Split a multiselect cell back into option ids.

    Option texts may themselves contain commas, so the cell is consumed by
    matching the longest option text first rather than by splitting.
    """
    options = sorted(question.options or [], key=lambda o: len(o.text.strip()), reverse=True)
    option_ids: list[str] = []
    remaining = text.strip()
    while remaining:
        for option in options:
            label = option.text.strip()
            rest = remaining[len(label):].lstrip()
            if label and remaining.startswith(label) and (not rest or rest.startswith(",")):
                option_ids.append(option.id)
                remaining = rest.removeprefix(",").strip()
                break
        else:
            unknown = remaining.split(",")[0].strip()
            raise SpreadsheetError(f"Row {row_index}: '{unknown}' is not an option of '{question.text}'")
    return option_ids


def parse_cell(question: Question, cell: Any, row_index: int) -> Any:
    """Convert a cell back into the stored answer shape for its question type."""
    if _is_empty(cell):
        return None

    q_type = question.type
    if q_type == "select":
        return _option_id(question, str(cell).strip(), row_index)
    if q_type == "multiselect":
        return _option_ids(question, str(cell), row_index)
    if q_type == "number":
        if isinstance(cell, bool):
            raise SpreadsheetError(f"Row {row_index}: '{question.text}' must be a number")
        if isinstance(cell, (int, float)):
            return cell
        text = str(cell).strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            raise SpreadsheetError(f"Row {row_index}: '{question.text}' must be a number") from None
    if q_type == "boolean":
        if isinstance(cell, bool):
            return cell
        text = str(cell).strip().lower()
        if text in TRUE_VALUES:
            return True
        if text in FALSE_VALUES:
            return False
        raise SpreadsheetError(f"Row {row_index}: '{question.text}' must be yes or no")
    if q_type == "date":
        if isinstance(cell, (datetime, date)):
            return cell.strftime("%Y-%m-%d")
        text = str(cell).strip()
        try:
            date.fromisoformat(text[:10])
        except ValueError:
            raise SpreadsheetError(f"Row {row_index}: '{text}' is not a valid date for '{question.text}'") from None
        return text
    return str(cell).strip() if isinstance(cell, str) else str(cell)


def _parse_created_at(cell: Any, row_index: int) -> int | None:
    if _is_empty(cell):
        return None
    if isinstance(cell, datetime):
        return to_epoch_ms(cell)
    try:
        return to_epoch_ms(datetime.fromisoformat(str(cell).strip()))
    except ValueError:
        raise SpreadsheetError(f"Row {row_index}: '{cell}' is not a valid date") from None


def read_xlsx(form: Form, content: bytes) -> list[ResponseImportEntry]:
    """Turn an exported workbook back into import entries for ``form``.

    Only root questions round-trip, since only they are exported. Blank rows
    are skipped; any unreadable cell aborts with ``SpreadsheetError``.
    """
    try:
        wb = load_workbook(io.BytesIO(content), data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise SpreadsheetError("Unable to read the uploaded workbook.") from exc

    rows = list(wb.worksheets[0].iter_rows(values_only=True))
    if not rows:
        raise SpreadsheetError("The workbook is empty.")

    expected = header_row(form)
    header = ["" if c is None else str(c).strip() for c in rows[0]]
    if header[: len(expected)] != expected:
        raise SpreadsheetError("The workbook headers do not match the form.")

    roots = root_questions(form)
    entries: list[ResponseImportEntry] = []
    for row_index, row in enumerate(rows[1:], start=2):
        if all(_is_empty(cell) for cell in row):
            continue
        cells = list(row) + [None] * (len(expected) - len(row))

        responses: list[QuestionResponse] = []
        for question, cell in zip(roots, cells[1:]):
            value = parse_cell(question, cell, row_index)
            if value is not None:
                responses.append(QuestionResponse(question_id=question.id, value=value))
        if not responses:
            raise SpreadsheetError(f"Row {row_index}: no answers found.")

        try:
            entry = ResponseImportEntry(
                form_id=form.id,
                form_version=form.version,
                responses=responses,
                created_at=_parse_created_at(cells[0], row_index),
            )
        except ValidationError as exc:
            raise SpreadsheetError(f"Row {row_index}: {exc.errors()[0]['msg']}") from exc
        entries.append(entry)

    if not entries:
        raise SpreadsheetError("The workbook does not include any responses.")
    return entries
