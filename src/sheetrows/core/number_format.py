"""Render raw numeric cell values through Excel number format codes.

Only display concerns are handled here: section selection, digit placeholders,
grouping, scaling, percent, scientific notation, literals and date/time tokens.
Fraction formats fall back to the General rendering.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal, localcontext

from openpyxl.styles.numbers import is_date_format, is_timedelta_format
from openpyxl.utils.datetime import WINDOWS_EPOCH, from_excel

from sheetrows.domain.models.cell import CellValueKind

GENERAL = "General"

_MONTHS = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)
_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_DATE_LETTERS = "ymdhs"
_TIME_KINDS = {"minute", "ampm", "elapsed"}
_SYMBOL_KINDS = {
    "0": "digit",
    "#": "digit",
    "?": "digit",
    ".": "point",
    ",": "comma",
    "%": "percent",
    "@": "text",
}


@dataclass(slots=True)
class _Token:
    kind: str
    text: str


def _require_finite(value: float) -> None:
    if not math.isfinite(value):
        raise ValueError(f"cannot display non-finite value {value!r}")


def format_general(value: float) -> str:
    _require_finite(value)
    if value == 0:
        return "0"
    magnitude = abs(value)
    if magnitude >= 1e11 or magnitude < 1e-9:
        mantissa, _, exponent = f"{value:.5E}".partition("E")
        if "." in mantissa:
            mantissa = mantissa.rstrip("0").rstrip(".")
        return f"{mantissa}E{exponent[0]}{exponent[1:].lstrip('0').zfill(2)}"
    if value.is_integer():
        return str(int(value))
    return f"{value:.10g}"


def format_number(value: float, format_code: str | None, *, epoch: datetime = WINDOWS_EPOCH) -> str:
    _require_finite(value)
    if not format_code or format_code.strip().lower() == GENERAL.lower():
        return format_general(value)

    section, explicit_sign = _pick_section(_split_sections(format_code), value)
    tokens = _tokenize(section)
    if not tokens:
        return ""

    if any(tok.kind in ("date", "elapsed", "ampm") for tok in tokens):
        if value < 0:
            return format_general(value)
        return _render_datetime(value, tokens, epoch)

    has_digits = any(tok.kind == "digit" for tok in tokens)
    if has_digits and any(tok.kind == "lit" and "/" in tok.text for tok in tokens):
        return format_general(value)
    if has_digits:
        return _render_number(value, tokens, signed=not explicit_sign)
    if any(tok.kind == "general" for tok in tokens):
        shown = abs(value) if explicit_sign else value
        return "".join(format_general(shown) if tok.kind == "general" else _literal(tok) for tok in tokens)
    if any(tok.kind == "text" for tok in tokens):
        return format_general(value)
    return "".join(_literal(tok) for tok in tokens)


def date_category(format_code: str | None) -> CellValueKind | None:
    """Classify a format code as a date, time-of-day or combined date-time display."""
    if not format_code or not is_date_format(format_code) or is_timedelta_format(format_code):
        return None
    tokens = _tokenize(_split_sections(format_code)[0])
    has_date = any(tok.kind == "date" and tok.text[0] in "ymd" for tok in tokens)
    has_time = any(
        tok.kind in _TIME_KINDS or (tok.kind == "date" and tok.text[0] in "hs") for tok in tokens
    )
    if has_date and has_time:
        return CellValueKind.DATETIME
    if has_date:
        return CellValueKind.DATE
    if has_time:
        return CellValueKind.TIME
    return None


def _split_sections(code: str) -> list[str]:
    sections: list[str] = []
    current: list[str] = []
    quoted = False
    bracketed = False
    escaped = False
    for ch in code:
        if escaped:
            escaped = False
        elif ch == "\\" and not quoted:
            escaped = True
        elif ch == '"':
            quoted = not quoted
        elif ch == "[" and not quoted:
            bracketed = True
        elif ch == "]" and not quoted:
            bracketed = False
        elif ch == ";" and not quoted and not bracketed:
            sections.append("".join(current))
            current = []
            continue
        current.append(ch)
    sections.append("".join(current))
    return sections


def _pick_section(sections: list[str], value: float) -> tuple[str, bool]:
    if value < 0 and len(sections) >= 2:
        return sections[1], True
    if value == 0 and len(sections) >= 3:
        return sections[2], True
    return sections[0], False


def _bracket_token(body: str) -> _Token | None:
    lowered = body.lower()
    if lowered and lowered[0] in "hms" and lowered == lowered[0] * len(lowered):
        return _Token("elapsed", lowered)
    if body.startswith("$"):
        symbol = body[1:].split("-", 1)[0]
        return _Token("lit", symbol) if symbol else None
    # colours, conditions and locale ids do not affect the text
    return None


def _tokenize(section: str) -> list[_Token]:
    tokens: list[_Token] = []
    i = 0
    size = len(section)
    while i < size:
        ch = section[i]
        rest = section[i:].lower()
        if ch == '"':
            end = section.find('"', i + 1)
            end = size if end == -1 else end
            tokens.append(_Token("lit", section[i + 1 : end]))
            i = end + 1
        elif ch == "\\":
            tokens.append(_Token("lit", section[i + 1 : i + 2]))
            i += 2
        elif ch == "_":
            tokens.append(_Token("lit", " "))
            i += 2
        elif ch == "*":
            i += 2
        elif ch == "[":
            end = section.find("]", i + 1)
            end = size if end == -1 else end
            token = _bracket_token(section[i + 1 : end])
            if token is not None:
                tokens.append(token)
            i = end + 1
        elif rest.startswith("general"):
            tokens.append(_Token("general", section[i : i + 7]))
            i += 7
        elif rest.startswith("am/pm"):
            tokens.append(_Token("ampm", section[i : i + 5]))
            i += 5
        elif rest.startswith("a/p"):
            tokens.append(_Token("ampm", section[i : i + 3]))
            i += 3
        elif ch.lower() in _DATE_LETTERS:
            j = i
            while j < size and section[j].lower() == ch.lower():
                j += 1
            tokens.append(_Token("date", section[i:j].lower()))
            i = j
        elif ch in "Ee" and i + 1 < size and section[i + 1] in "+-":
            tokens.append(_Token("exp", "E" + section[i + 1]))
            i += 2
        else:
            tokens.append(_Token(_SYMBOL_KINDS.get(ch, "lit"), ch))
            i += 1
    _mark_minutes(tokens)
    return tokens


def _mark_minutes(tokens: list[_Token]) -> None:
    timed = [i for i, tok in enumerate(tokens) if tok.kind in ("date", "elapsed")]
    for pos, idx in enumerate(timed):
        tok = tokens[idx]
        if tok.kind != "date" or tok.text[0] != "m" or len(tok.text) > 2:
            continue
        before = tokens[timed[pos - 1]].text[0] if pos > 0 else ""
        after = tokens[timed[pos + 1]].text[0] if pos + 1 < len(timed) else ""
        if before == "h" or after == "s":
            tok.kind = "minute"


def _literal(tok: _Token) -> str:
    if tok.kind in ("lit", "digit", "point", "comma", "percent"):
        return tok.text
    return ""


def _to_datetime(value: float, epoch: datetime, places: int) -> datetime:
    stamp = from_excel(value, epoch=epoch)
    if isinstance(stamp, time):
        stamp = datetime.combine(epoch.date(), stamp)
    unit = 10 ** (6 - places)
    micro = int(Decimal(stamp.microsecond / unit).quantize(Decimal(1), rounding=ROUND_HALF_UP)) * unit
    return stamp.replace(microsecond=0) + timedelta(microseconds=micro)


def _render_datetime(value: float, tokens: list[_Token], epoch: datetime) -> str:
    places = min(3, sum(1 for tok in tokens if tok.kind == "digit"))
    stamp = _to_datetime(value, epoch, places)
    twelve_hour = any(tok.kind == "ampm" for tok in tokens)
    total_seconds = int(Decimal(str(value * 86400)).quantize(Decimal(1), rounding=ROUND_HALF_UP))

    out: list[str] = []
    for tok in tokens:
        text = tok.text
        if tok.kind == "date":
            out.append(_date_part(stamp, text, twelve_hour))
        elif tok.kind == "minute":
            out.append(str(stamp.minute).zfill(len(text)))
        elif tok.kind == "elapsed":
            divisor = {"h": 3600, "m": 60, "s": 1}[text[0]]
            out.append(str(total_seconds // divisor).zfill(len(text)))
        elif tok.kind == "ampm":
            morning = stamp.hour < 12
            marker = ("AM" if morning else "PM") if len(text) == 5 else ("A" if morning else "P")
            out.append(marker if text[0].isupper() else marker.lower())
        elif tok.kind == "point" and places:
            out.append("." + f"{stamp.microsecond:06d}"[:places])
        elif tok.kind == "digit":
            continue
        else:
            out.append(_literal(tok))
    return "".join(out)


def _date_part(stamp: datetime, text: str, twelve_hour: bool) -> str:
    letter, width = text[0], len(text)
    if letter == "y":
        return f"{stamp.year % 100:02d}" if width <= 2 else f"{stamp.year:04d}"
    if letter == "m":
        if width <= 2:
            return str(stamp.month).zfill(width)
        name = _MONTHS[stamp.month - 1]
        return {3: name[:3], 4: name}.get(width, name[0])
    if letter == "d":
        if width <= 2:
            return str(stamp.day).zfill(width)
        name = _WEEKDAYS[stamp.weekday()]
        return name[:3] if width == 3 else name
    if letter == "h":
        hour = stamp.hour
        if twelve_hour:
            hour = hour % 12 or 12
        return str(hour).zfill(min(width, 2))
    return str(stamp.second).zfill(min(width, 2))


def _group_thousands(digits: str) -> str:
    head = len(digits) % 3 or 3
    parts = [digits[:head]] + [digits[i : i + 3] for i in range(head, len(digits), 3)]
    return ",".join(parts)


def _render_number(value: float, tokens: list[_Token], *, signed: bool) -> str:
    exp_index = next((i for i, tok in enumerate(tokens) if tok.kind == "exp"), len(tokens))
    point_index = next((i for i, tok in enumerate(tokens[:exp_index]) if tok.kind == "point"), None)
    digit_end = point_index if point_index is not None else exp_index
    int_idx = [i for i, tok in enumerate(tokens[:digit_end]) if tok.kind == "digit"]
    dec_idx = [i for i in range(digit_end, exp_index) if tokens[i].kind == "digit"]
    exp_idx = [i for i in range(exp_index, len(tokens)) if tokens[i].kind == "digit"]

    grouping = False
    scale = 0
    literal_commas: set[int] = set()
    placeholders = int_idx + dec_idx
    for i, tok in enumerate(tokens):
        if tok.kind != "comma":
            continue
        if any(d < i for d in int_idx) and any(d > i for d in int_idx):
            grouping = True
        elif any(d < i for d in placeholders) and not any(d > i for d in placeholders):
            scale += 1
        else:
            literal_commas.add(i)

    percent = sum(1 for tok in tokens if tok.kind == "percent")
    places = len(dec_idx)
    with localcontext() as ctx:
        ctx.prec = 400
        scaled = Decimal(repr(abs(value))) * Decimal(100) ** percent / Decimal(1000) ** scale
        exponent = 0
        if exp_index < len(tokens) and scaled != 0:
            int_width = max(1, len(int_idx))
            engineering = int_width > 1 and any(tokens[i].text == "#" for i in int_idx)
            step = int_width if engineering else 1
            exponent = scaled.adjusted() // step * step if engineering else scaled.adjusted() - (int_width - 1)
            rounded = scaled.scaleb(-exponent).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
            if rounded.adjusted() >= int_width:
                exponent += step
            scaled = scaled.scaleb(-exponent)
        rounded = scaled.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
        text = f"{rounded:f}"

    int_digits, _, frac_digits = text.partition(".")
    int_digits = int_digits.lstrip("0")
    frac_digits = frac_digits.ljust(places, "0")

    outputs: dict[int, str] = {}
    for k, idx in enumerate(reversed(int_idx)):
        placeholder = tokens[idx].text
        if k < len(int_digits):
            piece = int_digits[-1 - k]
        else:
            piece = {"0": "0", "?": " "}.get(placeholder, "")
        if k == len(int_idx) - 1 and len(int_digits) > len(int_idx):
            piece = int_digits[: len(int_digits) - len(int_idx) + 1]
        outputs[idx] = piece
    if grouping and int_idx:
        joined = "".join(outputs[i] for i in int_idx)
        body = joined.lstrip(" ")
        joined = joined[: len(joined) - len(body)] + _group_thousands(body) if body else joined
        outputs = {i: "" for i in int_idx}
        outputs[int_idx[0]] = joined

    trimming = True
    for pos in range(places - 1, -1, -1):
        idx, digit = dec_idx[pos], frac_digits[pos]
        placeholder = tokens[idx].text
        if trimming and digit == "0" and placeholder != "0":
            outputs[idx] = " " if placeholder == "?" else ""
            continue
        trimming = False
        outputs[idx] = digit

    if exp_idx:
        exp_text = str(abs(exponent)).zfill(sum(1 for i in exp_idx if tokens[i].text == "0") or 1)
        outputs.update({i: "" for i in exp_idx})
        outputs[exp_idx[0]] = exp_text

    out: list[str] = []
    if signed and value < 0 and rounded != 0:
        out.append("-")
    for i, tok in enumerate(tokens):
        if tok.kind == "digit":
            out.append(outputs.get(i, ""))
        elif tok.kind == "point":
            if i == point_index and not int_idx:
                out.append(int_digits)
            out.append(".")
        elif tok.kind == "comma":
            if i in literal_commas:
                out.append(",")
        elif tok.kind == "exp":
            sign = "-" if exponent < 0 else ("+" if tok.text == "E+" else "")
            out.append("E" + sign)
        else:
            out.append(_literal(tok))
    return "".join(out)
