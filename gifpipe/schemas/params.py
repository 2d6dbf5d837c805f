"""Submission parameter binding and validation.

Form values are bound onto a JobDescriptor through an explicit, ordered
field table. Each entry names the form parameter, how to apply it, and how
to validate it. Every error is collected before the crop all-or-nothing
rule runs, so a caller sees all problems in one response.
"""

from typing import Callable, Mapping, NamedTuple, Optional
from urllib.parse import urlparse

from gifpipe.errors import ParamsError
from gifpipe.schemas.job import CROP_FIELDS, JobDescriptor

Validator = Callable[[str], Optional[str]]
Applier = Callable[[dict, str], None]


class ParamField(NamedTuple):
    name: str
    apply: Applier
    validate: Validator


def _set(field_name: str) -> Applier:
    def apply(values: dict, value: str) -> None:
        values[field_name] = value

    return apply


def _optional_int(value: str, minimum: int) -> Optional[str]:
    if value == "":
        return None
    digits = value[1:] if value.startswith("-") else value
    # int() also accepts underscores and non-ASCII digits
    if not (digits.isascii() and digits.isdigit()):
        return f"not a number: {value!r}"
    if int(value) < minimum:
        return "must be positive" if minimum > 0 else "must not be negative"
    return None


def optional_positive(value: str) -> Optional[str]:
    return _optional_int(value, 1)


def optional_non_negative(value: str) -> Optional[str]:
    return _optional_int(value, 0)


def url_validator(allowed_hosts: list[str]) -> Validator:
    """Build a validator accepting http(s) URLs on one of allowed_hosts."""

    def check_url(value: str) -> Optional[str]:
        if value == "":
            return "url is required"
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https"):
            return f"not an http url: {value!r}"
        if parsed.hostname not in allowed_hosts:
            return f"host not allowed: {parsed.hostname}"
        return None

    return check_url


def build_field_table(allowed_hosts: list[str]) -> list[ParamField]:
    return [
        ParamField("url", _set("origin_url"), url_validator(allowed_hosts)),
        ParamField("start", _set("start"), optional_non_negative),
        ParamField("dur", _set("duration"), optional_positive),
        ParamField("cx", _set("crop_x"), optional_non_negative),
        ParamField("cy", _set("crop_y"), optional_non_negative),
        ParamField("cw", _set("crop_width"), optional_positive),
        ParamField("ch", _set("crop_height"), optional_positive),
    ]


def validate_params(form: Mapping[str, str], allowed_hosts: list[str]) -> JobDescriptor:
    """Bind form values onto a new, id-less JobDescriptor.

    Args:
        form: Submitted parameters keyed by form name (url, start, dur, cx, cy, cw, ch).
        allowed_hosts: Hostnames a source URL may point at.

    Returns:
        A descriptor ready for submit_job().

    Raises:
        ParamsError: With every validation problem found.
    """
    values: dict[str, str] = {"origin_url": "", "start": "0"}
    errors: list[str] = []

    for field in build_field_table(allowed_hosts):
        raw = form.get(field.name)
        value = "" if raw is None else str(raw).strip()
        if raw is None and field.name != "url":
            continue
        problem = field.validate(value)
        if problem:
            errors.append(f"{field.name}: {problem}")
            continue
        if value != "" or field.name != "start":
            field.apply(values, value)

    if errors:
        raise ParamsError(errors)

    present = [values.get(name, "") != "" for name in CROP_FIELDS]
    if any(present) and not all(present):
        raise ParamsError(["must pass crop info together"])

    return JobDescriptor(**values)
