from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace

from ..models.import_row import ImportRow, RowStatus
from .normalize import digits_only, parse_number, to_title_case

"""Row validator: per-field format checks on mapped rows.

Field checks only. A missing name is an error (the row cannot be committed);
malformed optional values are warnings (the row can still be committed, the
value is stored as typed). Duplicate detection lives in services.preview and may
only raise a row to WARNING.
"""

__all__ = [
    "ValidationResult",
    "validate_cpf",
    "validate_cnpj",
    "validate_email",
    "validate_row",
    "status_for",
    "resolve_person_name",
    "toggle_row",
    "toggle_all",
]

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_UF_CODES = frozenset(
    "AC AL AP AM BA CE DF ES GO MA MT MS MG PA PB PR PE PI RJ RN RS RO RR SC SP SE TO".split()
)
_CNPJ_WEIGHTS_1 = (5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)
_CNPJ_WEIGHTS_2 = (6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)

MSG_NAME_REQUIRED = "Nome é obrigatório"
MSG_INVALID_CPF = "CPF inválido"
MSG_INVALID_CNPJ = "CNPJ inválido"
MSG_INVALID_EMAIL = "Email inválido"
MSG_INVALID_ORG_EMAIL = "Email da empresa inválido"
MSG_INVALID_AUTOMOTORES = "Automotores inválido"
MSG_INVALID_STATE = "Estado inválido"
MSG_INVALID_ZIPCODE = "CEP inválido"


@dataclass(frozen=True)
class ValidationResult:
    errors: tuple[str, ...] = field(default_factory=tuple)
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def messages(self) -> tuple[str, ...]:
        return self.errors + self.warnings


def _all_same_digit(digits: str) -> bool:
    return len(set(digits)) == 1


def validate_cpf(cpf: str | None, *, check_digits: bool = True) -> bool:
    """CPF format check: 11 digits, not all equal, and (optionally) check digits.

    Blank is valid (optional field).
    """
    if not cpf:
        return True
    digits = digits_only(cpf)
    if len(digits) != 11 or _all_same_digit(digits):
        return False
    if not check_digits:
        return True
    nums = [int(d) for d in digits]
    for size in (9, 10):
        total = sum(nums[i] * (size + 1 - i) for i in range(size))
        check = (total * 10) % 11
        if check == 10:
            check = 0
        if check != nums[size]:
            return False
    return True


def validate_cnpj(cnpj: str | None, *, check_digits: bool = True) -> bool:
    """CNPJ format check: 14 digits, not all equal, and (optionally) check digits."""
    if not cnpj:
        return True
    digits = digits_only(cnpj)
    if len(digits) != 14 or _all_same_digit(digits):
        return False
    if not check_digits:
        return True
    nums = [int(d) for d in digits]
    for weights, pos in ((_CNPJ_WEIGHTS_1, 12), (_CNPJ_WEIGHTS_2, 13)):
        remainder = sum(n * w for n, w in zip(nums, weights, strict=False)) % 11
        check = 0 if remainder < 2 else 11 - remainder
        if check != nums[pos]:
            return False
    return True


def validate_email(email: str | None) -> bool:
    if not email:
        return True
    return bool(_EMAIL_RE.match(email.strip()))


def resolve_person_name(mapped_data: Mapping[str, str]) -> str:
    """Person name from ``name`` or, failing that, ``first_name`` + ``last_name``."""
    name = to_title_case(mapped_data.get("name"))
    if name:
        return name
    parts = [(mapped_data.get(k) or "").strip() for k in ("first_name", "last_name")]
    return to_title_case(" ".join(p for p in parts if p))


def validate_row(mapped_data: Mapping[str, str], *, check_digits: bool = False) -> ValidationResult:
    """Run every field check on one mapped row.

    ``check_digits`` enables CPF/CNPJ check-digit verification on top of the
    digit-count check; off by default.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not resolve_person_name(mapped_data):
        errors.append(MSG_NAME_REQUIRED)

    if mapped_data.get("cpf") and not validate_cpf(mapped_data["cpf"], check_digits=check_digits):
        warnings.append(MSG_INVALID_CPF)
    if mapped_data.get("cnpj") and not validate_cnpj(mapped_data["cnpj"], check_digits=check_digits):
        warnings.append(MSG_INVALID_CNPJ)
    if mapped_data.get("email") and not validate_email(mapped_data["email"]):
        warnings.append(MSG_INVALID_EMAIL)
    if mapped_data.get("org_email") and not validate_email(mapped_data["org_email"]):
        warnings.append(MSG_INVALID_ORG_EMAIL)
    if mapped_data.get("automotores") and parse_number(mapped_data["automotores"]) is None:
        warnings.append(MSG_INVALID_AUTOMOTORES)
    state = mapped_data.get("address_state")
    if state and state.strip().upper() not in _UF_CODES:
        warnings.append(MSG_INVALID_STATE)
    zipcode = mapped_data.get("address_zipcode")
    if zipcode and len(digits_only(zipcode)) != 8:
        warnings.append(MSG_INVALID_ZIPCODE)

    return ValidationResult(errors=tuple(errors), warnings=tuple(warnings))


def status_for(result: ValidationResult) -> RowStatus:
    if result.errors:
        return RowStatus.ERROR
    if result.warnings:
        return RowStatus.WARNING
    return RowStatus.VALID


def toggle_row(rows: Sequence[ImportRow], index: int) -> list[ImportRow]:
    """Flip selection of the row with ``index``; error rows stay unselected."""
    return [
        replace(r, selected=not r.selected)
        if r.index == index and r.status is not RowStatus.ERROR
        else r
        for r in rows
    ]


def toggle_all(rows: Sequence[ImportRow], selected: bool) -> list[ImportRow]:
    return [
        replace(r, selected=selected and r.status is not RowStatus.ERROR)
        for r in rows
    ]
