"""
Form validation that never raises.

``validate_form`` runs a pydantic schema over raw form values and returns a
:class:`ValidationResult`: either the typed, normalised value or a mapping of
field name → one human-readable message.  The same schemas back the REST
request bodies, so a form that validates here is accepted by the API.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Generic, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from agrofund.core.config import settings
from agrofund.schemas.common import format_naira
from agrofund.schemas.investment import InvestmentForm
from agrofund.schemas.project import ProjectCreate
from agrofund.schemas.user import ProfileUpdate, SignInForm, SignUpForm

M = TypeVar("M", bound=BaseModel)

_NUMBER_ERRORS = {
    "decimal_parsing",
    "decimal_type",
    "int_parsing",
    "int_type",
    "int_from_float",
    "float_parsing",
    "float_type",
}

FORMS: Dict[str, Type[BaseModel]] = {
    "signup": SignUpForm,
    "signin": SignInForm,
    "project": ProjectCreate,
    "investment": InvestmentForm,
    "profile": ProfileUpdate,
}


@dataclass
class ValidationResult(Generic[M]):
    valid: bool
    value: Optional[M] = None
    errors: Dict[str, str] = field(default_factory=dict)


def _message(error: Mapping[str, Any]) -> str:
    if error["type"] == "missing":
        return "This field is required"
    if error["type"] in _NUMBER_ERRORS:
        return "Please enter a valid number"
    message = error["msg"]
    if message.startswith("Value error, "):
        message = message[len("Value error, ") :]
    return message


def validate_form(schema: Type[M], raw: Mapping[str, Any]) -> ValidationResult[M]:
    """
    Validate ``raw`` against ``schema``.

    Only the first message per field is kept; a field is flagged only by its
    own rules.
    """
    try:
        value = schema.model_validate(dict(raw))
    except ValidationError as exc:
        errors: Dict[str, str] = {}
        for error in exc.errors():
            name = ".".join(str(part) for part in error["loc"]) or "__root__"
            errors.setdefault(name, _message(error))
        return ValidationResult(valid=False, errors=errors)
    return ValidationResult(valid=True, value=value)


def check_investment_amount(
    amount: Decimal,
    project: Any,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
) -> Optional[str]:
    """
    First violated constraint for investing ``amount`` in ``project``, or ``None``.

    ``project`` is any object exposing ``status``, ``funding_goal``,
    ``amount_raised``, ``min_investment`` and ``max_investment``.  The global
    bounds default to the configured ``MIN_INVESTMENT``/``MAX_INVESTMENT``.
    """
    floor = max(
        min_amount if min_amount is not None else settings.MIN_INVESTMENT,
        project.min_investment or Decimal("0"),
    )
    ceiling = max_amount if max_amount is not None else settings.MAX_INVESTMENT
    if project.max_investment is not None:
        ceiling = min(ceiling, project.max_investment)

    status = getattr(project.status, "value", project.status)
    if status != "active":
        return "Project is not accepting investments"
    if amount < floor:
        return f"Minimum investment is {format_naira(floor)}"
    if amount > ceiling:
        return f"Maximum investment is {format_naira(ceiling)}"
    if project.amount_raised + amount > project.funding_goal:
        return "Investment amount exceeds remaining funding needed"
    return None
