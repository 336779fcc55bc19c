"""
Form validation endpoint.

- POST  /forms/{form}/validate  — Check raw form values without saving anything

Clients call this while the user types; the response always has status 200
and carries either ``valid: true`` or one message per failing field.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body
from pydantic import BaseModel

from agrofund.core.exceptions import NotFoundException
from agrofund.schemas.common import ErrorResponse
from agrofund.validation import FORMS, validate_form

router = APIRouter()


class FormValidationResponse(BaseModel):
    valid: bool
    errors: Dict[str, str]


@router.post(
    "/{form}/validate",
    response_model=FormValidationResponse,
    summary="Validate a form",
    description=f"Known forms: {', '.join(sorted(FORMS))}.",
    responses={404: {"model": ErrorResponse, "description": "Unknown form"}},
)
async def validate(form: str, values: Dict[str, Any] = Body(...)) -> FormValidationResponse:
    schema = FORMS.get(form)
    if schema is None:
        raise NotFoundException(f"Unknown form '{form}'")
    result = validate_form(schema, values)
    return FormValidationResponse(valid=result.valid, errors=result.errors)
