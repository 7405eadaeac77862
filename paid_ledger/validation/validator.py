"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking
- Required field presence
- Finite, non-negative amounts
- This catches malformed input from the UI or upstream collaborators

STAGE 2 - SEMANTIC VALIDATION:
- Absurd amount detection
- Schedule options that will be ignored
- This catches logically suspicious data

IMPORTANT: Validation NEVER silently fixes issues.
Errors reject the request before anything is written; warnings are
returned so the caller can show them.
"""

from decimal import Decimal
from typing import Any, Optional, TypeVar, Union

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from paid_ledger.config import AppSettings, get_settings
from paid_ledger.errors import ValidationError
from paid_ledger.models.ledger import (
    GroupFields,
    MemberDefinition,
    ObligationCreate,
    ObligationUpdate,
    ReceiptBreakdown,
    RecurrenceOptions,
    SingleObligationFields,
    ValidationIssue,
    ValidationResult,
)


ModelT = TypeVar("ModelT", bound=BaseModel)

logger = structlog.get_logger()


def _issues_from_pydantic(error: PydanticValidationError) -> list[ValidationIssue]:
    issues = []
    for detail in error.errors():
        field = ".".join(str(part) for part in detail["loc"]) or "__root__"
        issue_type = "missing" if detail["type"] == "missing" else "invalid_value"
        issues.append(ValidationIssue(
            field=field,
            issue_type=issue_type,
            message=detail["msg"],
            severity="error",
        ))
    return issues


class LedgerValidator:
    """
    Validates obligation and recurrence input through a two-stage pipeline.

    Stage 1: Schema validation (pydantic models)
    Stage 2: Semantic validation (limits and schedule sanity)
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    # -- stage 1 -------------------------------------------------------------

    def _validate_schema(
        self,
        model_cls: type[ModelT],
        payload: Union[ModelT, dict[str, Any]],
    ) -> tuple[Optional[ModelT], list[ValidationIssue]]:
        if isinstance(payload, model_cls):
            return payload, []
        try:
            return model_cls.model_validate(payload), []
        except PydanticValidationError as e:
            return None, _issues_from_pydantic(e)

    # -- stage 2 -------------------------------------------------------------

    def _check_amount(self, field: str, amount: Optional[Decimal]) -> list[ValidationIssue]:
        if amount is None:
            return []
        if not amount.is_finite():
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message="Amount must be a finite number",
                severity="error",
            )]
        if amount < 0:
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message="Amount cannot be negative",
                severity="error",
            )]
        if amount > self._settings.max_obligation_amount:
            return [ValidationIssue(
                field=field,
                issue_type="suspicious_value",
                message=(
                    f"Amount {amount} is unusually large "
                    f"(limit {self._settings.max_obligation_amount})"
                ),
                severity="warning",
            )]
        return []

    def _check_members(self, members: list[MemberDefinition]) -> list[ValidationIssue]:
        issues = []
        for index, member in enumerate(members):
            issues.extend(self._check_amount(f"members.{index}.amount", member.amount))
        return issues

    def _check_schedule(self, options: RecurrenceOptions) -> list[ValidationIssue]:
        issues = []
        if options.day_of_month is not None and not options.frequency.is_month_based:
            issues.append(ValidationIssue(
                field="day_of_month",
                issue_type="ignored",
                message=f"day_of_month has no effect on a {options.frequency.value} schedule",
                severity="warning",
            ))
        if options.day_of_week is not None and not options.frequency.is_week_based:
            issues.append(ValidationIssue(
                field="day_of_week",
                issue_type="ignored",
                message=f"day_of_week has no effect on a {options.frequency.value} schedule",
                severity="warning",
            ))
        return issues

    def _semantic_issues(self, model: BaseModel) -> list[ValidationIssue]:
        if isinstance(model, (ObligationCreate, ObligationUpdate, SingleObligationFields)):
            return self._check_amount("amount", model.amount)
        if isinstance(model, (GroupFields, ReceiptBreakdown)):
            return self._check_members(model.members)
        if isinstance(model, RecurrenceOptions):
            return self._check_schedule(model)
        return []

    # -- public API ----------------------------------------------------------

    def validate(
        self,
        model_cls: type[ModelT],
        payload: Union[ModelT, dict[str, Any]],
        subject: str,
    ) -> tuple[Optional[ModelT], ValidationResult]:
        """
        Run both stages.

        Stage 2 is skipped when stage 1 fails; there is nothing
        meaningful to check on a payload that did not parse.
        """
        model, issues = self._validate_schema(model_cls, payload)
        if model is None:
            return None, ValidationResult(
                subject=subject,
                schema_valid=False,
                semantic_valid=False,
                issues=issues,
            )

        semantic = self._semantic_issues(model)
        semantic_valid = not any(i.severity == "error" for i in semantic)
        return model, ValidationResult(
            subject=subject,
            schema_valid=True,
            semantic_valid=semantic_valid,
            issues=semantic,
        )

    def require(
        self,
        model_cls: type[ModelT],
        payload: Union[ModelT, dict[str, Any]],
        subject: str,
    ) -> ModelT:
        """Validate and return the model, or raise ValidationError."""
        model, result = self.validate(model_cls, payload, subject)
        if model is None or not result.is_valid:
            raise ValidationError(
                self.get_user_friendly_summary(result),
                issues=result.issues,
            )
        for issue in result.issues:
            logger.warning(
                "validation_warning",
                subject=subject,
                field=issue.field,
                message=issue.message,
            )
        return model

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """One-paragraph summary of a validation result."""
        if result.is_valid and not result.issues:
            return f"The {result.subject} looks good."
        errors = [i for i in result.issues if i.severity == "error"]
        if errors:
            details = "; ".join(f"{i.field}: {i.message}" for i in errors)
            return f"The {result.subject} was rejected ({details})."
        warnings = "; ".join(i.message for i in result.issues)
        return f"The {result.subject} was accepted with warnings: {warnings}."
