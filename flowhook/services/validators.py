import re
from typing import Optional

from flowhook.logging_config import get_logger
from flowhook.models import WorkflowExecution
from flowhook.services.events import BaseMessage
from flowhook.services.ports import ValidationOutcome, Validator

logger = get_logger("validators")

MEDIA_PLACEHOLDER = "[media message]"


class ConfiguredValidator(Validator):
    """Base for validators driven by a step's ``validation_config``."""

    def __init__(self, config: Optional[dict] = None):
        self.config = config or {}
        self.target_variable = self.config.get("targetProcessVariable")
        self.error_message = self.config.get("errorMessage")
        self.suggestion_message = self.config.get("suggestionMessage")

    def _valid(self, processed_data: Optional[str]) -> ValidationOutcome:
        return ValidationOutcome(
            is_valid=True,
            validator_kind=self.kind,
            processed_data=processed_data,
            target_variable=self.target_variable,
        )

    def _invalid(self, default_error: str) -> ValidationOutcome:
        return ValidationOutcome(
            is_valid=False,
            validator_kind=self.kind,
            error_message=self.error_message or default_error,
            suggestion_message=self.suggestion_message,
            target_variable=self.target_variable,
        )


class DefaultValidator(ConfiguredValidator):
    """Accepts any reply."""

    kind = "default"

    async def validate(
        self,
        text: str,
        execution: WorkflowExecution,
        step_index: int,
        message: Optional[BaseMessage] = None,
    ) -> ValidationOutcome:
        if text:
            return self._valid(text)
        if message is not None and message.media_ref:
            return self._valid(MEDIA_PLACEHOLDER)
        return self._valid(text)


class RegexValidator(ConfiguredValidator):
    kind = "regex"

    def __init__(self, config: Optional[dict] = None):
        super().__init__(config)
        self.pattern = re.compile(self.config.get("pattern") or ".*", re.IGNORECASE)

    async def validate(self, text, execution, step_index, message=None):
        candidate = (text or "").strip()
        if self.pattern.fullmatch(candidate):
            return self._valid(candidate)
        return self._invalid("Reply does not match the expected format.")


class NumericValidator(ConfiguredValidator):
    kind = "numeric"

    async def validate(self, text, execution, step_index, message=None):
        candidate = (text or "").strip().replace(",", "")
        try:
            number = float(candidate)
        except ValueError:
            return self._invalid("Please reply with a number.")

        minimum = self.config.get("min")
        maximum = self.config.get("max")
        if minimum is not None and number < float(minimum):
            return self._invalid(f"Please reply with a number of at least {minimum}.")
        if maximum is not None and number > float(maximum):
            return self._invalid(f"Please reply with a number of at most {maximum}.")
        return self._valid(candidate)


class ChoiceValidator(ConfiguredValidator):
    """Reply must be one of the configured options, by value or 1-based position."""

    kind = "choice"

    async def validate(self, text, execution, step_index, message=None):
        options = [str(option) for option in self.config.get("options", [])]
        candidate = (text or "").strip()
        if candidate.isdigit() and 1 <= int(candidate) <= len(options):
            return self._valid(options[int(candidate) - 1])
        for option in options:
            if option.lower() == candidate.lower():
                return self._valid(option)
        return self._invalid("Please choose one of: " + ", ".join(options))


VALIDATORS = {
    DefaultValidator.kind: DefaultValidator,
    RegexValidator.kind: RegexValidator,
    NumericValidator.kind: NumericValidator,
    ChoiceValidator.kind: ChoiceValidator,
}


def build_validator(config: Optional[dict]) -> Validator:
    """Validator for a step's validation config; unknown kinds fall back to the default."""
    config = config or {}
    kind = (config.get("validatorType") or DefaultValidator.kind).strip().lower()
    validator_class = VALIDATORS.get(kind)
    if validator_class is None:
        logger.warning("Unknown validator type, using default", extra={"context": {"validator_type": kind}})
        validator_class = DefaultValidator
    return validator_class(config)
