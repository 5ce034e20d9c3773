"""Survey questions as a tagged union keyed on ``type``.

Each question kind validates its own answer. ``validate_answers`` checks a
whole submission and raises ``ValidationFailed`` naming the first question
that fails, so nothing is stored unless every answer is acceptable.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from volunteer_portal.errors import ValidationFailed

AnswerValue = Union[bool, float, str, list[str], None]


class _Question(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    text: str
    required: bool = False

    def is_blank(self, value: Any) -> bool:
        if value is None:
            return True
        if isinstance(value, str) and not value.strip():
            return True
        if isinstance(value, list) and not value:
            return True
        return False

    def check(self, value: Any) -> None:
        """Raise ValidationFailed if a non-blank ``value`` is unacceptable."""
        raise NotImplementedError

    def _fail(self, what: str) -> ValidationFailed:
        return ValidationFailed(f'{what} for "{self.text}"')


class TextShort(_Question):
    type: Literal["text_short"]
    placeholder: Optional[str] = None
    max_length: Optional[int] = Field(default=None, alias="maxLength", gt=0)

    def check(self, value: Any) -> None:
        if not isinstance(value, str):
            raise self._fail("Invalid answer type")
        if self.max_length is not None and len(value) > self.max_length:
            raise ValidationFailed(
                f'Answer for "{self.text}" must be at most {self.max_length} characters'
            )


class TextLong(TextShort):
    type: Literal["text_long"]


class MultipleChoiceSingle(_Question):
    type: Literal["multiple_choice_single"]
    options: list[str] = Field(min_length=1)

    def check(self, value: Any) -> None:
        if not isinstance(value, str):
            raise self._fail("Invalid answer type")
        if value not in self.options:
            raise self._fail("Invalid option selected")


class MultipleChoiceMulti(_Question):
    type: Literal["multiple_choice_multi"]
    options: list[str] = Field(min_length=1)

    def check(self, value: Any) -> None:
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise self._fail("Invalid answer type")
        if any(v not in self.options for v in value):
            raise self._fail("Invalid option selected")


class RatingScale(_Question):
    type: Literal["rating_scale"]
    min_value: int = Field(default=1, alias="minValue")
    max_value: int = Field(default=5, alias="maxValue")
    min_label: Optional[str] = Field(default=None, alias="minLabel")
    max_label: Optional[str] = Field(default=None, alias="maxLabel")

    @model_validator(mode="after")
    def _range_is_ordered(self) -> "RatingScale":
        if self.min_value >= self.max_value:
            raise ValueError("minValue must be below maxValue")
        return self

    def check(self, value: Any) -> None:
        if isinstance(value, bool):
            raise self._fail("Invalid rating")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise self._fail("Invalid rating") from None
        if not self.min_value <= number <= self.max_value:
            raise ValidationFailed(
                f'Rating for "{self.text}" must be between {self.min_value} and {self.max_value}'
            )


class YesNo(_Question):
    type: Literal["yes_no"]

    def check(self, value: Any) -> None:
        if not isinstance(value, bool) and value not in ("yes", "no"):
            raise self._fail("Invalid answer")


SurveyQuestion = Annotated[
    Union[TextShort, TextLong, MultipleChoiceSingle, MultipleChoiceMulti, RatingScale, YesNo],
    Field(discriminator="type"),
]

_questions_adapter: TypeAdapter[list[SurveyQuestion]] = TypeAdapter(list[SurveyQuestion])


class SurveyAnswer(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    question_id: str = Field(alias="questionId")
    value: AnswerValue = None


def parse_questions(raw: Union[str, bytes, list]) -> list[SurveyQuestion]:
    """Parse stored or submitted question definitions."""
    try:
        if isinstance(raw, (str, bytes)):
            questions = _questions_adapter.validate_json(raw)
        else:
            questions = _questions_adapter.validate_python(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first["loc"]) or "questions"
        raise ValidationFailed(f"Invalid survey questions ({where}): {first['msg']}") from exc

    seen: set[str] = set()
    for question in questions:
        if question.id in seen:
            raise ValidationFailed(f"Duplicate question id {question.id!r}")
        seen.add(question.id)
    return questions


def dump_questions(questions: list[SurveyQuestion]) -> str:
    return _questions_adapter.dump_json(questions, by_alias=True, exclude_none=True).decode()


def validate_answers(questions: list[SurveyQuestion], answers: list[SurveyAnswer]) -> None:
    """Check every answer against its question.

    Required questions need a non-blank answer. Answers to unknown question
    ids are ignored; blank answers to optional questions are accepted.
    """
    by_id = {a.question_id: a.value for a in answers}
    for question in questions:
        value = by_id.get(question.id)
        if question.is_blank(value):
            if question.required:
                raise ValidationFailed(f'Question "{question.text}" is required')
            continue
        question.check(value)
