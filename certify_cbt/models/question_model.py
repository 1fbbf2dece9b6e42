"""
models/question_model.py

Exam question model as delivered by the remote exam service.
Pydantic v2, immutable once loaded.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class QuestionType(str, Enum):
    SINGLE_CHOICE = "single_choice"
    FREE_TEXT = "free_text"


# Type names used by the remote service
_WIRE_TYPES = {
    "mcq": QuestionType.SINGLE_CHOICE,
    "single_choice": QuestionType.SINGLE_CHOICE,
    "theory": QuestionType.FREE_TEXT,
    "essay": QuestionType.FREE_TEXT,
    "text": QuestionType.FREE_TEXT,
    "free_text": QuestionType.FREE_TEXT,
}


class Option(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Option id (sent back as selected_option_id)")
    text: str = Field(..., description="Option label")


class Question(BaseModel):
    """
    One question of an exam session.

    The remote service sends ``question_type`` ("mcq", "theory", "essay"...)
    and ``text``/``question_text``; both spellings are accepted. Unknown
    types are answered as free text, and options may come as ``options_data``.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Question id (unique within the session)")
    text: str = Field(
        ...,
        min_length=1,
        description="Prompt text",
    )
    type: QuestionType = Field(
        QuestionType.SINGLE_CHOICE,
        description="single_choice or free_text",
    )
    options: List[Option] = Field(
        default_factory=list,
        description="Options for single-choice questions",
    )
    points: float = Field(
        1.0,
        ge=0,
        description="Point value",
    )
    image: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_wire_fields(cls, data):
        """Map the service's field names onto ours."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "text" not in data:
            for key in ("question_text", "prompt", "title"):
                if data.get(key):
                    data["text"] = data[key]
                    break
        if "options" not in data and "options_data" in data:
            data["options"] = data["options_data"]
        raw_type = data.pop("question_type", None) or data.get("type")
        if isinstance(raw_type, str):
            # anything that is not a known choice type is answered as text
            data["type"] = _WIRE_TYPES.get(raw_type.lower(), QuestionType.FREE_TEXT)
        elif raw_type is None:
            data["type"] = QuestionType.SINGLE_CHOICE if data.get("options") else QuestionType.FREE_TEXT
        if "points" not in data:
            for key in ("marks", "score", "max_score"):
                if data.get(key) is not None:
                    data["points"] = data[key]
                    break
        return data

    @field_validator("options", mode="before")
    @classmethod
    def normalize_options(cls, v):
        """Options may arrive as ``{"id", "text"}`` or ``{"id", "option_text"}``."""
        if v is None:
            return []
        normalized = []
        for item in v:
            if isinstance(item, dict) and "text" not in item:
                item = {**item, "text": item.get("option_text") or item.get("label") or ""}
            normalized.append(item)
        return normalized

    @property
    def is_choice(self) -> bool:
        return self.type == QuestionType.SINGLE_CHOICE
