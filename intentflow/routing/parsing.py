"""
Classification Reply Parsing

Extracts the first well-formed JSON object from a free-text model reply and
validates it into a routing payload. Surrounding prose and markdown fences
are tolerated; anything else raises ClassificationParseError.
"""

import json
import math
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from intentflow.errors import ClassificationParseError

_ENTITY_KEY_ALIASES = {
    "itemName": "item_name",
    "timeReference": "time_reference",
}


class ClassificationPayload(BaseModel):
    """Structured classification reply; accepts camelCase and snake_case keys."""

    model_config = ConfigDict(extra="ignore")

    target_agent_type: str = Field(
        validation_alias=AliasChoices("targetAgent", "targetAgentType", "target_agent_type", "target_agent"),
    )
    confidence: float = Field(default=0.5)
    reasoning: str = Field(default="")
    extracted_entities: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("extractedEntities", "extracted_entities", "entities"),
    )
    suggested_actions: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("suggestedActions", "suggested_actions"),
    )
    contextual_info: str = Field(
        default="",
        validation_alias=AliasChoices("contextualInfo", "contextual_info"),
    )

    @field_validator("target_agent_type")
    @classmethod
    def _normalize_target(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("empty target agent")
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _coerce_confidence(cls, value: Any) -> float:
        if value is None:
            return 0.5
        try:
            value = float(value)
        except (TypeError, ValueError):
            return 0.5
        if math.isnan(value):
            return 0.0
        return max(0.0, min(1.0, value))

    @field_validator("extracted_entities", mode="before")
    @classmethod
    def _normalize_entities(cls, value: Any) -> dict[str, Any]:
        if not isinstance(value, dict):
            return {}
        return {
            _ENTITY_KEY_ALIASES.get(key, key): item
            for key, item in value.items()
            if item is not None and item != ""
        }

    @field_validator("suggested_actions", mode="before")
    @classmethod
    def _coerce_actions(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(item) for item in value]

    @field_validator("reasoning", "contextual_info", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value)


def find_first_json_object(text: str) -> dict[str, Any] | None:
    """Return the first decodable JSON object embedded in `text`."""
    decoder = json.JSONDecoder()
    index = text.find("{")
    while index != -1:
        try:
            obj, _end = decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            index = text.find("{", index + 1)
            continue
        if isinstance(obj, dict):
            return obj
        index = text.find("{", index + 1)
    return None


def parse_classification_reply(reply: str) -> ClassificationPayload:
    """
    Parse a classification reply.

    Raises:
        ClassificationParseError: If no JSON object is present or the first
            one lacks a usable target agent
    """
    if not reply or not reply.strip():
        raise ClassificationParseError("Empty classification reply", reply or "")

    payload = find_first_json_object(reply)
    if payload is None:
        raise ClassificationParseError("No JSON object found in classification reply", reply)

    try:
        return ClassificationPayload.model_validate(payload)
    except ValidationError as e:
        raise ClassificationParseError(f"Invalid classification payload: {e}", reply) from e
