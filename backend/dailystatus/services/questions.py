"""Question option rules, applied on every question write."""
from ..core.errors import ValidationError
from ..models.question import CHOICE_TYPES


def normalize_options(question_type: str, options) -> list[dict]:
    """
    Options are required for choice questions and forbidden for text ones.
    Returns the stored form: [{text, order}] sorted by order.
    """
    options = [o if isinstance(o, dict) else o.model_dump() for o in options or []]
    if question_type in CHOICE_TYPES:
        if not options:
            raise ValidationError(
                "Options are required for choice questions",
                {"options": "required for single_choice and multiple_choice"},
            )
    elif options:
        raise ValidationError(
            "Text questions cannot have options",
            {"options": "must be empty for text questions"},
        )

    normalized = []
    for index, option in enumerate(options):
        text = (option.get("text") or "").strip()
        if not text:
            raise ValidationError("Option text is required", {f"options[{index}].text": "required"})
        order = option.get("order")
        normalized.append({"text": text, "order": index if order is None else order})
    normalized.sort(key=lambda o: o["order"])
    return normalized


def merged_question_fields(existing: dict, changes: dict) -> dict:
    """
    Apply a partial update and re-check the option rules on the result.
    A type change to text without new options clears the stored ones.
    """
    # an explicit null keeps the stored type
    question_type = changes.get("type") or existing.get("type") or "text"
    if "options" in changes and changes["options"] is not None:
        options = changes["options"]
    elif question_type in CHOICE_TYPES:
        options = existing.get("options") or []
    else:
        options = []
    fields = {k: v for k, v in changes.items() if v is not None and k != "options"}
    fields["type"] = question_type
    fields["options"] = normalize_options(question_type, options)
    return fields
