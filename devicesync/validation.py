"""
Per-record validation of synced messages.

Each raw record is checked on its own against ValidatedMessage; a bad record
is set aside with its index and a reason instead of failing the batch.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Union

from pydantic import ValidationError

from devicesync.schemas import ValidatedMessage

logger = logging.getLogger(__name__)


NOT_AN_OBJECT = "Message must be an object"

# Reason reported when a field is missing or has the wrong type, keyed by wire name
FIELD_REJECTION_REASONS = {
    "id": "id must be an integer",
    "guid": "guid must be a string",
    "text": "text must be a string or null",
    "contact": "contact must be a string",
    "subject": "subject must be a string or null",
    "date": "date must be a string or null",
    "isFromMe": "isFromMe must be a boolean",
    "isRead": "isRead must be a boolean",
    "isSent": "isSent must be a boolean",
    "isDelivered": "isDelivered must be a boolean",
    "hasAttachments": "hasAttachments must be a boolean",
    "service": "service must be a string",
    "chatId": "chatId must be a string, null, or omitted",
    "chatName": "chatName must be a string, null, or omitted",
}


@dataclass
class RejectedMessage:
    index: int
    message: Any
    error: str


@dataclass
class ValidationOutcome:
    valid: List[ValidatedMessage] = field(default_factory=list)
    rejected: List[RejectedMessage] = field(default_factory=list)


def _reason_for(error: ValidationError) -> str:
    first = error.errors(include_url=False)[0]
    if not first["loc"]:
        return NOT_AN_OBJECT

    field_name = str(first["loc"][0])
    if first["type"] == "value_error":
        # Raised by a field validator; its message is already user-facing
        return str(first["ctx"]["error"])
    return FIELD_REJECTION_REASONS.get(field_name, f"{field_name} is invalid")


def validate_message(raw: Any) -> Union[ValidatedMessage, str]:
    """
    Check one raw record.

    Returns:
        The typed message, or the reason for the first failing field
        (checked in the order the fields are declared on ValidatedMessage)
    """
    if not isinstance(raw, dict):
        return NOT_AN_OBJECT

    try:
        return ValidatedMessage.model_validate(raw)
    except ValidationError as e:
        return _reason_for(e)


def validate_messages(messages: List[Any]) -> ValidationOutcome:
    """
    Split raw records into valid messages and rejections.

    Valid messages keep their input order; each rejection records its index
    in the original list.
    """
    outcome = ValidationOutcome()

    for index, message in enumerate(messages):
        result = validate_message(message)

        if isinstance(result, str):
            outcome.rejected.append(RejectedMessage(index=index, message=message, error=result))
            logger.warning(
                f"Rejected message at index {index}: {result}",
                extra={"index": index, "reason": result, "raw": json.dumps(message, default=str)},
            )
            continue

        outcome.valid.append(result)

    logger.debug(f"Validated {len(messages)} messages: {len(outcome.valid)} valid, {len(outcome.rejected)} rejected")
    return outcome
