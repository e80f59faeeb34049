"""Helpers for reading and rewriting conversation turns."""

import base64
import binascii
import logging

from openai.types.chat import (
    ChatCompletionAssistantMessageParam,
    ChatCompletionMessageParam,
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam,
)

from .errors import InputValidationError
from .models import BinaryPart, ConversationTurn, FileData, TextPart

logger = logging.getLogger(__name__)


def extract_text(turn: ConversationTurn) -> str:
    """Flatten a turn into plain text; text parts are joined with a space."""
    if isinstance(turn.content, str):
        return turn.content
    return " ".join(part.text for part in turn.content if isinstance(part, TextPart))


def replace_text(turn: ConversationTurn, text: str) -> ConversationTurn:
    """Return a copy of ``turn`` whose text is ``text``.

    Structured content keeps its binary parts untouched: the text part holding
    the user's question (the last one; uploaded file text comes before it) is
    rewritten in place, or a new leading text part is inserted.
    """
    if isinstance(turn.content, str):
        return turn.model_copy(update={"content": text})

    parts = list(turn.content)
    text_indexes = [i for i, part in enumerate(parts) if isinstance(part, TextPart)]
    if text_indexes:
        index = text_indexes[-1]
        parts[index] = parts[index].model_copy(update={"text": text})
    else:
        parts.insert(0, TextPart(text=text))
    return turn.model_copy(update={"content": parts})


def attach_file(
    conversation: list[ConversationTurn], file_data: FileData
) -> list[ConversationTurn]:
    """Fold an uploaded file into the last turn of ``conversation``."""
    if not file_data.base64:
        raise InputValidationError("No file data")

    last = conversation[-1]
    original_text = extract_text(last)

    if file_data.is_text:
        try:
            decoded = base64.b64decode(file_data.base64, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            logger.error("Error processing file content: %s", e)
            raise InputValidationError("Failed to process file content") from e
        parts = [
            TextPart(text=f"File contents of {file_data.file_name}:\n\n{decoded}"),
            TextPart(text=original_text),
        ]
    elif file_data.media_type.startswith("image/"):
        parts = [
            BinaryPart(
                type="image", media_type=file_data.media_type, data=file_data.base64
            ),
            TextPart(text=original_text),
        ]
    else:
        logger.warning("Ignoring unsupported file type %s", file_data.media_type)
        return list(conversation)

    return [*conversation[:-1], ConversationTurn(role="user", content=parts)]


def _user_content(turn: ConversationTurn):
    if isinstance(turn.content, str):
        return turn.content
    content = []
    for part in turn.content:
        if isinstance(part, TextPart):
            content.append({"type": "text", "text": part.text})
        elif part.media_type.startswith("image/"):
            content.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{part.media_type};base64,{part.data}"},
                }
            )
        else:
            content.append(
                {"type": "text", "text": f"[Attached {part.media_type} file omitted]"}
            )
    return content


def to_chat_messages(
    conversation: list[ConversationTurn], system_prompt: str
) -> list[ChatCompletionMessageParam]:
    """Format the conversation into a list of OpenAI chat messages."""
    messages: list[ChatCompletionMessageParam] = [
        ChatCompletionSystemMessageParam(role="system", content=system_prompt)
    ]
    for turn in conversation:
        if turn.role == "user":
            messages.append(
                ChatCompletionUserMessageParam(role="user", content=_user_content(turn))
            )
        else:
            messages.append(
                ChatCompletionAssistantMessageParam(
                    role="assistant", content=extract_text(turn)
                )
            )
    return messages
