"""Transcript state for the Image Studio and the Chatbot.

A transcript is an immutable ``Conversation`` value. The functions below are
the only transitions: ``submit`` appends the user's message before the API
call resolves, ``resolve`` appends the model's answer once it has. The
session classes wrap one conversation each and run the round trip.
"""

import dataclasses
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Literal, Optional

from error_classifier import classify
from gemini_service import Failure, ValidationError
from prompts import (
    CHAT_FAILURE,
    CHAT_NOT_CONFIGURED,
    CHAT_WELCOME,
    STUDIO_FAILURE,
    STUDIO_NOT_CONFIGURED,
    STUDIO_RESULT,
    STUDIO_WELCOME,
)

logger = logging.getLogger(__name__)

Role = Literal["user", "model"]

GENERATE = "generate"
EDIT = "edit"
OPERATIONS = (GENERATE, EDIT)


class SubmissionRejected(ValidationError):
    """A request for this conversation is still in flight."""


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    text: str

    def to_dict(self):
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class StudioMessage:
    id: str
    role: Role
    text: Optional[str] = None
    result_image_url: Optional[str] = None
    source_image_url: Optional[str] = None

    def to_dict(self):
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class Conversation:
    messages: tuple = ()
    pending: bool = False


def append(state, message):
    return dataclasses.replace(state, messages=state.messages + (message,))


def submit(state, user_message):
    """Optimistically append the user's message and mark the conversation pending."""
    if state.pending:
        raise SubmissionRejected("A request is already in progress. Please wait for it to finish.")
    return dataclasses.replace(append(state, user_message), pending=True)


def resolve(state, model_message):
    return dataclasses.replace(append(state, model_message), pending=False)


def validate_prompt(prompt):
    if not prompt or not prompt.strip():
        raise ValidationError("Prompt cannot be empty")


def validate_studio_submission(prompt, image, operation):
    validate_prompt(prompt)
    if operation not in OPERATIONS:
        raise ValidationError(f"Unknown operation: {operation}")
    if operation == EDIT and image is None:
        raise ValidationError("Please upload an image to edit")


def _call(operation, fn, *args):
    """Run a service call, turning anything it raises into a Failure."""
    try:
        return fn(*args)
    except Exception as e:
        logger.exception("%s raised instead of returning a result", operation)
        return Failure(classify(e))


class StudioSession:
    """The Image Studio transcript plus the generate/edit round trip."""

    def __init__(self, service):
        self.service = service
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        greeting = STUDIO_WELCOME if service.is_configured else STUDIO_NOT_CONFIGURED
        self.state = append(Conversation(), self._message("model", text=greeting))

    def _message(self, role, **kwargs):
        return StudioMessage(id=str(next(self._ids)), role=role, **kwargs)

    @property
    def messages(self):
        return self.state.messages

    @property
    def pending(self):
        return self.state.pending

    def find(self, message_id):
        for message in self.state.messages:
            if message.id == message_id:
                return message
        return None

    def submit(self, prompt, image=None, operation=None):
        """Run one generate or edit request and return the two messages it appended.

        Raises ValidationError (or SubmissionRejected) without touching the
        transcript when the input is rejected locally.
        """
        operation = operation or (EDIT if image is not None else GENERATE)
        validate_studio_submission(prompt, image, operation)
        if operation == GENERATE:
            image = None
        source_image_url = image.to_data_uri() if image is not None else None

        with self._lock:
            user_message = self._message("user", text=prompt, source_image_url=source_image_url)
            self.state = submit(self.state, user_message)

        if image is not None:
            result = _call("edit_image", self.service.edit_image, prompt, image)
        else:
            result = _call("generate_image", self.service.generate_image, prompt)

        with self._lock:
            if result.ok:
                model_message = self._message(
                    "model",
                    text=STUDIO_RESULT.format(prompt=prompt),
                    result_image_url=result.value,
                    source_image_url=source_image_url,
                )
            else:
                model_message = self._message(
                    "model",
                    text=STUDIO_FAILURE.format(user_message=result.error.user_message),
                )
            self.state = resolve(self.state, model_message)

        return user_message, model_message


class ChatSession:
    """The Chatbot transcript, backed by one Gemini chat."""

    def __init__(self, service):
        self.service = service
        self._lock = threading.Lock()
        self._chat = None

        if not service.is_configured:
            greeting = CHAT_NOT_CONFIGURED
        else:
            result = service.create_chat()
            if result.ok:
                self._chat = result.value
                greeting = CHAT_WELCOME
            else:
                greeting = CHAT_FAILURE.format(user_message=result.error.user_message)
        self.state = append(Conversation(), ChatMessage("model", greeting))

    @property
    def messages(self):
        return self.state.messages

    @property
    def pending(self):
        return self.state.pending

    def send(self, text):
        """Send one message and return the user and model messages appended."""
        validate_prompt(text)
        user_message = ChatMessage("user", text)
        with self._lock:
            self.state = submit(self.state, user_message)

        result = None
        if self._chat is None and self.service.is_configured:
            result = _call("create_chat", self.service.create_chat)
            if result.ok:
                self._chat = result.value
        if result is None or result.ok:
            result = _call("send_chat_message", self.service.send_chat_message, self._chat, text)

        if result.ok:
            model_message = ChatMessage("model", result.value)
        else:
            model_message = ChatMessage("model", CHAT_FAILURE.format(user_message=result.error.user_message))
        with self._lock:
            self.state = resolve(self.state, model_message)
        return user_message, model_message
