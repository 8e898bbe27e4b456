import base64
import io
import logging
import time
from dataclasses import dataclass
from typing import Generic, TypeVar

from PIL import Image, UnidentifiedImageError
from google.genai import types
from google.genai.types import Modality

from error_classifier import ClassifiedError, ErrorCategory, classify

logger = logging.getLogger(__name__)

T = TypeVar("T")

NORMAL_STOP = "STOP"
NO_IMAGE = "NO_IMAGE"


class ValidationError(ValueError):
    """Input rejected locally, before any request is made."""


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    ok = True


@dataclass(frozen=True)
class Failure:
    error: ClassifiedError
    ok = False


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    mime_type: str

    @classmethod
    def from_bytes(cls, data, mime_type=None):
        """Check that `data` is an image and settle on its mime type.

        The declared mime type wins when it is an ``image/*`` type; otherwise
        it is derived from the format Pillow detects.
        """
        if not data:
            raise ValidationError("Uploaded image is empty")
        try:
            with Image.open(io.BytesIO(data)) as img:
                detected = Image.MIME.get(img.format or "")
        except Image.DecompressionBombError as e:
            raise ValidationError("Uploaded image is too large") from e
        except (UnidentifiedImageError, OSError) as e:
            raise ValidationError("Uploaded file is not a valid image") from e

        if not (mime_type and mime_type.startswith("image/")):
            mime_type = detected or "image/png"
        return cls(data=data, mime_type=mime_type)

    def to_base64(self):
        return base64.b64encode(self.data).decode("utf-8")

    def to_data_uri(self):
        return to_data_uri(self.mime_type, self.to_base64())


def to_data_uri(mime_type, b64):
    return f"data:{mime_type};base64,{b64}"


def _enum_value(value):
    return getattr(value, "value", value)


def _response_text(envelope):
    text = getattr(envelope, "text", None)
    if isinstance(text, str) and text.strip():
        return text.strip()
    return None


def _find_inline_data(envelope):
    for candidate in getattr(envelope, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and getattr(inline, "data", None):
                return inline
    return None


def parse_image_response(envelope):
    """Return the image in `envelope` as a data URI, or raise ClassifiedError.

    Checks run in a fixed order: inline image data, prompt block, finish
    reason of the first candidate, then any text the model sent instead.
    """
    inline = _find_inline_data(envelope)
    if inline is not None:
        data = inline.data
        b64 = data if isinstance(data, str) else base64.b64encode(data).decode("utf-8")
        return to_data_uri(inline.mime_type or "image/png", b64)

    feedback = getattr(envelope, "prompt_feedback", None)
    block_reason = getattr(feedback, "block_reason", None)
    if block_reason:
        reason = f"Request blocked due to {_enum_value(block_reason)}."
        block_message = getattr(feedback, "block_reason_message", None)
        if block_message:
            reason += f" {block_message}"
        raise ClassifiedError.of(
            ErrorCategory.CONTENT_BLOCKED,
            reason,
            f"{reason} Please try rephrasing your request.",
        )

    candidates = getattr(envelope, "candidates", None) or []
    finish_reason = _enum_value(getattr(candidates[0], "finish_reason", None)) if candidates else None
    if finish_reason and finish_reason != NORMAL_STOP:
        if finish_reason == NO_IMAGE:
            text = _response_text(envelope)
            if text:
                raise ClassifiedError.of(
                    ErrorCategory.UNKNOWN,
                    f'Model provided an explanation instead of an image: "{text}"',
                )
            raise ClassifiedError.of(
                ErrorCategory.UNKNOWN,
                "The model was unable to generate an image for this prompt. "
                "Please try rephrasing your request",
            )
        raise ClassifiedError.of(
            ErrorCategory.UNKNOWN,
            f"Image generation stopped unexpectedly. Reason: {finish_reason}",
        )

    text = _response_text(envelope)
    if text:
        raise ClassifiedError.of(
            ErrorCategory.UNKNOWN,
            f'Model returned a text explanation instead of an image: "{text}"',
        )

    raise ClassifiedError.of(
        ErrorCategory.UNKNOWN,
        "No image data found in response. The model may have failed to "
        "generate an image for the given prompt",
    )


def parse_chat_response(envelope):
    text = getattr(envelope, "text", None)
    if isinstance(text, str) and text.strip():
        return text

    feedback = getattr(envelope, "prompt_feedback", None)
    block_reason = getattr(feedback, "block_reason", None)
    if block_reason:
        raise ClassifiedError.of(
            ErrorCategory.CONTENT_BLOCKED,
            f"Message blocked due to {_enum_value(block_reason)}.",
        )
    raise ClassifiedError.of(ErrorCategory.UNKNOWN, "The model returned an empty response")


class GeminiService:
    """Calls Gemini for image generation, image editing and chat.

    Every call returns Success or Failure; nothing raises out of here.
    """

    def __init__(self, client, image_model, chat_model):
        self.client = client
        self.image_model = image_model
        self.chat_model = chat_model

    @property
    def is_configured(self):
        return self.client is not None

    def _not_configured(self):
        return Failure(ClassifiedError.of(
            ErrorCategory.NOT_CONFIGURED,
            "Gemini API key not configured",
        ))

    def _fail(self, operation, error):
        classified = classify(error)
        if isinstance(error, ClassifiedError):
            logger.warning("%s failed [%s]: %s", operation, classified.category.value, classified.raw_message)
        else:
            logger.exception("%s failed [%s]", operation, classified.category.value)
        return Failure(classified)

    def _image_config(self):
        return types.GenerateContentConfig(response_modalities=[Modality.IMAGE])

    def _generate(self, operation, build_contents):
        if not self.is_configured:
            return self._not_configured()
        try:
            start = time.time()
            response = self.client.models.generate_content(
                model=self.image_model,
                contents=build_contents(),
                config=self._image_config(),
            )
            data_uri = parse_image_response(response)
            logger.info("%s succeeded in %.1fs", operation, time.time() - start)
            return Success(data_uri)
        except Exception as e:
            return self._fail(operation, e)

    def generate_image(self, prompt):
        return self._generate("generate_image", lambda: prompt)

    def edit_image(self, prompt, image):
        def build_contents():
            return [
                types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
                prompt,
            ]

        return self._generate("edit_image", build_contents)

    def create_chat(self):
        if not self.is_configured:
            return self._not_configured()
        try:
            return Success(self.client.chats.create(model=self.chat_model))
        except Exception as e:
            return self._fail("create_chat", e)

    def send_chat_message(self, chat, text):
        if not self.is_configured:
            return self._not_configured()
        try:
            start = time.time()
            reply = parse_chat_response(chat.send_message(text))
            logger.info("send_chat_message succeeded in %.1fs", time.time() - start)
            return Success(reply)
        except Exception as e:
            return self._fail("send_chat_message", e)
