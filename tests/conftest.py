"""
Shared pytest fixtures for the Gemini Creative Suite tests.

The Gemini SDK client is always a Mock, so no test touches the network.
"""

import io
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
from PIL import Image
from google.genai import types

from app import create_app
from gemini_service import GeminiService, ImageUpload
from settings import Settings


def image_response(data=b"fake-png-bytes", mime_type="image/png"):
    """A real SDK response carrying one inline image part."""
    return types.GenerateContentResponse(
        candidates=[
            types.Candidate(
                content=types.Content(
                    role="model",
                    parts=[types.Part(inline_data=types.Blob(data=data, mime_type=mime_type))],
                ),
                finish_reason=types.FinishReason.STOP,
            )
        ]
    )


def envelope(parts=(), finish_reason=None, block_reason=None, block_reason_message=None, text=None):
    """A duck-typed response envelope for shapes the SDK enums may not cover."""
    feedback = None
    if block_reason is not None:
        feedback = SimpleNamespace(block_reason=block_reason, block_reason_message=block_reason_message)
    candidate = SimpleNamespace(content=SimpleNamespace(parts=list(parts)), finish_reason=finish_reason)
    return SimpleNamespace(candidates=[candidate], prompt_feedback=feedback, text=text)


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), "red").save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_upload(png_bytes):
    return ImageUpload.from_bytes(png_bytes, "image/png")


@pytest.fixture
def genai_client():
    """Mock genai.Client whose image calls succeed unless a test says otherwise."""
    client = Mock()
    client.models.generate_content.return_value = image_response()
    chat = Mock()
    chat.send_message.return_value = SimpleNamespace(text="Hi there!", prompt_feedback=None)
    client.chats.create.return_value = chat
    return client


@pytest.fixture
def service(genai_client):
    return GeminiService(genai_client, "image-model", "chat-model")


@pytest.fixture
def unconfigured_service():
    return GeminiService(None, "image-model", "chat-model")


@pytest.fixture
def app(service):
    app = create_app(Settings(), service=service)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client
