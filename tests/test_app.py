"""Tests for the Flask endpoints."""

import base64
import io

import pytest

from app import create_app, decode_data_uri, download_filename
from conversation import StudioMessage, submit
from error_classifier import USER_MESSAGES, ErrorCategory
from gemini_service import ValidationError
from settings import Settings


def studio_session(app):
    return app.extensions["creative_suite"]["studio"]


class TestIndexAndStatus:
    def test_index(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert b"Gemini Creative Suite" in response.data

    def test_status(self, client):
        data = client.get("/api/status").get_json()

        assert data == {"configured": True, "image_model": "image-model", "chat_model": "chat-model"}

    def test_status_without_key(self, unconfigured_service):
        app = create_app(Settings(), service=unconfigured_service)

        data = app.test_client().get("/api/status").get_json()

        assert data["configured"] is False

    def test_default_service_from_settings(self):
        app = create_app(Settings(api_key=None, image_model="img", chat_model="chat"))

        service = app.extensions["creative_suite"]["service"]
        assert service.is_configured is False
        assert service.image_model == "img"


class TestStudioEndpoints:
    def test_generate(self, client, genai_client):
        response = client.post("/api/studio", data={"prompt": "a cat"})

        assert response.status_code == 200
        user, model = response.get_json()["messages"]
        assert user["role"] == "user"
        assert user["text"] == "a cat"
        assert model["role"] == "model"
        assert model["result_image_url"].startswith("data:image/png;base64,")
        assert genai_client.models.generate_content.call_count == 1

    def test_edit_with_upload(self, client, genai_client, png_bytes):
        response = client.post(
            "/api/studio",
            data={"prompt": "make it blue", "image": (io.BytesIO(png_bytes), "cat.png", "image/png")},
            content_type="multipart/form-data",
        )

        assert response.status_code == 200
        user, model = response.get_json()["messages"]
        assert user["source_image_url"].startswith("data:image/png;base64,")
        contents = genai_client.models.generate_content.call_args.kwargs["contents"]
        assert contents[0].inline_data.data == png_bytes

    def test_blank_prompt_is_400(self, client, genai_client):
        response = client.post("/api/studio", data={"prompt": "  "})

        assert response.status_code == 400
        assert response.get_json()["error"] == "Prompt cannot be empty"
        genai_client.models.generate_content.assert_not_called()
        assert len(client.get("/api/studio/messages").get_json()["messages"]) == 1

    def test_edit_without_image_is_400(self, client):
        response = client.post("/api/studio", data={"prompt": "make it blue", "operation": "edit"})

        assert response.status_code == 400

    def test_invalid_upload_is_400(self, client):
        response = client.post(
            "/api/studio",
            data={"prompt": "make it blue", "image": (io.BytesIO(b"not an image"), "x.png", "image/png")},
            content_type="multipart/form-data",
        )

        assert response.status_code == 400
        assert "not a valid image" in response.get_json()["error"]

    def test_oversized_upload_is_413(self, service, genai_client, png_bytes):
        app = create_app(Settings(max_upload_bytes=64), service=service)

        response = app.test_client().post(
            "/api/studio",
            data={"prompt": "make it blue", "image": (io.BytesIO(png_bytes * 4), "cat.png", "image/png")},
            content_type="multipart/form-data",
        )

        assert response.status_code == 413
        assert response.get_json() == {"error": "Uploaded file is too large"}
        assert len(studio_session(app).messages) == 1
        genai_client.models.generate_content.assert_not_called()

    def test_remote_failure_is_a_transcript_message(self, client, genai_client):
        genai_client.models.generate_content.side_effect = Exception("Quota exceeded")

        response = client.post("/api/studio", data={"prompt": "a cat"})

        assert response.status_code == 200
        model = response.get_json()["messages"][1]
        assert USER_MESSAGES[ErrorCategory.QUOTA_EXCEEDED] in model["text"]

    def test_busy_is_409(self, app, client):
        session = studio_session(app)
        session.state = submit(session.state, StudioMessage(id="x", role="user", text="in flight"))

        response = client.post("/api/studio", data={"prompt": "a cat"})

        assert response.status_code == 409

    def test_messages(self, client):
        client.post("/api/studio", data={"prompt": "a cat"})

        data = client.get("/api/studio/messages").get_json()

        assert data["pending"] is False
        assert [m["role"] for m in data["messages"]] == ["model", "user", "model"]

    def test_download(self, client):
        model = client.post("/api/studio", data={"prompt": "a cat"}).get_json()["messages"][1]

        response = client.get(f"/api/studio/messages/{model['id']}/download")

        assert response.status_code == 200
        assert response.mimetype == "image/png"
        assert response.data == b"fake-png-bytes"
        assert "attachment" in response.headers["Content-Disposition"]
        assert ".png" in response.headers["Content-Disposition"]

    def test_download_missing(self, client):
        assert client.get("/api/studio/messages/999/download").status_code == 404

    def test_download_user_message_has_no_result(self, client):
        user = client.post("/api/studio", data={"prompt": "a cat"}).get_json()["messages"][0]

        assert client.get(f"/api/studio/messages/{user['id']}/download").status_code == 404


class TestChatEndpoints:
    def test_send(self, client):
        response = client.post("/api/chat", json={"message": "hello"})

        assert response.status_code == 200
        assert response.get_json()["messages"] == [
            {"role": "user", "text": "hello"},
            {"role": "model", "text": "Hi there!"},
        ]

    def test_blank(self, client):
        assert client.post("/api/chat", json={"message": ""}).status_code == 400

    def test_missing_body(self, client):
        assert client.post("/api/chat").status_code == 400

    def test_messages(self, client):
        client.post("/api/chat", json={"message": "hello"})

        data = client.get("/api/chat/messages").get_json()

        assert [m["text"] for m in data["messages"]][1:] == ["hello", "Hi there!"]
        assert data["pending"] is False


class TestHelpers:
    def test_decode_data_uri(self):
        mime, data = decode_data_uri("data:image/jpeg;base64," + base64.b64encode(b"abc").decode())

        assert mime == "image/jpeg"
        assert data == b"abc"

    @pytest.mark.parametrize("bad", ["nope", "data:image/png;base64,!!!"])
    def test_decode_data_uri_invalid(self, bad):
        with pytest.raises(ValidationError):
            decode_data_uri(bad)

    def test_download_filename(self):
        message = StudioMessage(id="1", role="model", text='Here\'s an image based on your prompt: "a cat"')

        assert download_filename(message, "image/png") == "Heres_an_image_based_on_your_prompt_a_cat.png"

    def test_download_filename_without_text(self):
        message = StudioMessage(id="1", role="model")

        assert download_filename(message, "image/png") == "generated_image.png"
