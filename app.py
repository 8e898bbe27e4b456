import base64
import binascii
import io
import logging
import mimetypes

from flask import Flask, jsonify, request, send_file
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename

from conversation import ChatSession, StudioSession, SubmissionRejected
from gemini_service import GeminiService, ImageUpload, ValidationError
from settings import Settings, create_client

logger = logging.getLogger(__name__)


def decode_data_uri(data_uri):
    """Split a ``data:<mime>;base64,<payload>`` URI into (mime, bytes)."""
    try:
        header, b64 = data_uri.split(",", 1)
        mime = header.split(":", 1)[1].split(";", 1)[0]
        return mime, base64.b64decode(b64, validate=True)
    except (IndexError, ValueError, binascii.Error) as e:
        raise ValidationError("Invalid image data") from e


def download_filename(message, mime):
    stem = secure_filename("_".join((message.text or "").split())) or "generated_image"
    extension = mimetypes.guess_extension(mime) or ".png"
    return stem + extension


def create_app(settings=None, service=None):
    settings = settings or Settings.from_env()
    if service is None:
        service = GeminiService(create_client(settings), settings.image_model, settings.chat_model)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_bytes
    studio = StudioSession(service)
    chat = ChatSession(service)
    app.extensions["creative_suite"] = {"service": service, "studio": studio, "chat": chat}

    if not service.is_configured:
        logger.warning("GEMINI_API_KEY is not set; requests will fail as not configured")

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        status = 409 if isinstance(e, SubmissionRejected) else 400
        return jsonify({"error": str(e)}), status

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(e):
        return jsonify({"error": "Uploaded file is too large"}), 413

    @app.route("/")
    def index():
        return HTML_PAGE

    @app.route("/api/status")
    def status():
        return jsonify({
            "configured": service.is_configured,
            "image_model": service.image_model,
            "chat_model": service.chat_model,
        })

    @app.route("/api/studio/messages")
    def studio_messages():
        return jsonify({
            "messages": [m.to_dict() for m in studio.messages],
            "pending": studio.pending,
        })

    @app.route("/api/studio", methods=["POST"])
    def studio_submit():
        prompt = request.form.get("prompt", "")
        operation = request.form.get("operation") or None

        image = None
        upload = request.files.get("image")
        if upload is not None and upload.filename:
            image = ImageUpload.from_bytes(upload.read(), upload.mimetype)

        messages = studio.submit(prompt, image=image, operation=operation)
        return jsonify({"messages": [m.to_dict() for m in messages]})

    @app.route("/api/studio/messages/<message_id>/download")
    def studio_download(message_id):
        message = studio.find(message_id)
        if message is None or not message.result_image_url:
            return jsonify({"error": "Image not found"}), 404

        mime, data = decode_data_uri(message.result_image_url)
        return send_file(
            io.BytesIO(data),
            mimetype=mime,
            as_attachment=True,
            download_name=download_filename(message, mime),
        )

    @app.route("/api/chat/messages")
    def chat_messages():
        return jsonify({
            "messages": [m.to_dict() for m in chat.messages],
            "pending": chat.pending,
        })

    @app.route("/api/chat", methods=["POST"])
    def chat_send():
        data = request.get_json(silent=True) or {}
        messages = chat.send(data.get("message", ""))
        return jsonify({"messages": [m.to_dict() for m in messages]})

    return app


HTML_PAGE = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Gemini Creative Suite</title>
<style>
  *, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }

  body {
    font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
    background: #0f0f0f;
    color: #e0e0e0;
    height: 100vh;
    display: flex;
    flex-direction: column;
  }

  header {
    padding: 16px 24px;
    border-bottom: 1px solid #1e1e1e;
    display: flex;
    align-items: center;
    gap: 16px;
    flex-shrink: 0;
  }

  header h1 {
    font-size: 1.1rem;
    font-weight: 600;
    background: linear-gradient(90deg, #a78bfa, #ec4899);
    -webkit-background-clip: text;
    color: transparent;
  }

  nav { margin-left: auto; display: flex; gap: 8px; }

  .tab-btn {
    background: #1a1a1a;
    color: #aaa;
    font-size: 0.82rem;
    padding: 8px 16px;
    border-radius: 8px;
    border: 1px solid #2a2a2a;
    cursor: pointer;
    transition: background 0.15s, color 0.15s;
  }
  .tab-btn:hover { background: #232323; color: #e0e0e0; }
  .tab-btn.active { background: #8b5cf6; color: #fff; border-color: #8b5cf6; }

  .panel { flex: 1; display: none; flex-direction: column; overflow: hidden; }
  .panel.visible { display: flex; }

  .transcript {
    flex: 1;
    overflow-y: auto;
    padding: 20px 24px;
    display: flex;
    flex-direction: column;
    gap: 14px;
  }

  .bubble {
    max-width: 640px;
    padding: 12px 16px;
    border-radius: 14px;
    font-size: 0.88rem;
    line-height: 1.5;
    white-space: pre-wrap;
    word-break: break-word;
  }
  .bubble.user { align-self: flex-end; background: #6d28d9; color: #fff; }
  .bubble.model { align-self: flex-start; background: #1e1e1e; }
  .bubble img { display: block; max-width: 100%; max-height: 60vh; border-radius: 10px; margin-top: 8px; }
  .bubble .caption { font-size: 0.72rem; color: #bbb; margin-top: 8px; }
  .bubble a.download { display: inline-block; margin-top: 6px; font-size: 0.75rem; color: #a78bfa; }

  .loading { display: flex; align-items: center; gap: 10px; font-size: 0.8rem; color: #888; }
  .spinner {
    width: 16px; height: 16px;
    border: 2px solid #333;
    border-top-color: #8b5cf6;
    border-radius: 50%;
    animation: spin 0.8s linear infinite;
  }
  @keyframes spin { to { transform: rotate(360deg); } }

  .composer {
    border-top: 1px solid #1e1e1e;
    padding: 16px 24px;
    display: flex;
    flex-direction: column;
    gap: 8px;
  }
  .composer-row { display: flex; gap: 10px; align-items: center; }

  input[type=text] {
    flex: 1;
    background: #1a1a1a;
    color: #e0e0e0;
    border: 1px solid #2a2a2a;
    border-radius: 8px;
    padding: 10px 12px;
    font-size: 0.88rem;
    outline: none;
  }
  input[type=text]:focus { border-color: #8b5cf6; }

  button.send {
    background: #8b5cf6;
    color: #fff;
    border: none;
    border-radius: 8px;
    padding: 10px 18px;
    font-size: 0.85rem;
    cursor: pointer;
  }
  button.send:disabled { background: #333; color: #777; cursor: not-allowed; }

  .attach { background: #1a1a1a; color: #aaa; border: 1px solid #2a2a2a; border-radius: 8px; padding: 9px 12px; cursor: pointer; }
  .preview { display: none; align-items: center; gap: 8px; font-size: 0.75rem; color: #999; }
  .preview.visible { display: flex; }
  .preview img { width: 40px; height: 40px; object-fit: cover; border-radius: 6px; }
  .preview button { background: none; border: none; color: #888; font-size: 1.2rem; cursor: pointer; }

  .status { font-size: 0.75rem; color: #f87171; min-height: 1em; }
</style>
</head>
<body>

<header>
  <h1>Gemini Creative Suite</h1>
  <nav>
    <button class="tab-btn active" data-tab="studio">Image Studio</button>
    <button class="tab-btn" data-tab="chat">Chatbot</button>
  </nav>
</header>

<!-- ── Image Studio ── -->
<div id="studio" class="panel visible">
  <div id="studioTranscript" class="transcript"></div>
  <div class="composer">
    <div id="studioStatus" class="status"></div>
    <div id="studioPreview" class="preview">
      <img id="studioPreviewImg" alt="preview">
      <span id="studioPreviewName"></span>
      <button onclick="clearImage()">&times;</button>
    </div>
    <div class="composer-row">
      <input id="studioFile" type="file" accept="image/*" hidden>
      <button class="attach" onclick="studioFileEl.click()" title="Upload image to edit">&#128206;</button>
      <input id="studioPrompt" type="text" placeholder="Describe the image to generate...">
      <button id="studioSend" class="send" onclick="submitStudio()">Generate</button>
    </div>
  </div>
</div>

<!-- ── Chatbot ── -->
<div id="chat" class="panel">
  <div id="chatTranscript" class="transcript"></div>
  <div class="composer">
    <div id="chatStatus" class="status"></div>
    <div class="composer-row">
      <input id="chatPrompt" type="text" placeholder="Type your message...">
      <button id="chatSend" class="send" onclick="sendChat()">Send</button>
    </div>
  </div>
</div>

<script>
  // ── Tabs ──
  document.querySelectorAll('.tab-btn').forEach(btn => {
    btn.addEventListener('click', () => {
      document.querySelectorAll('.tab-btn').forEach(b => b.classList.toggle('active', b === btn));
      document.querySelectorAll('.panel').forEach(p => p.classList.toggle('visible', p.id === btn.dataset.tab));
    });
  });

  let configured = true;

  async function loadStatus() {
    const res = await fetch('/api/status');
    const data = await res.json();
    configured = data.configured;
    if (!configured) {
      studioPromptEl.placeholder = 'API Key not configured';
      chatPromptEl.placeholder = 'API Key not configured';
    }
  }

  // ── Rendering ──
  function renderMessage(container, m) {
    const el = document.createElement('div');
    el.className = 'bubble ' + m.role;
    if (m.text) {
      const p = document.createElement('div');
      p.textContent = m.text;
      el.appendChild(p);
    }
    if (m.source_image_url && !m.result_image_url) {
      const cap = document.createElement('div');
      cap.className = 'caption';
      cap.textContent = 'Editing this image:';
      el.appendChild(cap);
      const img = document.createElement('img');
      img.src = m.source_image_url;
      el.appendChild(img);
    }
    if (m.result_image_url) {
      const img = document.createElement('img');
      img.src = m.result_image_url;
      img.alt = m.text || 'generated image';
      el.appendChild(img);
      const a = document.createElement('a');
      a.className = 'download';
      a.href = '/api/studio/messages/' + encodeURIComponent(m.id) + '/download';
      a.textContent = 'Download';
      el.appendChild(a);
    }
    container.appendChild(el);
    container.scrollTop = container.scrollHeight;
    return el;
  }

  function showLoading(container, label) {
    const el = document.createElement('div');
    el.className = 'bubble model loading';
    el.innerHTML = '<div class="spinner"></div>' + label;
    container.appendChild(el);
    container.scrollTop = container.scrollHeight;
    return el;
  }

  async function loadTranscript(url, container) {
    const res = await fetch(url);
    const data = await res.json();
    container.innerHTML = '';
    data.messages.forEach(m => renderMessage(container, m));
  }

  // ═══════════════════════════════════
  // Image Studio
  // ═══════════════════════════════════
  const studioTranscriptEl = document.getElementById('studioTranscript');
  const studioPromptEl = document.getElementById('studioPrompt');
  const studioFileEl = document.getElementById('studioFile');
  const studioSendBtn = document.getElementById('studioSend');
  const studioStatusEl = document.getElementById('studioStatus');
  const studioPreviewEl = document.getElementById('studioPreview');
  let studioImage = null;
  let studioBusy = false;

  studioFileEl.addEventListener('change', () => {
    if (studioFileEl.files && studioFileEl.files[0]) {
      studioImage = studioFileEl.files[0];
      document.getElementById('studioPreviewImg').src = URL.createObjectURL(studioImage);
      document.getElementById('studioPreviewName').textContent = studioImage.name;
      studioPreviewEl.classList.add('visible');
      studioSendBtn.textContent = 'Edit';
      studioPromptEl.placeholder = 'Describe how to edit the image...';
    }
  });

  function clearImage() {
    studioImage = null;
    studioFileEl.value = '';
    studioPreviewEl.classList.remove('visible');
    studioSendBtn.textContent = 'Generate';
    studioPromptEl.placeholder = configured ? 'Describe the image to generate...' : 'API Key not configured';
  }

  studioPromptEl.addEventListener('keydown', e => {
    if (e.key === 'Enter') { e.preventDefault(); submitStudio(); }
  });

  async function submitStudio() {
    const prompt = studioPromptEl.value;
    if (!prompt.trim() || studioBusy) return;

    const form = new FormData();
    form.append('prompt', prompt);
    if (studioImage) form.append('image', studioImage);

    // optimistic: echo the prompt and clear inputs before the request resolves
    renderMessage(studioTranscriptEl, {
      role: 'user',
      text: prompt,
      source_image_url: studioImage ? URL.createObjectURL(studioImage) : null,
    });
    studioPromptEl.value = '';
    clearImage();

    studioBusy = true;
    studioSendBtn.disabled = true;
    studioStatusEl.textContent = '';
    const loading = showLoading(studioTranscriptEl, 'Generating...');

    try {
      const res = await fetch('/api/studio', { method: 'POST', body: form });
      const data = await res.json();
      if (!res.ok || data.error) throw new Error(data.error || 'HTTP ' + res.status);
    } catch (err) {
      studioStatusEl.textContent = err.message;
    } finally {
      loading.remove();
      studioBusy = false;
      studioSendBtn.disabled = false;
      await loadTranscript('/api/studio/messages', studioTranscriptEl);
    }
  }

  // ═══════════════════════════════════
  // Chatbot
  // ═══════════════════════════════════
  const chatTranscriptEl = document.getElementById('chatTranscript');
  const chatPromptEl = document.getElementById('chatPrompt');
  const chatSendBtn = document.getElementById('chatSend');
  const chatStatusEl = document.getElementById('chatStatus');
  let chatBusy = false;

  chatPromptEl.addEventListener('keydown', e => {
    if (e.key === 'Enter') { e.preventDefault(); sendChat(); }
  });

  async function sendChat() {
    const message = chatPromptEl.value;
    if (!message.trim() || chatBusy) return;

    renderMessage(chatTranscriptEl, { role: 'user', text: message });
    chatPromptEl.value = '';

    chatBusy = true;
    chatSendBtn.disabled = true;
    chatStatusEl.textContent = '';
    const loading = showLoading(chatTranscriptEl, 'Thinking...');

    try {
      const res = await fetch('/api/chat', {
        method: 'POST',
        headers: { 'Content-Type': 'application/json' },
        body: JSON.stringify({ message }),
      });
      const data = await res.json();
      if (!res.ok || data.error) throw new Error(data.error || 'HTTP ' + res.status);
    } catch (err) {
      chatStatusEl.textContent = err.message;
    } finally {
      loading.remove();
      chatBusy = false;
      chatSendBtn.disabled = false;
      await loadTranscript('/api/chat/messages', chatTranscriptEl);
    }
  }

  loadStatus();
  loadTranscript('/api/studio/messages', studioTranscriptEl);
  loadTranscript('/api/chat/messages', chatTranscriptEl);
</script>
</body>
</html>
"""

if __name__ == "__main__":
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    create_app(settings).run(debug=True, port=settings.port, threaded=True)
