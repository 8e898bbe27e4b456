FAILURE_MARKER = "❌"

STUDIO_WELCOME = (
    "Welcome to the Image Studio! Describe the image you want to create, "
    "or upload an image to edit."
)

STUDIO_NOT_CONFIGURED = (
    "Configuration needed. Please set the GEMINI_API_KEY environment variable "
    "to use the Image Studio."
)

CHAT_WELCOME = "Hello! I'm Gemini. How can I help you today?"

CHAT_NOT_CONFIGURED = (
    "Configuration needed. Please set the GEMINI_API_KEY environment variable "
    "to use the chatbot."
)

STUDIO_RESULT = "Here's an image based on your prompt: \"{prompt}\""

STUDIO_FAILURE = FAILURE_MARKER + " Sorry, I couldn't generate the image. {user_message}"

CHAT_FAILURE = FAILURE_MARKER + " {user_message}"
