DEFAULT_DATABASE_URL = "sqlite:chat_database.db"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_TRANSCRIBE_MODEL = "whisper-1"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_CONTEXT_MAX_MESSAGES = 10
DEFAULT_CONTEXT_MAX_AGE_HOURS = 0
DEFAULT_COMMAND_PREFIX = "/"

# Discord rejects messages over 2000 characters.
DISCORD_MAX_MESSAGE_LEN = 1900

VOICE_FILENAME_FALLBACK = "voice-message.ogg"
