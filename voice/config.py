"""
Voice layer configuration.
Speech provider settings, synthesizer defaults, and spoken feedback templates.
"""

import os

# === Providers ===
STT_PROVIDER = os.environ.get("STT_PROVIDER", "text")          # "text"
TTS_PROVIDER = os.environ.get("TTS_PROVIDER", "silent")        # "silent" | "elevenlabs"

# === ElevenLabs TTS ===
ELEVENLABS_API_KEY = os.environ.get("ELEVENLABS_API_KEY", "")
ELEVENLABS_VOICE_ID = os.environ.get("ELEVENLABS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")  # "Rachel" default
ELEVENLABS_MODEL_ID = "eleven_turbo_v2"
TTS_TIMEOUT_S = 10

TTS_VOICE_SETTINGS = {
    "stability": 0.7,
    "similarity_boost": 0.8,
}

# === Synthesizer defaults (slightly faster than normal speech) ===
SPEECH_RATE = 1.1
SPEECH_PITCH = 1.0
SPEECH_VOLUME = 0.8

# === Backend client ===
VOICE_API_URL = os.environ.get("VOICE_API_URL", "http://localhost:8000")
VOICE_API_TIMEOUT_S = float(os.environ.get("VOICE_API_TIMEOUT_S", "10"))

# === Feedback templates ===
FEEDBACK_EVENTS = {
    "task_created": 'Task "{title}" created with {priority} priority',
    "task_completed": 'Task "{title}" marked as completed',
    "expense_added": "Expense of ${amount} recorded under {category}",
    "income_added": "Income of ${amount} recorded",
    "tasks_retrieved": "You have {count} pending tasks: {titles}",
    "no_tasks": "You have no pending tasks",
    "financial_summary": "Income ${income}, expenses ${expenses}, net ${net}",
    "navigation": "Opening {destination}",
    "unknown_intent": 'I did not understand that command. Say "help" to hear available commands.',
    "error": "There was an error processing that command.",
    "not_supported": "Speech recognition not supported",
    "no_speech": "No speech detected. Please try speaking again.",
    "permission_denied": "Microphone access was denied",
}

HELP_TEXT = ". ".join([
    "You can say",
    "Go to dashboard, tasks, finances, voice, or AI",
    "Create task followed by the task name",
    "Complete task followed by the task name",
    "Add expense or income followed by the amount",
    "Show my tasks, or what's my balance",
    "Tell me a joke",
])

JOKES = [
    "Why did the budget go to therapy? It had too many unresolved issues.",
    "I told my to-do list a joke. It did not get done either.",
    "Why do programmers prefer dark mode? Because light attracts bugs.",
    "My wallet is like an onion. Opening it makes me cry.",
]
