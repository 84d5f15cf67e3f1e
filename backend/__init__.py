"""VoiceDesk backend: storage, dispatcher, REST and WebSocket API."""
