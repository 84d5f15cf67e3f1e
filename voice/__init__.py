"""
VoiceDesk Voice Layer
Speech capture, command parsing, the per-session command queue, and spoken feedback.
"""

from voice.command_parser import CommandParser, Intent, RecognizedCommand, Transcript
from voice.command_queue import CommandExecutor, CommandQueueRegistry, TransientCommandError
from voice.voice_input import ListenerState, SpeechCaptureAdapter
from voice.tts_feedback import VoiceFeedback, compose_feedback
