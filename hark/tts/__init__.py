from hark.tts.audio_player import AudioPlayer
from hark.tts.synthesizer import SpeechSynthesizer
from hark.tts.types import SpeechOptions, TTSState

__all__ = ["AudioPlayer", "SpeechOptions", "SpeechSynthesizer", "TTSState"]
