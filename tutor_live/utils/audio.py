import librosa
import numpy as np

TARGET_SAMPLE_RATE = 16000


def pcm16_to_float32(pcm_bytes, channels: int = 1):
    """PCM16 bytes → float32 numpy array, downmixed to mono."""
    audio = np.frombuffer(pcm_bytes, dtype=np.int16).astype(np.float32) / 32768.0
    if channels > 1:
        usable = len(audio) - (len(audio) % channels)
        audio = audio[:usable].reshape(-1, channels).mean(axis=1)
    return audio


def float32_to_pcm16(audio) -> bytes:
    """float32 samples in [-1, 1] → little-endian PCM16 bytes."""
    clipped = np.clip(audio, -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


def ensure_16k(audio, src_rate):
    """Resample input audio to the 16 kHz wire rate when needed."""
    if src_rate == TARGET_SAMPLE_RATE:
        return audio
    return librosa.resample(audio, orig_sr=src_rate, target_sr=TARGET_SAMPLE_RATE)



def chunk_rms(audio) -> float:
    """Compute RMS of float32 samples."""
    if audio is None or len(audio) == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(audio))))
