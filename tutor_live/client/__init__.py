"""One-shot solver client and image staging."""
