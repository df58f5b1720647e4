"""Realtime multimodal session backend."""
