"""Gemini adapter."""

from irix.adapters.gemini.client import GeminiAPI
from irix.adapters.gemini.exchange import Gemini

__all__ = ["Gemini", "GeminiAPI"]
