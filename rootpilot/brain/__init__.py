"""
Brain module for rootpilot.
Generative fallback through a local Ollama server.
"""
from rootpilot.brain.command_generator import CommandGenerator
from rootpilot.brain.ollama_client import OllamaClient

__all__ = ["CommandGenerator", "OllamaClient"]
