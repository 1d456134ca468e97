"""
Screen awareness (read-only): foreground app context and on-screen elements.
"""
from rootpilot.vision.ui_elements import ElementExtractor, UIElement
from rootpilot.vision.window_context import AppContext, ContextDetector

__all__ = ["AppContext", "ContextDetector", "ElementExtractor", "UIElement"]
