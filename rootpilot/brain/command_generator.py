"""
Generative fallback for rootpilot.

Builds a prompt, makes exactly one Ollama call and validates the response
into an ActionScript. Transport errors (ConnectionError / ValueError from
OllamaClient) propagate unchanged; unsafe or unusable responses raise
GenerationRejected. Retrying is the execution engine's concern, not this one.
"""
import re
import time
from typing import Optional, Sequence

from rootpilot.brain.ollama_client import OllamaClient
from rootpilot.brain.prompt_builder import build_launch_prompt, build_ui_prompt
from rootpilot.core.config import Config
from rootpilot.core.logger import get_logger
from rootpilot.core.script import ActionScript
from rootpilot.policy.script_safety import Variant, validate_response
from rootpilot.vision.ui_elements import UIElement

# phone=<value> inside a WhatsApp send URL
_WHATSAPP_PHONE_RE = re.compile(r"(api\.whatsapp\.com/send\?phone=)([^&'\"\n]+)")


def substitute_contacts(response: str, contacts, logger=None) -> str:
    """
    Replace contact names in WhatsApp `phone=` parameters with numbers.

    Values that are already numbers are left alone, as are names the
    directory cannot resolve.
    """
    if contacts is None:
        return response
    logger = logger or get_logger()

    def _replace(m: "re.Match") -> str:
        value = m.group(2).strip()
        if value.lstrip("+").isdigit():
            return m.group(0)
        number = contacts.resolve(value)
        if number is None:
            logger.warning(f"[GEN] no contact found for '{value}'")
            return m.group(0)
        logger.debug(f"[GEN] contact '{value}' -> {number}")
        return f"{m.group(1)}{number}"

    return _WHATSAPP_PHONE_RE.sub(_replace, response)


class CommandGenerator:
    """Context-aware script generation through a local language model"""

    def __init__(self, client: Optional[OllamaClient] = None, model: Optional[str] = None,
                 options: Optional[dict] = None, contacts=None, logger=None):
        self.logger = logger or get_logger()
        self.client = client or OllamaClient(
            base_url=Config.OLLAMA_BASE_URL,
            timeout=Config.LLM_TIMEOUT,
            logger=self.logger,
        )
        self.model = model or Config.OLLAMA_MODEL
        self.options = options if options is not None else Config.get_ollama_options()
        self.contacts = contacts

    @staticmethod
    def variant_for(context) -> Variant:
        return "ui" if context is not None else "launch"

    def build_prompt(self, instruction: str, context=None,
                     elements: Optional[Sequence[UIElement]] = None) -> str:
        if self.variant_for(context) == "ui":
            return build_ui_prompt(instruction, context, elements)
        return build_launch_prompt(instruction)

    def generate(self, instruction: str, context=None,
                 elements: Optional[Sequence[UIElement]] = None) -> ActionScript:
        """
        Generate a script for an instruction.

        Raises:
            GenerationRejected: the response failed validation
            ConnectionError, ValueError: the model service failed
        """
        variant = self.variant_for(context)
        prompt = self.build_prompt(instruction, context, elements)

        start_time = time.perf_counter()
        response = self.client.generate(prompt, model=self.model, options=self.options)
        elapsed_ms = int((time.perf_counter() - start_time) * 1000)
        self.logger.debug(f"[GEN] {variant} response in {elapsed_ms}ms: {response[:200]!r}")

        if variant == "launch":
            response = substitute_contacts(response, self.contacts, self.logger)

        try:
            script = validate_response(response, variant)
        except Exception as e:
            self.logger.warning(f"[GEN] rejected response for '{instruction}': {e}")
            raise

        self.logger.info(f"[GEN] {len(script)} step(s) generated for '{instruction}'")
        return script
