"""
HTTP client for the Ollama API used by the generative fallback.
Plain urllib with a reusable opener; no third-party HTTP stack.
"""
import json
import time
import urllib.error
import urllib.request
from typing import Any, Dict, Iterator, List, Optional

from rootpilot.core.logger import get_logger


class OllamaClient:
    """Client for a local Ollama server (blocking and streaming generation)."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:11434",
        timeout: int = 30,
        logger=None,
    ):
        """
        Args:
            base_url: Ollama API base URL (e.g., http://127.0.0.1:11434)
            timeout: Default timeout for requests in seconds
            logger: Optional logging sink
        """
        self.logger = logger or get_logger()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        # Reusable opener so keep-alive connections survive across requests
        self.opener = urllib.request.build_opener(
            urllib.request.HTTPHandler(debuglevel=0),
            urllib.request.HTTPSHandler(debuglevel=0)
        )

    def _request(self, path: str, payload: Optional[Dict[str, Any]] = None) -> urllib.request.Request:
        if payload is None:
            return urllib.request.Request(f"{self.base_url}{path}", method="GET")
        return urllib.request.Request(
            f"{self.base_url}{path}",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "Connection": "keep-alive",
            },
            method="POST",
        )

    def list_models(self) -> List[str]:
        """Names of locally available models ([] when unreachable)"""
        try:
            with self.opener.open(self._request("/api/tags"), timeout=5) as response:
                data = json.loads(response.read().decode("utf-8"))
            return [m.get("name", "") for m in data.get("models", [])]
        except (urllib.error.URLError, OSError, ValueError) as e:
            self.logger.debug(f"[LLM] model listing failed: {e}")
            return []

    def ping(self) -> bool:
        """True if the Ollama server answers /api/tags."""
        start_time = time.time()
        try:
            with self.opener.open(self._request("/api/tags"), timeout=5) as response:
                json.loads(response.read().decode("utf-8"))
        except (urllib.error.URLError, OSError, ValueError) as e:
            self.logger.debug(f"[LLM] ping failed: {e}")
            return False
        elapsed_ms = int((time.time() - start_time) * 1000)
        self.logger.debug(f"[LLM] ping ok ({elapsed_ms}ms)")
        return True

    def generate(
        self,
        prompt: str,
        model: str,
        options: Optional[Dict[str, Any]] = None,
        stream: bool = False
    ) -> str:
        """
        Generate a completion.

        Args:
            prompt: Input prompt text
            model: Model name to use
            options: Generation options (temperature, num_predict, ...)
            stream: Use the streaming endpoint but still return the final string

        Returns:
            Generated text

        Raises:
            ConnectionError: If Ollama cannot be reached
            ValueError: If the response is invalid or the model is missing
        """
        if stream:
            return "".join(self.generate_stream(prompt, model, options))

        payload = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": options or {},
        }
        start_time = time.time()
        self.logger.debug(f"[LLM] generating with {model}")
        try:
            with self.opener.open(self._request("/api/generate", payload), timeout=self.timeout) as response:
                response_data = json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            raise self._http_error(e, model, start_time) from e
        except urllib.error.URLError as e:
            raise self._connection_error(e, start_time) from e
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON from Ollama: {e}") from e

        elapsed_ms = int((time.time() - start_time) * 1000)
        self.logger.debug(
            f"[LLM] completed in {elapsed_ms}ms "
            f"(prompt_tokens={response_data.get('prompt_eval_count', 0)}, "
            f"eval_tokens={response_data.get('eval_count', 0)})"
        )
        return response_data.get("response", "").strip()

    def generate_stream(
        self,
        prompt: str,
        model: str,
        options: Optional[Dict[str, Any]] = None
    ) -> Iterator[str]:
        """
        Yield text deltas from the NDJSON streaming endpoint.

        Raises:
            ConnectionError: If Ollama cannot be reached
            ValueError: If a stream line is not valid JSON
        """
        payload = {
            "model": model,
            "prompt": prompt,
            "stream": True,
            "options": options or {},
        }
        start_time = time.time()
        first_token = True
        self.logger.debug(f"[LLM] streaming with {model}")
        try:
            with self.opener.open(self._request("/api/generate", payload), timeout=self.timeout) as response:
                for raw in response:
                    line = raw.decode("utf-8").strip()
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError as e:
                        self.logger.warning(f"[LLM] bad stream line: {line[:100]}")
                        raise ValueError(f"Invalid JSON in stream: {e}") from e

                    if first_token:
                        first_token = False
                        self.logger.debug(
                            f"[LLM] first token in {int((time.time() - start_time) * 1000)}ms"
                        )

                    text = data.get("response", "")
                    if text:
                        yield text
                    if data.get("done", False):
                        self.logger.debug(
                            f"[LLM] stream completed in {int((time.time() - start_time) * 1000)}ms"
                        )
                        break
        except urllib.error.HTTPError as e:
            raise self._http_error(e, model, start_time) from e
        except urllib.error.URLError as e:
            raise self._connection_error(e, start_time) from e

    def _http_error(self, e: urllib.error.HTTPError, model: str, start_time: float) -> Exception:
        elapsed_ms = int((time.time() - start_time) * 1000)
        try:
            body = e.read().decode("utf-8")
        except (OSError, AttributeError, UnicodeDecodeError):
            body = ""
        self.logger.error(f"[LLM] HTTP {e.code} after {elapsed_ms}ms: {body}")
        if e.code == 404 or "model" in body.lower():
            return ValueError(f"Model '{model}' not found. Try: ollama pull {model}")
        return ConnectionError(f"Ollama HTTP error: {e.code}")

    def _connection_error(self, e: urllib.error.URLError, start_time: float) -> Exception:
        elapsed_ms = int((time.time() - start_time) * 1000)
        self.logger.error(f"[LLM] connection error after {elapsed_ms}ms: {e}")
        if "Connection refused" in str(e):
            return ConnectionError(f"Cannot reach Ollama at {self.base_url}. Try: ollama serve")
        return ConnectionError(f"Network error: {e}")
