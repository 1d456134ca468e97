"""
Unit tests for the Ollama client used by the generative fallback.
The client's opener is patched; no Ollama server is needed.
"""
import unittest
import urllib.error
from io import BytesIO
from unittest.mock import MagicMock, Mock, patch

from rootpilot.brain.ollama_client import OllamaClient


def stream_response(lines):
    """Context-manager mock that iterates NDJSON lines"""
    mock_response = MagicMock()
    mock_response.__enter__ = Mock(return_value=mock_response)
    mock_response.__exit__ = Mock(return_value=False)
    mock_response.__iter__ = Mock(return_value=iter(lines))
    return mock_response


def body_response(body):
    """Context-manager mock whose read() returns a whole body"""
    mock_response = MagicMock()
    mock_response.__enter__ = Mock(return_value=mock_response)
    mock_response.__exit__ = Mock(return_value=False)
    mock_response.read = Mock(return_value=body)
    return mock_response


class TestStreamParsing(unittest.TestCase):
    """NDJSON parsing in generate_stream()."""

    def setUp(self):
        self.client = OllamaClient(base_url="http://localhost:11434", timeout=10)

    def _stream(self, lines):
        with patch.object(self.client.opener, 'open', return_value=stream_response(lines)):
            return list(self.client.generate_stream(prompt="test", model="llama3.1:latest", options={}))

    def test_tokens_in_order(self):
        chunks = self._stream([
            b'{"response":"input","done":false}\n',
            b'{"response":" keyevent","done":false}\n',
            b'{"response":" 4","done":true}\n',
        ])
        self.assertEqual(chunks, ["input", " keyevent", " 4"])

    def test_empty_fields_and_blank_lines_skipped(self):
        chunks = self._stream([
            b'{"response":"sleep","done":false}\n',
            b'\n',
            b'{"response":"","done":false}\n',
            b'{"response":" 1","done":true}\n',
        ])
        self.assertEqual(chunks, ["sleep", " 1"])

    def test_stops_on_done(self):
        chunks = self._stream([
            b'{"response":"First","done":false}\n',
            b'{"response":"Second","done":true}\n',
            b'{"response":"Third","done":false}\n',
        ])
        self.assertEqual(chunks, ["First", "Second"])

    def test_invalid_json_raises(self):
        with self.assertRaises(ValueError) as context:
            self._stream([
                b'{"response":"Valid","done":false}\n',
                b'invalid json here\n',
            ])
        self.assertIn("Invalid JSON in stream", str(context.exception))

    def test_generate_with_stream_accumulates(self):
        lines = [
            b'{"response":"input tap","done":false}\n',
            b'{"response":" 540 200","done":true}\n',
        ]
        with patch.object(self.client.opener, 'open', return_value=stream_response(lines)):
            result = self.client.generate(prompt="test", model="llama3.1:latest", options={}, stream=True)
        self.assertEqual(result, "input tap 540 200")


class TestGenerate(unittest.TestCase):
    """Blocking generate() and its error mapping."""

    def setUp(self):
        self.client = OllamaClient(base_url="http://localhost:11434/", timeout=10)

    def test_base_url_trailing_slash_removed(self):
        self.assertEqual(self.client.base_url, "http://localhost:11434")

    def test_returns_stripped_response(self):
        body = b'{"response":"  input keyevent 4\\n","eval_count":3}'
        with patch.object(self.client.opener, 'open', return_value=body_response(body)) as mock_open:
            result = self.client.generate(prompt="go back", model="llama3.1:latest",
                                          options={"temperature": 0.2})

        self.assertEqual(result, "input keyevent 4")
        request = mock_open.call_args[0][0]
        self.assertEqual(request.full_url, "http://localhost:11434/api/generate")
        self.assertIn(b'"stream": false', request.data)
        self.assertEqual(mock_open.call_args[1]["timeout"], 10)

    def test_invalid_json_body(self):
        with patch.object(self.client.opener, 'open', return_value=body_response(b"<html>")):
            with self.assertRaises(ValueError):
                self.client.generate(prompt="x", model="llama3.1:latest")

    def test_missing_model_is_value_error(self):
        error = urllib.error.HTTPError(
            "http://localhost:11434/api/generate", 404, "Not Found", {},
            BytesIO(b'{"error":"model not found"}'),
        )
        with patch.object(self.client.opener, 'open', side_effect=error):
            with self.assertRaises(ValueError) as context:
                self.client.generate(prompt="x", model="nope:latest")
        self.assertIn("ollama pull nope:latest", str(context.exception))

    def test_server_error_is_connection_error(self):
        error = urllib.error.HTTPError(
            "http://localhost:11434/api/generate", 500, "Server Error", {}, BytesIO(b"oops"),
        )
        with patch.object(self.client.opener, 'open', side_effect=error):
            with self.assertRaises(ConnectionError):
                self.client.generate(prompt="x", model="llama3.1:latest")

    def test_refused_connection(self):
        error = urllib.error.URLError("[Errno 111] Connection refused")
        with patch.object(self.client.opener, 'open', side_effect=error):
            with self.assertRaises(ConnectionError) as context:
                self.client.generate(prompt="x", model="llama3.1:latest")
        self.assertIn("ollama serve", str(context.exception))

    def test_list_models_and_ping(self):
        body = b'{"models":[{"name":"llama3.1:latest"},{"name":"qwen2.5:3b"}]}'
        with patch.object(self.client.opener, 'open', return_value=body_response(body)):
            self.assertEqual(self.client.list_models(), ["llama3.1:latest", "qwen2.5:3b"])
        with patch.object(self.client.opener, 'open', return_value=body_response(body)):
            self.assertTrue(self.client.ping())
        with patch.object(self.client.opener, 'open', side_effect=urllib.error.URLError("down")):
            self.assertFalse(self.client.ping())
            self.assertEqual(self.client.list_models(), [])


if __name__ == '__main__':
    unittest.main()
