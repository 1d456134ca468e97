"""
Unit tests for the generative fallback.
The Ollama client is replaced by a fake; no network is used.
"""
import unittest

from rootpilot.brain.command_generator import CommandGenerator, substitute_contacts
from rootpilot.brain.prompt_builder import UNKNOWN_CONTEXT, build_launch_prompt, build_ui_prompt
from rootpilot.core.errors import GenerationRejected
from rootpilot.core.script import ActionScript, KeyEvent, Launch, Tap, Wait
from rootpilot.memory.contacts import Contact, ContactDirectory
from fakes import WHATSAPP_CHAT, FakeClient, FakeRunner, element


def make_contacts():
    contacts = ContactDirectory(runner=FakeRunner())
    contacts.add(Contact("Devraj", "919876543210"))
    contacts.add(Contact("Anna Smith", "15551234567"))
    return contacts


class TestPrompts(unittest.TestCase):
    """Prompt text is deterministic and carries the inputs."""

    def test_ui_prompt_lists_context_and_elements(self):
        elements = [element(content_desc="Search", x=540, y=200)]
        prompt = build_ui_prompt("search pizza", WHATSAPP_CHAT, elements)

        self.assertIn("Current App: WhatsApp", prompt)
        self.assertIn("1. Search at (540,200)", prompt)
        self.assertIn("=== USER REQUEST ===\nsearch pizza", prompt)
        self.assertTrue(prompt.endswith("Commands:"))

    def test_ui_prompt_without_context(self):
        prompt = build_ui_prompt("go back", None, [])
        self.assertIn(UNKNOWN_CONTEXT, prompt)
        self.assertIn("(no interactable elements detected)", prompt)

    def test_prompts_are_deterministic(self):
        elements = [element(text="Play", x=1, y=2)]
        self.assertEqual(
            build_ui_prompt("tap play", WHATSAPP_CHAT, elements),
            build_ui_prompt("tap play", WHATSAPP_CHAT, elements),
        )
        self.assertEqual(build_launch_prompt("open maps"), build_launch_prompt("open maps"))

    def test_launch_prompt_carries_request(self):
        prompt = build_launch_prompt("open youtube and search music")
        self.assertIn("User request: open youtube and search music", prompt)
        self.assertIn("am start", prompt)


class TestContactSubstitution(unittest.TestCase):

    def test_replaces_name_with_number(self):
        response = ("am start -a android.intent.action.VIEW -d "
                    "'https://api.whatsapp.com/send?phone=devraj&text=hi'")
        result = substitute_contacts(response, make_contacts())
        self.assertIn("phone=919876543210&text=hi", result)

    def test_keeps_numbers_and_unknown_names(self):
        contacts = make_contacts()
        numeric = "'https://api.whatsapp.com/send?phone=4412345678&text=x'"
        unknown = "'https://api.whatsapp.com/send?phone=zed&text=x'"
        self.assertEqual(substitute_contacts(numeric, contacts), numeric)
        self.assertEqual(substitute_contacts(unknown, contacts), unknown)

    def test_without_directory(self):
        self.assertEqual(substitute_contacts("phone=devraj", None), "phone=devraj")


class TestCommandGenerator(unittest.TestCase):

    def test_ui_variant_when_context_known(self):
        client = FakeClient("input tap 540 200\nsleep 1")
        generator = CommandGenerator(client=client, model="test-model", options={})

        script = generator.generate("tap search", WHATSAPP_CHAT, [element(text="Search", x=540, y=200)])

        self.assertEqual(script, ActionScript.of(Tap(540, 200), Wait(1000)))
        self.assertEqual(len(client.prompts), 1)
        self.assertIn("=== CURRENT CONTEXT ===", client.prompts[0])

    def test_launch_variant_substitutes_contacts(self):
        client = FakeClient(
            "am start -a android.intent.action.VIEW -d "
            "'https://api.whatsapp.com/send?phone=devraj&text=hi'"
        )
        generator = CommandGenerator(client=client, model="test-model", options={},
                                     contacts=make_contacts())

        script = generator.generate("send message to devraj saying hi")

        self.assertEqual(len(script), 1)
        step = list(script)[0]
        self.assertIsInstance(step, Launch)
        self.assertIn("phone=919876543210", step.args)
        self.assertIn("User request: send message to devraj saying hi", client.prompts[0])

    def test_am_start_rejected_with_context(self):
        client = FakeClient("am start -n com.whatsapp/.HomeActivity")
        generator = CommandGenerator(client=client, model="test-model", options={})
        with self.assertRaises(GenerationRejected):
            generator.generate("open whatsapp", WHATSAPP_CHAT, [])

    def test_unsafe_response_rejected(self):
        client = FakeClient("input keyevent 4\nrm -rf /sdcard")
        generator = CommandGenerator(client=client, model="test-model", options={})
        with self.assertRaises(GenerationRejected) as ctx:
            generator.generate("go back please")
        self.assertEqual(ctx.exception.offending, "rm -rf /sdcard")

    def test_transport_error_propagates_after_one_call(self):
        client = FakeClient(error=ConnectionError("Cannot reach Ollama"))
        generator = CommandGenerator(client=client, model="test-model", options={})
        with self.assertRaises(ConnectionError):
            generator.generate("go back please")
        self.assertEqual(len(client.prompts), 1)

    def test_keyevent_response(self):
        generator = CommandGenerator(client=FakeClient("input keyevent 4"), model="m", options={})
        self.assertEqual(generator.generate("back"), ActionScript.of(KeyEvent(4)))


if __name__ == "__main__":
    unittest.main()
