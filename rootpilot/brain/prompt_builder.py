"""
Prompt templates for the generative fallback.

Two deterministic variants:
- UI prompt: the foreground app is known; the model may only tap, type,
  press keys and wait, using coordinates from the listed elements.
- Launch prompt: no usable context; the model may additionally start
  activities and URLs with `am start`.

Same inputs always produce the same prompt text.
"""
from typing import Optional, Sequence

from rootpilot.core.config import Config
from rootpilot.vision.ui_elements import UIElement, format_for_prompt


UNKNOWN_CONTEXT = "Context: Unknown (device home screen or locked)"

# ============================================================================
# UI AUTOMATION PROMPT
# ============================================================================

UI_PREAMBLE = (
    "You are a context-aware Android automation assistant. "
    "Generate shell commands based on the CURRENT screen context."
)

UI_RULES = """1. The user is ALREADY in the app above - do not open the app again
2. Use ONLY elements that are visible on the current screen
3. Return ONLY executable commands, one per line
4. Use 'input tap X Y' to click elements at their listed coordinates
5. Use 'input text' for typing (replace spaces with %s)
6. Use 'sleep 1' between steps so the UI can load
7. Allowed commands: input tap, input text, input keyevent, sleep
8. NO explanations, NO markdown, ONLY commands"""

UI_PATTERNS = """Click element: input tap <centerX> <centerY>
Type text: input text 'text%swith%sspaces'
Press back: input keyevent 4
Press enter: input keyevent 66
Wait: sleep 1"""

UI_EXAMPLES = """--- EXAMPLE 1 ---
Context: WhatsApp - Chats List
Elements: Search button at (950,150)
User: message John saying hello
Commands:
input tap 950 150
sleep 1
input text 'John'
sleep 1
input tap 540 400
sleep 1
input text 'hello'
sleep 0.5
input tap 950 1850

--- EXAMPLE 2 ---
Context: Google Maps - Map View
Elements: Search box at (540,200)
User: search restaurants near me
Commands:
input tap 540 200
sleep 1
input text 'restaurants%snear%sme'
sleep 0.5
input keyevent 66"""


def build_ui_prompt(instruction: str, context=None, elements: Optional[Sequence[UIElement]] = None,
                    max_elements: Optional[int] = None) -> str:
    """Prompt for context-aware UI automation."""
    context_block = context.summary() if context is not None else UNKNOWN_CONTEXT
    element_block = format_for_prompt(elements or [], limit=max_elements or Config.PROMPT_MAX_ELEMENTS)
    if not element_block:
        element_block = "(no interactable elements detected)"

    return (
        f"{UI_PREAMBLE}\n\n"
        f"=== CURRENT CONTEXT ===\n{context_block}\n\n"
        f"=== AVAILABLE ELEMENTS ===\n{element_block}\n\n"
        f"=== USER REQUEST ===\n{instruction}\n\n"
        f"=== IMPORTANT RULES ===\n{UI_RULES}\n\n"
        f"=== COMMAND PATTERNS ===\n{UI_PATTERNS}\n\n"
        f"{UI_EXAMPLES}\n\n"
        "Now generate commands for the user's request:\n"
        "Commands:"
    )


# ============================================================================
# APP LAUNCH PROMPT
# ============================================================================

LAUNCH_PREAMBLE = (
    "You are an Android shell command generator. Convert the user's natural "
    "language request into exact Android shell commands."
)

LAUNCH_RULES = """1. Return ONLY the shell commands, nothing else
2. Use one command per line
3. Allowed commands: am start, input tap, input text, input keyevent, sleep
4. For delays between commands, use: sleep 2
5. No explanations, no markdown, no code blocks
6. PREFER direct am start commands over coordinate-based automation
7. For WhatsApp messaging, use the URL scheme instead of tapping coordinates"""

LAUNCH_PATTERNS = """- Open app: am start -n PACKAGE_NAME/ACTIVITY_NAME
- Open WhatsApp: am start -n com.whatsapp/.HomeActivity
- Open YouTube: am start -n com.google.android.youtube/.HomeActivity
- Open Chrome: am start -n com.android.chrome/com.google.android.apps.chrome.Main
- Open Instagram: am start -n com.instagram.android/.activity.MainTabActivity
- Open URL: am start -a android.intent.action.VIEW -d 'URL'
- Search YouTube: am start -a android.intent.action.SEARCH -n com.google.android.youtube/.activities.ShellActivity --es query 'SEARCH_TERM'
- Send WhatsApp message: am start -a android.intent.action.VIEW -d 'https://api.whatsapp.com/send?phone=PHONE&text=MESSAGE'
- Type text: input text 'your%stext'
- Press back: input keyevent 4
- Press home: input keyevent 3"""

LAUNCH_CONTACTS = """- Use contact names directly in WhatsApp URLs: phone=CONTACT_NAME
- Contact names are replaced with phone numbers automatically
- Use the exact contact name the user said"""

LAUNCH_EXAMPLES = """User: 'open whatsapp'
Command: am start -n com.whatsapp/.HomeActivity

User: 'send hi to 919876543210 on whatsapp'
Command: am start -a android.intent.action.VIEW -d 'https://api.whatsapp.com/send?phone=919876543210&text=hi'

User: 'send message to devraj saying hi'
Command: am start -a android.intent.action.VIEW -d 'https://api.whatsapp.com/send?phone=devraj&text=hi'

User: 'open youtube and search for music'
Command: am start -a android.intent.action.SEARCH -n com.google.android.youtube/.activities.ShellActivity --es query 'music'

User: 'type hello world'
Command: input text 'hello%sworld'"""


def build_launch_prompt(instruction: str) -> str:
    """Prompt for package/app-launch automation (no screen context)."""
    return (
        f"{LAUNCH_PREAMBLE}\n\n"
        f"RULES:\n{LAUNCH_RULES}\n\n"
        f"COMMON PATTERNS:\n{LAUNCH_PATTERNS}\n\n"
        f"CONTACT HANDLING:\n{LAUNCH_CONTACTS}\n\n"
        f"EXAMPLES:\n{LAUNCH_EXAMPLES}\n\n"
        f"User request: {instruction}\n"
        "Command:"
    )
