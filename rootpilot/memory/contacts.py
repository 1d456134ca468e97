"""
Contact directory for rootpilot.

Maps display names to dialable numbers. Contacts are read once from the
Android contacts provider through the device shell and kept in memory until
refresh() is called.
"""

import re
from dataclasses import dataclass
from threading import RLock
from typing import Callable, Dict, List, Optional

from rootpilot.core.logger import get_logger
from rootpilot.device.shell import ShellResult, run_shell


CONTACTS_QUERY = (
    "content query --uri content://com.android.contacts/data/phones "
    "--projection display_name:data1"
)

_ROW_RE = re.compile(r"^Row:\s*\d+\s+display_name=(.*?),\s*data1=(.*)$")
_PHONE_STRIP_RE = re.compile(r"[^+0-9]")


@dataclass(frozen=True)
class Contact:
    display_name: str
    phone_number: str  # digits only


def clean_phone_number(phone: Optional[str]) -> str:
    """
    Reduce a phone number to digits.

    A leading '+' marks an international number: it is dropped and the digits
    are kept. Numbers without '+' shorter than 10 digits are discarded ('').
    """
    if not phone:
        return ""
    cleaned = _PHONE_STRIP_RE.sub("", phone)
    if cleaned.startswith("+"):
        return cleaned[1:].replace("+", "")
    cleaned = cleaned.replace("+", "")
    if len(cleaned) >= 10:
        return cleaned
    return ""


def parse_contact_rows(output: str) -> List[Contact]:
    """Parse `content query` output into contacts, skipping unusable rows."""
    contacts = []
    for line in (output or "").splitlines():
        m = _ROW_RE.match(line.strip())
        if not m:
            continue
        name = m.group(1).strip()
        number = clean_phone_number(m.group(2).strip())
        if name and name != "NULL" and number:
            contacts.append(Contact(display_name=name, phone_number=number))
    return contacts


class ContactDirectory:
    """In-memory name -> number directory"""

    def __init__(self, runner: Optional[Callable[[str], ShellResult]] = None, logger=None):
        self.logger = logger or get_logger()
        self._runner = runner or run_shell
        self._lock = RLock()
        self._contacts: Dict[str, Contact] = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def load(self) -> int:
        """
        Read the device's contacts (call once the contacts permission is granted).

        Returns:
            Number of contacts loaded. Query failures leave the directory empty.
        """
        try:
            result = self._runner(CONTACTS_QUERY)
        except Exception as e:
            self.logger.warning(f"[CONTACTS] query failed: {e}")
            return 0

        if not result.ok:
            self.logger.warning(
                f"[CONTACTS] query exited with {result.exit_code}: {result.output.strip()[:200]}"
            )
            return 0

        contacts = parse_contact_rows(result.output)
        with self._lock:
            self._contacts = {c.display_name: c for c in contacts}
            self._loaded = True
        self.logger.info(f"[CONTACTS] loaded {len(contacts)} contacts")
        return len(contacts)

    def refresh(self) -> int:
        """Reload contacts on explicit request"""
        with self._lock:
            self._contacts = {}
            self._loaded = False
        return self.load()

    def resolve(self, name: Optional[str]) -> Optional[str]:
        """
        Look up a number by name.

        Exact match (case-insensitive) first, then substring containment in
        either direction. Returns None when nothing matches.
        """
        if not name or not name.strip():
            return None
        wanted = name.strip().lower()

        with self._lock:
            contacts = list(self._contacts.values())

        for contact in contacts:
            if contact.display_name.lower() == wanted:
                return contact.phone_number

        for contact in contacts:
            candidate = contact.display_name.lower()
            if wanted in candidate or candidate in wanted:
                self.logger.debug(f"[CONTACTS] '{name}' matched '{contact.display_name}'")
                return contact.phone_number

        self.logger.debug(f"[CONTACTS] no match for '{name}'")
        return None

    def names(self) -> List[str]:
        with self._lock:
            return list(self._contacts.keys())

    def add(self, contact: Contact) -> None:
        with self._lock:
            self._contacts[contact.display_name] = contact

    def __len__(self) -> int:
        with self._lock:
            return len(self._contacts)
