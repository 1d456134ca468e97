"""
rootpilot memory: the persistent command cache and the contact directory.
"""
from rootpilot.memory.command_cache import CacheEntry, CommandCache
from rootpilot.memory.contacts import Contact, ContactDirectory

__all__ = ["CacheEntry", "CommandCache", "Contact", "ContactDirectory"]
