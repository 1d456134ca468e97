"""Tests for the contact directory.

Run with: python -m pytest tests/test_contacts.py -v
"""

import pytest

from rootpilot.device.shell import ShellResult
from rootpilot.memory.contacts import (
    CONTACTS_QUERY,
    Contact,
    ContactDirectory,
    clean_phone_number,
    parse_contact_rows,
)
from fakes import FakeRunner


QUERY_OUTPUT = """Row: 0 display_name=Devraj Patel, data1=+91 98765 43210
Row: 1 display_name=Anna Smith, data1=(555) 123-4567
Row: 2 display_name=Short, data1=555-1234
Row: 3 display_name=NULL, data1=5551234567
garbage line
Row: 4 display_name=Bob, data1=555.987.6543
"""


@pytest.mark.parametrize("raw, cleaned", [
    ("+91 98765 43210", "919876543210"),
    ("+1 555-123-4567", "15551234567"),
    ("(555) 123-4567", "5551234567"),
    ("555-1234", ""),
    ("", ""),
    (None, ""),
])
def test_clean_phone_number(raw, cleaned):
    assert clean_phone_number(raw) == cleaned


def test_parse_contact_rows_skips_unusable_rows():
    contacts = parse_contact_rows(QUERY_OUTPUT)
    assert contacts == [
        Contact("Devraj Patel", "919876543210"),
        Contact("Anna Smith", "5551234567"),
        Contact("Bob", "5559876543"),
    ]


@pytest.fixture
def directory():
    runner = FakeRunner(results={CONTACTS_QUERY: ShellResult(QUERY_OUTPUT, 0)})
    directory = ContactDirectory(runner=runner)
    directory.load()
    return directory


def test_load(directory):
    assert directory.loaded
    assert len(directory) == 3
    assert sorted(directory.names()) == ["Anna Smith", "Bob", "Devraj Patel"]


@pytest.mark.parametrize("name, number", [
    ("Anna Smith", "5551234567"),
    ("anna smith", "5551234567"),
    ("devraj", "919876543210"),          # name inside contact
    ("bob from work", "5559876543"),     # contact inside name
    ("zoe", None),
    ("", None),
    (None, None),
])
def test_resolve(directory, name, number):
    assert directory.resolve(name) == number


def test_exact_match_beats_substring():
    directory = ContactDirectory(runner=FakeRunner())
    directory.add(Contact("Sam Jones", "1111111111"))
    directory.add(Contact("Sam", "2222222222"))
    assert directory.resolve("sam") == "2222222222"


def test_failed_query_leaves_directory_empty():
    runner = FakeRunner(results={CONTACTS_QUERY: ShellResult("Permission denial", 1)})
    directory = ContactDirectory(runner=runner)
    assert directory.load() == 0
    assert len(directory) == 0
    assert not directory.loaded


def test_runner_exception_is_absorbed():
    runner = FakeRunner(results={CONTACTS_QUERY: OSError("no shell")})
    assert ContactDirectory(runner=runner).load() == 0


def test_refresh_reloads(directory):
    directory.add(Contact("Temp", "9999999999"))
    assert directory.refresh() == 3
    assert directory.resolve("temp") is None
