"""Contacts API: user accounts and contacts with nested addresses."""
