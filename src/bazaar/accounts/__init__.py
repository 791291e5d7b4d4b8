"""Accounts: login accounts, business profiles, salespeople and tokens."""
