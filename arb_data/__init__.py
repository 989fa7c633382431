"""Shared plumbing for the arbitrage bot: exceptions, logging and retry helpers."""
