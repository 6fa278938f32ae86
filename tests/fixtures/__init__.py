"""Test fixtures for the provider transport.

``streams`` builds server-sent event payloads shaped like the provider's
streaming responses, plus an ``httpx.MockTransport`` helper that records
every request it answers.
"""
