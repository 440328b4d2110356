"""Conversation models and the streaming chat coordinator."""
