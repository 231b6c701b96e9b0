"""Automated GitHub issue responder.

This package reacts to GitHub issue events and posts language-model
generated responses back to the issue thread:
- Webhook parsing into immutable issue events
- Deterministic content extraction and cleaning
- Word-budgeted prompt construction
- LLM invocation with a shared retry policy
- At-most-once comment and label delivery
- Pipeline orchestration with a per-event deadline
"""
