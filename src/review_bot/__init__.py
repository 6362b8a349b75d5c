"""Langflow-backed pull request review bot.

This package bridges GitHub pull request events to Langflow AI workflows:
- Webhook intake for check-run actions and pull request events
- Bounded, retrying invocation of remote Langflow flows
- Review and merge-readiness orchestration around a check run
- GitHub App authentication and check-run/comment updates
- Structured logging, event emission and Prometheus metrics
"""
