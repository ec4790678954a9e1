"""Declarative event-trigger engine.

Rules name an event, the pages it applies to and how it is triggered. The
engine evaluates them against a :class:`~pydatalayer.triggers.host.PageHost`
once the data layer has settled.
"""
