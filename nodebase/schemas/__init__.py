# Schemas package init
"""
NodeBase Backend: API Schemas
==============================

Pydantic models are kept separate from SQLAlchemy models: they define what
crosses the wire (procedure results, RPC envelopes, forms, error bodies).
"""
