"""
messages — Message data model and its durable store.

Sub-modules:
    models      — statuses, Message, ORM record, delivery results
    repository  — async SQLAlchemy repository over the messages table
"""
